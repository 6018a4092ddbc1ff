"""Tests for branding helpers and the LLM branding analyzer."""

from unittest.mock import MagicMock, patch

import pytest

from bunny_cli.models.migration import LLMProvider
from bunny_cli.services.branding import guess_mime_type, normalize_domain, resolve_url, sanitize_color
from bunny_cli.services.llm_inference import BrandingAnalyzer, build_branding_context


@pytest.mark.parametrize("value,expected", [
    ("acme.com", "https://acme.com"),
    (" acme.com ", "https://acme.com"),
    ("http://acme.com", "http://acme.com"),
    ("https://acme.com/about", "https://acme.com/about"),
])
def test_normalize_domain(value, expected):
    assert normalize_domain(value) == expected


@pytest.mark.parametrize("value,expected", [
    ("#1A2B3C", "1A2B3C"),
    ("1a2b3c", "1a2b3c"),
    ("#11223344ff", "11223344"),
    ("rgb(0, 0, 0)", "b000"),
    ("#zzz", None),
    (None, None),
])
def test_sanitize_color(value, expected):
    assert sanitize_color(value) == expected


@pytest.mark.parametrize("url,expected", [
    ("https://cdn.acme.com/logo.png", "https://cdn.acme.com/logo.png"),
    ("//cdn.acme.com/logo.png", "https://cdn.acme.com/logo.png"),
    ("/static/logo.png", "https://acme.com/static/logo.png"),
    ("logo.png", "https://acme.com/about/logo.png"),
    (None, None),
])
def test_resolve_url(url, expected):
    assert resolve_url("https://acme.com/about/", url) == expected


@pytest.mark.parametrize("url,expected", [
    ("/logo.svg", "image/svg+xml"),
    ("/logo.JPG", "image/png"),
    ("/logo.jpeg?v=2", "image/jpeg"),
    ("/favicon.ico", "image/x-icon"),
    ("/logo", "image/png"),
])
def test_guess_mime_type(url, expected):
    assert guess_mime_type(url) == expected


def test_branding_context_order():
    meta = {"themeColor": "#fff", "title": "Acme", "logoImgs": ["/a.png", "/b.png"], "images": ["/x.png"]}

    lines = build_branding_context("https://acme.com", meta).splitlines()

    assert lines == [
        "Domain: https://acme.com",
        "Page title: Acme",
        'Images with "logo" in alt text (best candidates): /a.png, /b.png',
        "Theme color: #fff",
        "Other images: /x.png",
    ]


class TestBrandingAnalyzer:
    def test_default_models(self):
        assert BrandingAnalyzer("OpenAI").model == "gpt-4o"
        assert BrandingAnalyzer("anthropic").provider == LLMProvider.ANTHROPIC

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            BrandingAnalyzer("gemini")

    def test_analyze_branding(self):
        analyzer = BrandingAnalyzer("openai", api_key="key")
        branding = {"logoUrl": "/logo.png", "brandColor": "#112233", "accentColor": "#445566"}

        with patch.object(analyzer, "_call_llm", return_value=branding) as call_llm:
            assert analyzer.analyze_branding("https://acme.com", {"title": "Acme"}) == branding

        system, prompt = call_llm.call_args[0]
        assert "branding analyst" in system
        assert "Page title: Acme" in prompt
        assert call_llm.call_args[1]["expect_json"] is True

    def test_analyze_branding_rejects_non_objects(self):
        analyzer = BrandingAnalyzer("openai", api_key="key")
        with patch.object(analyzer, "_call_llm", return_value=["not", "an", "object"]):
            with pytest.raises(ValueError):
                analyzer.analyze_branding("https://acme.com", {})

    def test_email_template_accent_falls_back_to_brand(self):
        analyzer = BrandingAnalyzer("anthropic", api_key="key")
        with patch.object(analyzer, "_call_llm", return_value="<html/>") as call_llm:
            html = analyzer.generate_email_template("<p>{{body}}</p>", "https://acme.com/l.png", "112233", None, "acme.com")

        prompt = call_llm.call_args[0][1]
        assert html == "<html/>"
        assert "Accent color (bare hex, no #): 112233" in prompt
        assert "{{body}}" in prompt
        assert call_llm.call_args[1]["max_tokens"] == 4096

    def test_anthropic_response_json_is_extracted(self):
        analyzer = BrandingAnalyzer("anthropic", api_key="key")
        message = MagicMock()
        message.content = [MagicMock(text='Here you go:\n{"brandColor": "#000000"}\n')]
        anthropic = MagicMock()
        anthropic.Anthropic.return_value.messages.create.return_value = message

        with patch.dict("sys.modules", {"anthropic": anthropic}):
            result = analyzer._call_llm("system", "prompt", expect_json=True)

        assert result == {"brandColor": "#000000"}
        kwargs = anthropic.Anthropic.return_value.messages.create.call_args[1]
        assert kwargs["model"] == "claude-3-5-sonnet-latest"
        assert kwargs["system"] == "system"

    def test_openai_requests_json_object(self):
        analyzer = BrandingAnalyzer("openai", api_key="key")
        completion = MagicMock()
        completion.choices = [MagicMock(message=MagicMock(content='{"logoUrl": "/l.png"}'))]
        openai = MagicMock()
        openai.OpenAI.return_value.chat.completions.create.return_value = completion

        with patch.dict("sys.modules", {"openai": openai}):
            result = analyzer._call_llm("system", "prompt", expect_json=True)

        assert result == {"logoUrl": "/l.png"}
        kwargs = openai.OpenAI.return_value.chat.completions.create.call_args[1]
        assert kwargs["response_format"] == {"type": "json_object"}
