"""LLM-powered branding analysis and email template rewriting."""

import json
import logging
import re
from typing import Any, Dict, Optional

from ..models.migration import LLMProvider

logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o",
    LLMProvider.ANTHROPIC: "claude-3-5-sonnet-latest",
}

BRANDING_SYSTEM_PROMPT = (
    "You are a branding analyst. Given metadata extracted from a company's website, "
    "you extract branding information. Always respond with valid JSON only, no markdown fences."
)

BRANDING_PROMPT = """Analyze this website metadata and extract branding information:

{context}

Respond with a JSON object with these exact keys:
{{
  "logoUrl": "the best logo image URL - prefer images with 'logo' in their alt text first, then apple-touch-icon, then og:image; avoid favicons and generic page images",
  "brandColor": "#RRGGBB hex color - use theme-color if available, otherwise infer the primary brand color from context",
  "accentColor": "#RRGGBB hex color - a secondary color visibly distinct from brandColor. If the site has a clear secondary color use that; otherwise produce a lighter tint of brandColor by blending it toward white (e.g. mix 40% white into the brand color). Do NOT default to orange or any color unrelated to the brand."
}}

If you cannot determine a value, make a reasonable professional default derived from the brand. Return only valid JSON."""

EMAIL_SYSTEM_PROMPT = (
    "You are an HTML email template specialist. When given an HTML email template and brand "
    "assets, you update the template to reflect the new branding. Return only the complete "
    "updated HTML, no explanation, no markdown fences."
)

EMAIL_PROMPT = """Update the HTML email template below to use this branding:
- Domain: {domain}
- Logo URL: {logo_url}
- Brand color (bare hex, no #): {brand_color}
- Accent color (bare hex, no #): {accent_color}

Apply these changes:
1. Replace the logo <img> src attribute with the new logo URL
2. Replace the button background-color with #{brand_color}
3. Replace the accent color bar (the div with a solid background color) with #{accent_color}
4. Replace any other hardcoded brand/link colors with #{brand_color} or #{accent_color} as appropriate
5. Remove the support email link (the "Questions? We're all ears!" mailto link or any similar mailto: link in the template)
6. In the footer, remove all Bunny-specific content: the "Bunny, Inc." tagline text, and the LinkedIn/X/YouTube social media icon links
7. If the domain has known social media presence, add appropriate social links in the footer in the same style; otherwise leave the social links section empty
8. Replace any remaining references to "Bunny" in the footer text with the company name inferred from the domain
9. Preserve all Liquid/Handlebars template variables like {{{{body}}}}, {{{{company.name}}}}, {{{{quote.portal_url}}}} exactly as-is

Return only the complete updated HTML template.

Existing template:
{template}"""


def build_branding_context(domain: str, meta: Dict[str, Any]) -> str:
    """One line per known metadata value, in priority order."""
    lines = [f"Domain: {domain}"]
    if meta.get("title"):
        lines.append(f"Page title: {meta['title']}")
    if meta.get("ogTitle"):
        lines.append(f"OG title: {meta['ogTitle']}")
    if meta.get("ogDescription"):
        lines.append(f"OG description: {meta['ogDescription']}")
    if meta.get("logoImgs"):
        lines.append(f"Images with \"logo\" in alt text (best candidates): {', '.join(meta['logoImgs'])}")
    if meta.get("ogImage"):
        lines.append(f"OG image: {meta['ogImage']}")
    if meta.get("twitterImage"):
        lines.append(f"Twitter image: {meta['twitterImage']}")
    if meta.get("appleIcon"):
        lines.append(f"Apple touch icon: {meta['appleIcon']}")
    if meta.get("favicon"):
        lines.append(f"Favicon: {meta['favicon']}")
    if meta.get("themeColor"):
        lines.append(f"Theme color: {meta['themeColor']}")
    if meta.get("images"):
        lines.append(f"Other images: {', '.join(meta['images'])}")
    return "\n".join(lines)


class BrandingAnalyzer:
    """
    Asks an LLM for a company's branding and rewrites email templates.

    Supports OpenAI and Anthropic; the SDK is imported on first use.
    """

    def __init__(
        self,
        provider: str = "openai",
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize the analyzer.

        Args:
            provider: LLM provider ("openai" or "anthropic", any case)
            api_key: API key for the provider
            model: Model name (defaults per provider)
        """
        self.provider = LLMProvider(provider.lower())
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS[self.provider]

    def analyze_branding(self, domain: str, meta: Dict[str, Any]) -> Dict[str, Any]:
        """
        Infer {logoUrl, brandColor, accentColor} from website metadata.

        Raises:
            ValueError: the response was not a JSON object
        """
        prompt = BRANDING_PROMPT.format(context=build_branding_context(domain, meta))
        result = self._call_llm(BRANDING_SYSTEM_PROMPT, prompt, expect_json=True, max_tokens=1024)
        if not isinstance(result, dict):
            raise ValueError(f"Unexpected branding response: {result!r}")
        logger.debug(f"Branding analysis: {result}")
        return result

    def generate_email_template(
        self,
        existing_template: Optional[str],
        logo_url: Optional[str],
        brand_color: Optional[str],
        accent_color: Optional[str],
        domain: str
    ) -> str:
        """Rewrite an entity's email template with the new branding."""
        prompt = EMAIL_PROMPT.format(
            domain=domain,
            logo_url=logo_url,
            brand_color=brand_color,
            accent_color=accent_color or brand_color,
            template=existing_template or "",
        )
        return self._call_llm(EMAIL_SYSTEM_PROMPT, prompt, max_tokens=4096)

    def _call_llm(self, system: str, prompt: str, expect_json: bool = False, max_tokens: int = 1024) -> Any:
        """Call the LLM API."""
        if self.provider == LLMProvider.OPENAI:
            return self._call_openai(system, prompt, expect_json)
        elif self.provider == LLMProvider.ANTHROPIC:
            return self._call_anthropic(system, prompt, expect_json, max_tokens)
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

    def _call_openai(self, system: str, prompt: str, expect_json: bool = False) -> Any:
        """Call OpenAI API."""
        import openai

        client = openai.OpenAI(api_key=self.api_key)

        kwargs = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }

        if expect_json:
            kwargs["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(**kwargs)
        content = (response.choices[0].message.content or "").strip()

        if expect_json:
            return json.loads(content)
        return content

    def _call_anthropic(self, system: str, prompt: str, expect_json: bool = False, max_tokens: int = 1024) -> Any:
        """Call Anthropic API."""
        import anthropic

        client = anthropic.Anthropic(api_key=self.api_key)

        response = client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )

        content = response.content[0].text.strip()

        if expect_json:
            # Extract JSON from response
            json_match = re.search(r"\{[\s\S]*\}", content)
            if json_match:
                return json.loads(json_match.group())
            return json.loads(content)

        return content
