"""Tests for the command-line interface."""

from argparse import Namespace
from unittest.mock import MagicMock, patch

import pytest

from bunny_cli.cli import build_parser, main, print_result, resolve_analyzer, resolve_stripe_key
from bunny_cli.exceptions import ConfigurationError
from bunny_cli.models.migration import CommandResult, LLMProvider, Profile
from bunny_cli.models.record import BatchStatus, ImportBatchResult, RecordResult, SkippedRecord


def batch(status, failures=0, successes=0):
    results = [RecordResult(f"ok-{i}", True) for i in range(successes)]
    results += [RecordResult(f"bad-{i}", False, error="rejected") for i in range(failures)]
    return ImportBatchResult(
        status=status,
        success_count=successes,
        error_count=failures,
        total_count=successes + failures,
        results=tuple(results),
    )


class TestPrintResult:
    def test_cancelled(self, capsys):
        print_result(CommandResult(command="import accounts", cancelled=True))
        assert capsys.readouterr().out == "Ok, import canceled\n"

    def test_partial_shows_ten_errors(self, capsys):
        print_result(CommandResult(command="import contacts", batch=batch(BatchStatus.PARTIAL, 12, 3)))

        out = capsys.readouterr().out

        assert "IMPORT CONTACTS COMPLETE" in out
        assert "Succeeded: 3" in out
        assert "Failed: 12" in out
        assert "bad-9: rejected" in out
        assert "bad-10" not in out
        assert "... and 2 more errors" in out

    def test_skipped_records(self, capsys):
        skipped = [SkippedRecord(f"c{i}", "Missing required field", row_number=i) for i in range(1, 23)]

        print_result(CommandResult(command="import contacts", skipped=skipped))

        out = capsys.readouterr().out
        assert "Skipped 22 record(s):" in out
        assert "  - Row 1 (c1): Missing required field" in out
        assert "(c21)" not in out
        assert "... and 2 more" in out

    def test_artifacts(self, capsys):
        print_result(CommandResult(command="import subscriptions", artifacts={"output": "/tmp/out.csv"}))
        assert "output: /tmp/out.csv" in capsys.readouterr().out


class TestResolveStripeKey:
    def test_flag_wins(self, profile):
        store = MagicMock()
        with patch("bunny_cli.cli.prompt_confirm", return_value=False):
            key = resolve_stripe_key(Namespace(stripe_key="sk_test_flag"), store, profile)
        assert key == "sk_test_flag"
        store.update.assert_not_called()

    def test_saved_key_after_confirmation(self, profile):
        profile.stripe_secret_key = "sk_test_saved"
        with patch("bunny_cli.cli.prompt_confirm", return_value=True):
            key = resolve_stripe_key(Namespace(stripe_key=None), MagicMock(), profile)
        assert key == "sk_test_saved"

    def test_environment(self, profile, monkeypatch):
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_env")
        store = MagicMock()
        assert resolve_stripe_key(Namespace(stripe_key=None), store, profile) == "sk_test_env"
        store.update.assert_not_called()

    def test_prompted_key_is_saved(self, profile, monkeypatch):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        store = MagicMock()
        with patch("bunny_cli.cli.prompt_secret", return_value="sk_test_typed"), \
                patch("bunny_cli.cli.prompt_confirm", return_value=True):
            key = resolve_stripe_key(Namespace(stripe_key=None), store, profile)

        assert key == "sk_test_typed"
        store.update.assert_called_once_with("test", stripe_secret_key="sk_test_typed")

    def test_rejects_non_secret_keys(self, profile):
        with pytest.raises(ConfigurationError, match="must start with sk_"):
            resolve_stripe_key(Namespace(stripe_key="pk_test_public"), MagicMock(), profile)


class TestResolveAnalyzer:
    def test_saved_provider(self, profile):
        profile.llm_provider = "anthropic"
        profile.llm_api_key = "key"
        analyzer = resolve_analyzer(MagicMock(), profile)
        assert analyzer.provider == LLMProvider.ANTHROPIC

    def test_environment_key(self, profile, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")
        store = MagicMock()
        with patch("bunny_cli.cli.prompt_choice", return_value=LLMProvider.OPENAI):
            analyzer = resolve_analyzer(store, profile)
        assert analyzer.api_key == "env-key"
        store.update.assert_not_called()


class TestParser:
    def test_import_subscriptions(self):
        args = build_parser().parse_args(
            ["import", "subscriptions", "-f", "subs.csv", "--output", "out.csv", "-p", "prod"]
        )
        assert args.entity == "subscriptions"
        assert args.file == "subs.csv"
        assert args.output == "out.csv"
        assert args.profile == "prod"
        assert args.dry_run is False

    def test_migrate_stripe(self):
        args = build_parser().parse_args(["migrate", "stripe", "products", "--stripe-key", "sk_test"])
        assert args.entity == "products"
        assert args.stripe_key == "sk_test"
        assert args.profile == "default"

    def test_import_requires_file(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["import", "accounts"])


class TestMain:
    def test_no_command(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_errors_exit_non_zero(self, tmp_path, capsys):
        config = str(tmp_path / "config.json")
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", config, "doctor", "-p", "missing"])

        assert exc_info.value.code == 1
        assert "Error: Profile 'missing' not found" in capsys.readouterr().out

    def test_profiles_inspect(self, tmp_path, capsys):
        from bunny_cli.services.profile_store import ProfileStore

        config = tmp_path / "config.json"
        ProfileStore(config).save(Profile(name="default", base_url="https://a.bunny.com", client_id="id",
                                          client_secret="secret"))

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config), "profiles", "inspect"])

        out = capsys.readouterr().out
        assert exc_info.value.code == 0
        assert "client_secret: ********" in out
        assert "secret\n" not in out
