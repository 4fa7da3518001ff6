"""
Tests for the CLI interface.
"""
import os
from datetime import datetime
from unittest.mock import patch, MagicMock

import pytest
import yaml
from typer.testing import CliRunner

from tts_player.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from tts_player.config.loader import OPENAI_PROFILE
from tts_player.core.errors import AuthenticationError, NetworkError, ValidationError
from tts_player.storage.models import AccountInfo, UsageRecord
from tts_player.storage.repository import UsageLedger

runner = CliRunner()


@pytest.fixture
def mock_pipeline():
    """Patch pipeline construction with a mock pipeline."""
    with patch('tts_player.cli.main.build_pipeline') as mock_build:
        pipeline = MagicMock()
        pipeline.profile = OPENAI_PROFILE
        pipeline.estimate_cost.return_value = 0.0004
        mock_build.return_value = pipeline
        yield pipeline


@pytest.fixture
def ledger(tmp_path):
    """Patch the shared ledger with one in a temporary directory."""
    usage_ledger = UsageLedger(str(tmp_path / "usage.db"), "alloy")
    with patch('tts_player.cli.main.get_ledger', return_value=usage_ledger):
        yield usage_ledger


class TestSpeak:
    """Test the speak command."""

    def test_speak_writes_audio(self, mock_pipeline, tmp_path):
        """Generated audio is written to the output path."""
        mock_pipeline.generate_with_model.return_value = b"\x01\x02\x03"
        output = tmp_path / "out.mp3"

        result = runner.invoke(app, ["speak", "Hello world", "-o", str(output)])

        assert result.exit_code == EXIT_CODE_PASS
        assert output.read_bytes() == b"\x01\x02\x03"
        assert "Wrote 3 bytes" in result.output
        mock_pipeline.generate_with_model.assert_called_once_with("Hello world", "alloy", "tts-1-hd")
        mock_pipeline.close.assert_called_once()

    def test_speak_from_file_with_voice(self, mock_pipeline, tmp_path):
        """Text can be read from a file and the voice chosen."""
        mock_pipeline.generate_with_model.return_value = b"audio"
        source = tmp_path / "chapter.txt"
        source.write_text("Once upon a time.", encoding="utf-8")

        result = runner.invoke(app, [
            "speak", "--file", str(source), "--voice", "nova",
            "--model", "tts-1", "-o", str(tmp_path / "out.mp3"),
        ])

        assert result.exit_code == EXIT_CODE_PASS
        mock_pipeline.generate_with_model.assert_called_once_with("Once upon a time.", "nova", "tts-1")

    def test_speak_without_text(self, mock_pipeline):
        """Missing text and file is an error."""
        result = runner.invoke(app, ["speak"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "provide TEXT or --file" in result.output
        mock_pipeline.generate_with_model.assert_not_called()

    def test_speak_generation_error(self, mock_pipeline, tmp_path):
        """Pipeline errors are reported and exit with failure."""
        mock_pipeline.generate_with_model.side_effect = ValidationError("Text cannot be empty")
        output = tmp_path / "out.mp3"

        result = runner.invoke(app, ["speak", " ", "-o", str(output)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Text cannot be empty" in result.output
        assert not output.exists()
        mock_pipeline.close.assert_called_once()

    def test_speak_missing_api_key(self, tmp_path):
        """Missing credentials fail before any request."""
        with patch('tts_player.cli.main.build_pipeline',
                   side_effect=AuthenticationError("OPENAI_API_KEY environment variable not set")):
            result = runner.invoke(app, ["speak", "Hello", "-o", str(tmp_path / "out.mp3")])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "OPENAI_API_KEY" in result.output


class TestUsageCommands:
    """Test ledger-backed commands."""

    def test_stats(self, ledger):
        """Stats show totals and the most used voice."""
        for voice in ("nova", "nova", "echo"):
            ledger.record(UsageRecord.for_attempt("Hello world", voice, "tts-1-hd", success=True))

        result = runner.invoke(app, ["stats", "--days", "7"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage over the last 7 days" in result.output
        assert "Characters: 33" in result.output
        assert "Most used voice: nova" in result.output

    def test_stats_empty(self, ledger):
        """An empty ledger reports the default voice."""
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Most used voice: alloy" in result.output

    def test_history_empty(self, ledger):
        """An empty ledger prints a notice."""
        result = runner.invoke(app, ["history"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage recorded yet." in result.output

    def test_history_lists_records(self, ledger):
        """Records are shown in a table."""
        ledger.record(UsageRecord.for_attempt("Hi", "shimmer", "tts-1", success=True))

        result = runner.invoke(app, ["history", "--limit", "5"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "shimmer" in result.output

    def test_purge(self, ledger):
        """Purge reports how many records were removed."""
        ledger.record(UsageRecord.for_attempt(
            "old", "alloy", "tts-1", success=True, timestamp=datetime(2000, 1, 1)
        ))

        result = runner.invoke(app, ["purge", "--days", "30"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Removed 1 records" in result.output
        assert ledger.list() == []

    def test_purge_negative_days(self, ledger):
        """Negative retention is rejected."""
        result = runner.invoke(app, ["purge", "--days", "-1"])

        assert result.exit_code == EXIT_CODE_FAIL


class TestAccount:
    """Test the account command."""

    def test_pay_per_use(self, mock_pipeline):
        """Unlimited accounts show usage without a limit."""
        now = datetime.now()
        mock_pipeline.get_account_info.return_value = AccountInfo(
            subscription_tier="Pay-per-use",
            character_limit=-1,
            character_used=1234,
            characters_remaining=-1,
            reset_date=now,
            last_updated=now,
        )

        result = runner.invoke(app, ["account"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Pay-per-use" in result.output
        assert "Limit: unlimited" in result.output

    def test_subscription(self, mock_pipeline):
        """Limited accounts show remaining characters."""
        mock_pipeline.get_account_info.return_value = AccountInfo(
            subscription_tier="creator",
            character_limit=100000,
            character_used=2500,
            characters_remaining=97500,
            reset_date=datetime(2024, 3, 1),
            last_updated=datetime(2024, 2, 1),
        )

        result = runner.invoke(app, ["account"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Remaining: 97,500" in result.output

    def test_account_error(self, mock_pipeline):
        """Provider errors exit with failure."""
        mock_pipeline.get_account_info.side_effect = NetworkError("down")

        result = runner.invoke(app, ["account"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Network error: down" in result.output


class TestGlobalOptions:
    """Test configuration handling and informational commands."""

    def test_voices_lists_default(self):
        """Voices are listed with the default marked."""
        result = runner.invoke(app, ["voices"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "alloy (default)" in result.output
        assert "shimmer" in result.output

    def test_voices_with_config(self, tmp_path):
        """The configured provider's voices are listed."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"provider": "elevenlabs"}), encoding="utf-8")

        result = runner.invoke(app, ["--config", str(config_path), "voices"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "rachel (default)" in result.output

    def test_missing_config(self):
        """A missing config file is a configuration error."""
        result = runner.invoke(app, ["--config", "does-not-exist.yaml", "voices"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Configuration error" in result.output

    def test_invalid_config(self, tmp_path):
        """Invalid config values are reported."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"pacing_delay": -5}), encoding="utf-8")

        result = runner.invoke(app, ["--config", str(config_path), "voices"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "pacing_delay cannot be negative" in result.output

    def test_init_creates_database(self, tmp_path):
        """init creates the configured database."""
        db_path = tmp_path / "data" / "usage.db"
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"database": str(db_path)}), encoding="utf-8")

        result = runner.invoke(app, ["--config", str(config_path), "init"])

        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(db_path)
