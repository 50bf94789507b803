"""
Unit tests for the indexer command line.

Tests cover:
- Logging setup for both formats
- Argument parsing and dispatch through run()
- main() exit codes and JSON output against the in-memory ledger
"""

import asyncio
import json
import logging

import json_log_formatter
import pytest

import verum_index.main as cli
from verum_index import IndexerConfig, ObservabilityConfig, VerumIndexer


@pytest.fixture
def restore_logging():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def env(monkeypatch):
    for name in ("VERUM_NETWORK", "VERUM_API_URL", "LOG_FORMAT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def in_memory_indexer(ledger, env):
    """Route main() to the in-memory ledger instead of the HTTP API."""
    env.setattr(cli.VerumIndexer, "from_config", classmethod(lambda cls, config: cls(ledger, config)))
    return ledger


class TestSetupLogging:
    """Root logger configuration."""

    def test_json_format(self, restore_logging):
        """JSON format installs a single JSON handler at the configured level."""
        cli.setup_logging(IndexerConfig(observability=ObservabilityConfig(log_level="debug")))

        assert len(restore_logging.handlers) == 1
        assert isinstance(restore_logging.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert restore_logging.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_text_format(self, restore_logging):
        """Text format uses a plain formatter; unknown levels fall back to INFO."""
        cli.setup_logging(
            IndexerConfig(observability=ObservabilityConfig(log_level="chatty", log_format="text"))
        )

        formatter = restore_logging.handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
        assert "%(levelname)s" in formatter._fmt
        assert restore_logging.level == logging.INFO


class TestRun:
    """Dispatch of parsed commands."""

    def test_profile_command(self, ledger, builder, alice):
        """profile resolves the registered nickname."""
        ledger.add_payload(alice, builder.start("alice"))
        args = cli.build_parser().parse_args(["profile", alice])

        result = asyncio.run(cli.run(VerumIndexer(ledger, IndexerConfig()), args))

        assert result.success
        assert result.data.nickname == "alice"

    def test_feed_flags(self, ledger, builder, alice, bob):
        """Feed options come from the flags."""
        ledger.add_payload(alice, builder.post("first"))
        post = ledger.add_payload(alice, builder.post("second")).id
        ledger.add_payload(bob, builder.comment(post, "reply"))
        args = cli.build_parser().parse_args(["feed", "global", "--limit", "1", "--no-replies"])

        result = asyncio.run(cli.run(VerumIndexer(ledger, IndexerConfig()), args))

        assert [item.tx_id for item in result.data.items] == [post]
        assert result.data.has_more

    def test_user_feed_needs_address(self, ledger):
        """A user feed without an address is a usage error."""
        args = cli.build_parser().parse_args(["feed", "user"])

        with pytest.raises(ValueError, match="requires an address"):
            asyncio.run(cli.run(VerumIndexer(ledger, IndexerConfig()), args))


class TestMain:
    """End-to-end command line runs."""

    def test_success_prints_json(self, in_memory_indexer, builder, alice, capsys, restore_logging):
        """A found profile prints the result as JSON and exits 0."""
        in_memory_indexer.add_payload(alice, builder.start("alice"))

        with pytest.raises(SystemExit) as exc:
            cli.main(["profile", alice])

        assert exc.value.code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is True
        assert output["data"]["nickname"] == "alice"
        assert output["data"]["address"] == alice

    def test_failed_result_exits_one(self, in_memory_indexer, alice, capsys, restore_logging):
        """An unregistered address is a failed result."""
        with pytest.raises(SystemExit) as exc:
            cli.main(["profile", alice])

        assert exc.value.code == 1
        assert json.loads(capsys.readouterr().out)["success"] is False

    def test_usage_error_exits_two(self, in_memory_indexer, capsys, restore_logging):
        """Missing feed address is reported on stderr."""
        with pytest.raises(SystemExit) as exc:
            cli.main(["feed", "personal"])

        assert exc.value.code == 2
        assert "requires an address" in capsys.readouterr().err

    def test_bad_configuration_exits_two(self, in_memory_indexer, env, capsys, restore_logging):
        """Invalid environment stops before any query."""
        env.setenv("LOG_FORMAT", "xml")

        with pytest.raises(SystemExit) as exc:
            cli.main(["stats", "kaspa:" + "a" * 61])

        assert exc.value.code == 2
        captured = capsys.readouterr()
        assert "LOG_FORMAT" in captured.err
        assert captured.out == ""
