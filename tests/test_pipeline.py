import asyncio
import logging
import pytest
from decimal import Decimal
from unittest.mock import patch

import structlog

import main
from config import Settings, get_settings_for_environment
from config import TestingSettings as QuietSettings
from logging_config import configure_logging
from pipeline import _CLOSED, consume, run_pipeline
from repositories import History, Ledger
from services import TransactionService

from conftest import balances, make_tx

SAMPLE = (
    "type, client, tx, amount\n"
    "deposit, 1, 1, 1.0\n"
    "deposit, 2, 2, 2.0\n"
    "deposit, 1, 3, 2.0\n"
    "withdrawal, 1, 4, 1.5\n"
    "withdrawal, 2, 5, 3.0\n"
    "dispute, 1, 1,\n"
    "bogus, 1, 9, 1.0\n"
    "resolve, 1, 1,\n"
    "dispute, 2, 2,\n"
    "chargeback, 2, 2,\n"
    "deposit, 2, 6, 10.0\n"
)


class TestPipeline:
    """Test the producer/consumer hand-off."""

    async def test_applies_stream(self, write_csv, service, ledger):
        summary = await run_pipeline(write_csv(SAMPLE), service, QuietSettings())

        assert balances(ledger.get(1)) == (Decimal("1.5"), Decimal("0"), Decimal("1.5"), False)
        assert balances(ledger.get(2)) == (Decimal("2"), Decimal("0"), Decimal("2"), True)
        assert summary.applied == 8
        assert summary.failed == 2
        assert summary.rejected_records == 1
        assert summary.accounts_count == 2

    @pytest.mark.parametrize("maxsize", [0, 1, 5])
    async def test_queue_size_does_not_change_result(self, write_csv, maxsize):
        ledger = Ledger()
        await run_pipeline(write_csv(SAMPLE), TransactionService(History(), ledger), QuietSettings(queue_maxsize=maxsize))
        assert balances(ledger.get(1)) == (Decimal("1.5"), Decimal("0"), Decimal("1.5"), False)

    async def test_missing_file(self, tmp_path, service):
        with pytest.raises(FileNotFoundError):
            await run_pipeline(str(tmp_path / "missing.csv"), service, QuietSettings())

    async def test_consumer_applies_in_order(self, service, ledger):
        queue = asyncio.Queue()
        for transaction in (
            make_tx("deposit", tx=1, amount=5),
            make_tx("withdrawal", tx=2, amount=5),
            make_tx("withdrawal", tx=3, amount=1),
        ):
            queue.put_nowait(transaction)
        queue.put_nowait(_CLOSED)

        handled = await consume(queue, service)

        assert handled == 3
        assert service.summary.failed == 1
        assert ledger.get(1).total == Decimal("0")


class TestMain:
    """Test the command line entry point."""

    @patch("main.configure_logging")
    def test_prints_accounts(self, mock_configure, write_csv, capsys):
        code = main.main([write_csv(SAMPLE)])

        assert code == 0
        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "1,1.5000,0.0000,1.5000,false\n"
            "2,2.0000,0.0000,2.0000,true\n"
        )
        mock_configure.assert_called_once()

    @patch("main.configure_logging")
    def test_missing_file_exits_non_zero(self, mock_configure, tmp_path, capsys, logs):
        code = main.main([str(tmp_path / "missing.csv")])

        assert code == 1
        assert capsys.readouterr().out == ""
        assert any(entry["event"] == "Cannot read transactions" for entry in logs)

    @patch("main.configure_logging")
    def test_out_of_range_amount_does_not_stop_run(self, mock_configure, write_csv, capsys, logs):
        code = main.main([write_csv("type,client,tx,amount\ndeposit,1,1,1e30\ndeposit,2,2,5\n")])

        assert code == 0
        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "2,5.0000,0.0000,5.0000,false\n"
        )
        assert any(entry["event"] == "Failed to decode record" for entry in logs)

    def test_requires_path(self):
        with pytest.raises(SystemExit) as exc:
            main.main([])
        assert exc.value.code == 2

    @patch("main.configure_logging")
    def test_log_overrides(self, mock_configure, write_csv):
        main.main([write_csv("type,client,tx,amount\n"), "--log-level", "debug", "--log-format", "text"])
        mock_configure.assert_called_once_with("debug", "text")

    @patch("main.configure_logging")
    def test_env_selects_preset(self, mock_configure, write_csv):
        main.main([write_csv("type,client,tx,amount\n"), "--env", "development"])
        mock_configure.assert_called_once_with("DEBUG", "text")

    @patch("main.configure_logging")
    def test_env_from_environment(self, mock_configure, write_csv, monkeypatch):
        monkeypatch.setenv("LEDGER_ENV", "testing")
        main.main([write_csv("type,client,tx,amount\n")])
        mock_configure.assert_called_once_with("WARNING", "text")

    def test_rejects_unknown_env(self, write_csv):
        with pytest.raises(SystemExit) as exc:
            main.main([write_csv("type,client,tx,amount\n"), "--env", "staging"])
        assert exc.value.code == 2


class TestSettings:
    """Test configuration presets."""

    def test_defaults(self):
        settings = Settings()
        assert settings.amount_precision == 4
        assert settings.queue_maxsize == 1
        assert settings.log_format in ("json", "text")

    def test_environment_presets(self):
        assert get_settings_for_environment("testing").log_level == "WARNING"
        assert get_settings_for_environment("development").log_format == "text"
        assert type(get_settings_for_environment("unknown")) is Settings

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_AMOUNT_PRECISION", "2")
        assert Settings().amount_precision == 2

    def test_rejects_unknown_log_format(self):
        with pytest.raises(ValueError):
            Settings(log_format="xml")


class TestLogging:
    """Test structlog configuration."""

    @pytest.mark.parametrize("fmt", ["json", "text"])
    def test_configure_logging(self, fmt):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        try:
            configure_logging("debug", fmt)
            assert structlog.is_configured()
            assert isinstance(structlog.get_config()["logger_factory"], structlog.stdlib.LoggerFactory)
            assert root.level == logging.DEBUG
        finally:
            structlog.reset_defaults()
            root.handlers[:] = handlers
            root.setLevel(level)
