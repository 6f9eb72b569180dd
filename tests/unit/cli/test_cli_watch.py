from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from marketwatch.cli import watch
from marketwatch.cli.watch import build_environment, build_parser, parse_overrides
from marketwatch.live.errors import ConfigurationError


def test_build_parser():
    p = build_parser()
    assert p.prog == "marketwatch"
    test = p.parse_args(
        [
            "TIME_UNIT=microsecond",
            "--symbols",
            "BTCUSDT",
            "ETHUSDT",
            "--max-disconnects",
            "3",
            "--status-jsonl",
            "out/status.jsonl",
            "--no-table",
        ]
    )
    assert test.overrides == ["TIME_UNIT=microsecond"]
    assert test.symbols == ["BTCUSDT", "ETHUSDT"]
    assert test.max_disconnects == 3
    assert test.status_jsonl == Path("out/status.jsonl")
    assert test.no_table is True
    assert test.hard_reset_interval is None


def test_parse_overrides():
    assert parse_overrides(["SYMBOLS=BTCUSDT,ETHUSDT", "DISPLAY_FULL=0"]) == {
        "SYMBOLS": "BTCUSDT,ETHUSDT",
        "DISPLAY_FULL": "0",
    }
    # Only the first "=" separates key from value
    assert parse_overrides(["STREAM_ENDPOINT=wss://x?a=b"]) == {"STREAM_ENDPOINT": "wss://x?a=b"}


@pytest.mark.parametrize("pair", ["SYMBOLS", "=value"])
def test_parse_overrides_rejects_malformed(pair):
    with pytest.raises(ConfigurationError):
        parse_overrides([pair])


def test_build_environment_precedence():
    """Flags beat KEY=value overrides, which beat the base environment."""
    args = build_parser().parse_args(
        ["SYMBOLS=XRPUSDT", "MAX_STREAMS=100", "--symbols", "btcusdt,ethusdt", "solusdt"]
    )

    env = build_environment(args, base={"SYMBOLS": "BNBUSDT", "TIME_UNIT": "microsecond"})

    assert env["SYMBOLS"] == "btcusdt,ethusdt,solusdt"
    assert env["MAX_STREAMS"] == "100"
    assert env["TIME_UNIT"] == "microsecond"
    assert "DISPLAY_FULL" not in env


def test_build_environment_flags():
    args = build_parser().parse_args(
        ["--hard-reset-interval", "60", "--status-interval", "5", "--no-table"]
    )

    env = build_environment(args, base={})

    assert env == {
        "HARD_RESET_INTERVAL_S": "60.0",
        "STATUS_INTERVAL_S": "5.0",
        "DISPLAY_FULL": "0",
    }


def test_main_rejects_invalid_configuration(monkeypatch, capsys):
    monkeypatch.setenv("MAX_DISCONNECTS", "zero")

    assert watch.main([]) == 2
    assert "Invalid configuration" in capsys.readouterr().err


def test_main_returns_watcher_exit_code(monkeypatch):
    monkeypatch.setattr(watch, "run", AsyncMock(return_value=1))

    assert watch.main(["SYMBOLS=BTCUSDT"]) == 1


def test_main_maps_no_exit_request_to_zero(monkeypatch):
    monkeypatch.setattr(watch, "run", AsyncMock(return_value=None))

    assert watch.main([]) == 0
