"""
Unit tests for SnapshotCache.
"""

from decimal import Decimal

from marketwatch.live.cache import SnapshotCache
from marketwatch.live.types import TickerSnapshot


def _snapshot(symbol: str, close: str) -> TickerSnapshot:
    return TickerSnapshot(
        symbol=symbol,
        close=Decimal(close),
        open=Decimal("1.0"),
        high=Decimal("2.0"),
        low=Decimal("0.5"),
        base_volume=Decimal("10.0"),
        quote_volume=Decimal("20.0"),
    )


class TestSnapshotCache:
    """Tests for SnapshotCache."""

    def test_empty(self) -> None:
        cache = SnapshotCache()

        assert len(cache) == 0
        assert cache.get("BTCUSDT") is None
        assert cache.list_all() == []

    def test_last_write_wins(self) -> None:
        """Test that a later snapshot replaces an earlier one."""
        cache = SnapshotCache()

        cache.update(_snapshot("BTCUSDT", "100.0"))
        cache.update(_snapshot("BTCUSDT", "101.0"))

        assert len(cache) == 1
        assert cache.get("BTCUSDT").close == 101.0

    def test_lookup_is_case_insensitive(self) -> None:
        cache = SnapshotCache()
        cache.update(_snapshot("ETHUSDT", "5.0"))

        assert cache.get("ethusdt") is not None
        assert "ethusdt" in cache
        assert "BNBUSDT" not in cache
        assert 42 not in cache

    def test_list_all_sorted_by_symbol(self) -> None:
        cache = SnapshotCache()
        for symbol in ("SOLUSDT", "BTCUSDT", "ETHUSDT"):
            cache.update(_snapshot(symbol, "1.0"))

        assert [s.symbol for s in cache.list_all()] == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
        assert list(cache) == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
