"""
Snapshot cache: latest ticker values per symbol, last write wins.
"""

from __future__ import annotations

from typing import Iterator, Optional

from marketwatch.live.types import TickerSnapshot


class SnapshotCache:
    """
    Mapping of symbol to the most recent TickerSnapshot.

    Keys are stored as received on the wire (venue symbols are upper-case);
    lookups are case-insensitive. Entries are never evicted during a run.
    """

    def __init__(self) -> None:
        self._entries: dict[str, TickerSnapshot] = {}

    def update(self, snapshot: TickerSnapshot) -> None:
        """Store a snapshot, replacing any previous value for the symbol."""
        self._entries[snapshot.symbol.upper()] = snapshot

    def get(self, symbol: str) -> Optional[TickerSnapshot]:
        """Latest snapshot for a symbol, or None if never seen."""
        return self._entries.get(symbol.upper())

    def list_all(self) -> list[TickerSnapshot]:
        """All snapshots, sorted by symbol."""
        return [self._entries[k] for k in sorted(self._entries)]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and symbol.upper() in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))
