"""Telemetry Port Interface.

Contract: Log structured events. Sinks may raise OSError on I/O failure; callers
treat that as non-fatal. Implementations must not mutate watcher state.
"""
from __future__ import annotations
from typing import Protocol, Any

class Telemetry(Protocol):
    def log(self, event: str, **fields: Any) -> None: ...
