"""ConfigProvider Port Interface.

Contract: Retrieve configuration values by key.
"""

from __future__ import annotations

from typing import Optional, Protocol


class ConfigProvider(Protocol):
    def get(self, key: str, default: Optional[str] = None) -> Optional[str]: ...

    """
    Fetch a raw configuration value using a logical key. It returns the
    string associated with that key in the configuration source
    (e.g., environment variables), or ``default`` when it is not set.

    Values are resolved once at start-up; the watcher does not reload them.
    """
