from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from marketwatch.ports.config_provider import ConfigProvider

_LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, str] = {
    "symbols": "SYMBOLS",
    "time_unit": "TIME_UNIT",
    "display_full": "DISPLAY_FULL",
    "max_streams": "MAX_STREAMS",
    "aggregate_threshold": "AGGREGATE_THRESHOLD",
    "endpoint": "STREAM_ENDPOINT",
    "connect_timeout_s": "CONNECT_TIMEOUT_S",
    "base_delay_ms": "RECONNECT_BASE_DELAY_MS",
    "max_delay_ms": "RECONNECT_MAX_DELAY_MS",
    "max_exponent": "RECONNECT_MAX_EXPONENT",
    "jitter_ms": "RECONNECT_JITTER_MS",
    "max_disconnects": "MAX_DISCONNECTS",
    "hard_reset_interval_s": "HARD_RESET_INTERVAL_S",
    "status_interval_s": "STATUS_INTERVAL_S",
    "health_check_interval_s": "HEALTH_CHECK_INTERVAL_S",
    "unsolicited_ping_after_s": "UNSOLICITED_PING_AFTER_S",
    "grace_no_ping_s": "GRACE_NO_PING_S",
    "expected_ping_interval_s": "EXPECTED_PING_INTERVAL_S",
    "status_jsonl": "STATUS_JSONL",
    "log_level": "LOG_LEVEL",
}


class UnknownSettingError(KeyError):
    """
    Raised when a logical setting name is not part of the allow-list.
    """

    def __init__(self, setting_name: str) -> None:
        super().__init__(setting_name)
        self.setting_name = setting_name

    def __str__(self) -> str:
        return f"Setting '{self.setting_name}' is not recognised"


class EnvSettingsProvider(ConfigProvider):
    def __init__(
        self,
        prefix: str = "",
        allowed: dict[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """
        Configure lookup rules for environment-backed watcher settings.

        ``prefix`` is prepended to every variable name; the default empty prefix
        reads plain names such as ``SYMBOLS`` and ``TIME_UNIT``.
        """

        self._prefix = prefix
        # logical setting names -> environment variable suffixes
        base_allowed = dict(DEFAULT_SETTINGS)
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Resolve a logical setting name to its environment value, or ``default``."""

        if key not in self._allowed:
            raise UnknownSettingError(key)

        env_var = f"{self._prefix}{self._allowed[key]}"
        value = self._environ.get(env_var)
        if value is None or value.strip() == "":
            return default

        _LOGGER.debug(
            "setting_resolved",
            extra={
                "event": "setting_resolved",
                "setting_name": key,
                "source": "env",
            },
        )
        return value
