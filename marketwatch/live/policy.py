"""
Reconnect policy: exponential backoff with jitter and a cumulative
disconnect budget.

The budget is not reset by successful reconnects. It protects the
credential/IP from being banned for excessive reconnection churn, so once
it is exhausted the run is forfeit.
"""

from __future__ import annotations

import random
from typing import Callable, Optional

from marketwatch.live.config import ConnectionConfig
from marketwatch.live.errors import DisconnectBudgetExceeded


def backoff_delay_ms(
    attempt: int,
    base_delay_ms: int = 1000,
    max_delay_ms: int = 15_000,
    max_exponent: int = 5,
) -> int:
    """Base delay for a reconnect attempt (jitter excluded)."""
    return int(min(base_delay_ms * 2 ** min(attempt, max_exponent), max_delay_ms))


class ReconnectPolicy:
    """
    Computes reconnect delays and enforces the disconnect budget.

    Usage:
        policy = ReconnectPolicy(ConnectionConfig())
        if policy.is_forfeit(stats.disconnects):
            ...  # give up permanently
        stats.reconnect_attempts += 1
        delay_s = policy.next_delay_s(stats.reconnect_attempts)
    """

    def __init__(
        self,
        config: ConnectionConfig,
        rng: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        Args:
            config: Connection configuration holding backoff and budget values
            rng: Uniform [0, 1) source, defaults to random.random
        """
        self._config = config
        self._rng = rng or random.random

    @property
    def budget(self) -> int:
        """Maximum cumulative disconnects tolerated per run."""
        return self._config.max_disconnects

    def base_delay_ms(self, attempt: int) -> int:
        return backoff_delay_ms(
            attempt,
            base_delay_ms=self._config.base_delay_ms,
            max_delay_ms=self._config.max_delay_ms,
            max_exponent=self._config.max_exponent,
        )

    def jitter_ms(self) -> float:
        """Uniform jitter in [0, jitter_ms)."""
        return self._rng() * self._config.jitter_ms

    def next_delay_ms(self, attempt: int) -> float:
        """Total delay in milliseconds for the given (1-based) attempt."""
        return self.base_delay_ms(attempt) + self.jitter_ms()

    def next_delay_s(self, attempt: int) -> float:
        return self.next_delay_ms(attempt) / 1000.0

    def is_forfeit(self, disconnects: int) -> bool:
        """Whether the cumulative disconnect count has reached the budget."""
        return disconnects >= self._config.max_disconnects

    def check(self, disconnects: int) -> None:
        """
        Raises:
            DisconnectBudgetExceeded: If the budget is exhausted
        """
        if self.is_forfeit(disconnects):
            raise DisconnectBudgetExceeded(
                "PreProtection From Ban: disconnect budget exhausted",
                disconnects=disconnects,
                budget=self._config.max_disconnects,
                component="ReconnectPolicy",
            )
