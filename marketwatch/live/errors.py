"""
Custom exceptions for the live market watcher.

Exception hierarchy:
- LiveFeedError (base)
  - ConnectionError: WebSocket connection issues
  - MessageParseError: Invalid/malformed frames (never fatal)
  - ConfigurationError: Invalid configuration
  - InvalidTransitionError: Session state machine misuse
  - DisconnectBudgetExceeded: Cumulative disconnect budget exhausted
"""

from __future__ import annotations

from typing import Any, Optional


class LiveFeedError(Exception):
    """Base exception for all live feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConnectionError(LiveFeedError):
    """Raised when WebSocket connection fails or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, component=component, details=details)


class MessageParseError(LiveFeedError):
    """Raised when an inbound frame cannot be decoded."""

    def __init__(
        self,
        message: str,
        *,
        raw_data: Optional[str] = None,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.raw_data = raw_data
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        # Don't include raw_data in details to avoid log spam
        super().__init__(message, component=component, details=details)


class ConfigurationError(LiveFeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class InvalidTransitionError(LiveFeedError):
    """Raised when a session event is not valid in the current state."""

    def __init__(
        self,
        message: str,
        *,
        state: Optional[str] = None,
        event: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.state = state
        self.event = event
        details = details or {}
        if state:
            details["state"] = state
        if event:
            details["event"] = event
        super().__init__(message, component=component, details=details)


class DisconnectBudgetExceeded(LiveFeedError):
    """Raised (or recorded) once cumulative disconnects reach the budget."""

    def __init__(
        self,
        message: str,
        *,
        disconnects: int = 0,
        budget: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.disconnects = disconnects
        self.budget = budget
        details = details or {}
        details["disconnects"] = disconnects
        details["budget"] = budget
        super().__init__(message, component=component, details=details)
