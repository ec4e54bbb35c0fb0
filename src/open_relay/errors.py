"""Exception types raised by Open Relay."""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base class for all Open Relay errors."""


class ConfigError(RelayError):
    """Invalid or inconsistent configuration."""


class ProviderError(RelayError):
    """The provider endpoint rejected a request or failed mid-stream.

    ``status_code`` is the HTTP status when one is known (0 otherwise) and
    ``body`` is the decoded error payload, if the provider sent one.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class RateLimitError(ProviderError):
    """HTTP 429 from the provider."""


class RunCancelled(RelayError):
    """Raised internally when a run observes its cancellation flag."""
