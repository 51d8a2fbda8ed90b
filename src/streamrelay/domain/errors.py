"""Domain-specific errors.

Errors raised before the first byte of a response is written are mapped to
JSON error responses in the HTTP layer. Errors after that point are reported
in-band as a terminal ``error`` event.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class RelayDomainError(Exception):
    """Base class for all domain errors."""


@dataclass(frozen=True)
class DomainErrorInfo:
    code: str
    message: str
    detail: Optional[str] = None


class ValidationError(RelayDomainError):
    """Raised when a generation request is rejected before reaching the network."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = DomainErrorInfo(code="INVALID_INPUT", message=message, detail=detail)


class ConfigurationError(RelayDomainError):
    """Raised when the upstream credential (or other required config) is missing."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = DomainErrorInfo(code="CONFIGURATION_ERROR", message=message, detail=detail)


class UpstreamConnectError(RelayDomainError):
    """Upstream refused the call or answered non-2xx before streaming began.

    ``status_code`` is None when no HTTP response was received at all.
    """

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.info = DomainErrorInfo(code="UPSTREAM_CONNECT_ERROR", message=message, detail=detail)


class UpstreamStreamError(RelayDomainError):
    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = DomainErrorInfo(code="UPSTREAM_STREAM_ERROR", message=message, detail=detail)


class MalformedFramePayload(RelayDomainError):
    """A single upstream record could not be parsed. Recovered locally."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = DomainErrorInfo(code="MALFORMED_FRAME", message=message, detail=detail)
