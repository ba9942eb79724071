"""Exceptions raised across the client layers."""

from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "요청을 처리하지 못했습니다."


class InquestError(Exception):
    """Base class for errors raised by this package."""


class TransportError(InquestError):
    """Network failure or a non-success response from the case server.

    ``message`` is the server-provided text when the response carried one,
    otherwise ``None``; ``str(exc)`` always yields something displayable.
    """

    def __init__(self, message: str | None = None, status: int | None = None) -> None:
        super().__init__(message or GENERIC_FAILURE_MESSAGE)
        self.message = message
        self.status = status


class AuthenticationError(TransportError):
    """Credentials were rejected and the single refresh did not recover them."""


class DomainRejectedError(TransportError):
    """The server refused the action (inactive session, no budget, bad location)."""


class SessionClosedError(InquestError):
    """A mutating action was attempted on a session already observed as finished."""


class ActionInProgressError(InquestError):
    """A mutating action was attempted while another one is still running."""


class ConfigurationError(InquestError):
    """Client configuration is missing or malformed."""
