"""Investigation session state."""

from inquest.session.machine import SessionBackend, SessionStateMachine

__all__ = ["SessionBackend", "SessionStateMachine"]
