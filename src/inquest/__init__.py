"""Client core for timed murder-mystery investigations."""

from inquest.generation.controller import GenerationJobController
from inquest.session.machine import SessionStateMachine
from inquest.transport.client import CaseClient

__all__ = ["CaseClient", "GenerationJobController", "SessionStateMachine"]
