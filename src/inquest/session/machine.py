"""Client-side state machine for one investigation."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator, Callable, Protocol

from inquest.domain import rules
from inquest.domain.models import (
    AccusationResult,
    AskResult,
    EvidenceItem,
    InvestigateResult,
    MoveResult,
    Session,
    SourceSelection,
)
from inquest.errors import ActionInProgressError, DomainRejectedError, TransportError
from inquest.topology.resolver import LocationGraph, SuspectProfile, build_location_graph
from inquest.util.ids import PublicId, require_public_id

logger = logging.getLogger(__name__)

Listener = Callable[[Session | None], None]


class SessionBackend(Protocol):
    async def start_session(self, selection: SourceSelection) -> Session: ...

    async def get_session(self, public_id: PublicId) -> Session: ...

    async def ask(self, public_id: PublicId, question: str, suspect_name: str) -> AskResult: ...

    async def move(self, public_id: PublicId, location: str) -> MoveResult: ...

    async def investigate(self, public_id: PublicId) -> InvestigateResult: ...

    async def accuse(self, public_id: PublicId, suspect_name: str) -> AccusationResult: ...


class SessionStateMachine:
    """Holds the cached snapshot and runs every action as mutate-then-refetch.

    The snapshot is only ever replaced by one fetched from the server; nothing
    is merged or predicted locally.
    """

    def __init__(self, backend: SessionBackend) -> None:
        self._backend = backend
        self._current: Session | None = None
        self._result: AccusationResult | None = None
        self._result_id: PublicId | None = None
        self._busy = False
        self._listeners: list[Listener] = []
        self._topology: LocationGraph | None = None
        self._topology_source: Any = None

    @property
    def current(self) -> Session | None:
        return self._current

    @property
    def result(self) -> AccusationResult | None:
        return self._result

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def topology(self) -> LocationGraph:
        payload = self._current.narrative_payload if self._current else None
        if self._topology is None or self._topology_source is not payload:
            self._topology = build_location_graph(payload)
            self._topology_source = payload
        return self._topology

    def locations(self) -> list[str]:
        return sorted(self.topology.locations)

    def suspects_here(self) -> list[SuspectProfile]:
        location = self._current.current_location if self._current else None
        return self.topology.suspects_at(location)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def start(self, selection: SourceSelection) -> Session:
        session = await self._backend.start_session(selection)
        self._clear_result()
        self._replace(session)
        return session

    async def load(self, public_id: str) -> Session:
        pid = require_public_id(public_id)
        session = await self._backend.get_session(pid)
        if self._result_id != session.public_id:
            self._clear_result()
        self._replace(session)
        return session

    async def ask(self, public_id: str, question: str, suspect_name: str) -> AskResult:
        async with self._mutation(public_id) as pid:
            reply = await self._backend.ask(pid, question, suspect_name)
            await self._refresh(pid)
        return reply

    async def move(self, public_id: str, location: str) -> MoveResult:
        async with self._mutation(public_id) as pid:
            moved = await self._backend.move(pid, location)
            await self._refresh(pid)
        return moved

    async def investigate(self, public_id: str) -> list[EvidenceItem]:
        """Search the current location; returns only evidence not seen before this call."""
        async with self._mutation(public_id) as pid:
            known = self._current.evidence if self._current and self._current.public_id == pid else []
            found = await self._backend.investigate(pid)
            fresh = rules.newly_found(known, found.evidence_found)
            await self._refresh(pid)
        return fresh

    async def accuse(self, public_id: str, suspect_name: str) -> AccusationResult:
        async with self._mutation(public_id) as pid:
            result = await self._backend.accuse(pid, suspect_name)
            self._result = result
            self._result_id = pid
            logger.info("Accusation on %s: correct=%s status=%s", pid, result.correct, result.status)
            await self._refresh(pid)
        return result

    @asynccontextmanager
    async def _mutation(self, public_id: str) -> AsyncIterator[PublicId]:
        pid = require_public_id(public_id)
        if self._busy:
            raise ActionInProgressError("Another action is still in progress")
        verdict = self._result if self._result_id == pid else None
        rules.ensure_active(self._current, pid, verdict)
        self._busy = True
        try:
            yield pid
        except DomainRejectedError:
            # The rejection may be the server noticing the session ended.
            try:
                await self._refresh(pid)
            except TransportError as exc:
                logger.warning("Could not refresh %s after a rejected action: %s", pid, exc)
            raise
        finally:
            self._busy = False

    def _clear_result(self) -> None:
        self._result = None
        self._result_id = None

    async def _refresh(self, pid: PublicId) -> None:
        self._replace(await self._backend.get_session(pid))

    def _replace(self, session: Session) -> None:
        for problem in rules.snapshot_regressions(self._current, session):
            logger.warning("Session %s snapshot regressed: %s", session.public_id, problem)
        self._current = session
        for listener in list(self._listeners):
            listener(session)
