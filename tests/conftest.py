"""Shared fakes for the client core tests."""

from __future__ import annotations

import asyncio
import copy
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest

from inquest.domain.models import (
    AccusationResult,
    AskResult,
    GenerationAccepted,
    InvestigateResult,
    MoveResult,
    Session,
    SessionSummary,
    SourceSelection,
)
from inquest.errors import DomainRejectedError
from inquest.transport.stream import StreamEvent

MOVE_COST = 15

STORY = {
    "title": "서재의 밤",
    "suspects": [
        {
            "name": "Ada",
            "timeline": [
                {"time": "12:00", "location": "Library", "action": "reading"},
                {"time": "13:00", "location": "Hall", "action": "pacing"},
            ],
        },
        {"name": "Basil", "timeline": []},
        {
            "name": "Clara",
            "timeline": [
                {"time": "12:30", "location": "Garden", "action": "pruning"},
                {"time": "14:00", "location": "Library", "action": "searching"},
            ],
        },
    ],
}


def make_snapshot(**overrides: Any) -> dict[str, Any]:
    snapshot = {
        "id": 7,
        "publicId": "abc",
        "mode": "BASIC",
        "caseSourceType": "BASIC_TEMPLATE",
        "sourceRefId": 1,
        "status": "ACTIVE",
        "generatedStoryJson": json.dumps(STORY),
        "messages": [],
        "evidence": [],
        "currentLocation": None,
        "gameStartHour": 12,
        "gameEndHour": 18,
        "gameMinutesUsed": 0,
        "currentGameTime": "12:00",
        "questionLimit": 10,
        "questionsUsed": 0,
    }
    snapshot.update(overrides)
    return snapshot


class FakeSubscription:
    def __init__(self, on_event, on_transport_error) -> None:
        self._on_event = on_event
        self._on_transport_error = on_transport_error
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def emit(self, event: str, data: Any) -> None:
        """Deliver an event the way the live stream does (ignored once closed)."""
        if self._closed:
            return
        body = data if isinstance(data, str) else json.dumps(data)
        self._on_event(StreamEvent(event=event, data=body))

    def drop(self, exc: Exception | None = None) -> None:
        if self._on_transport_error is not None:
            self._on_transport_error(exc or ConnectionError("connection reset"))


class FakeCaseClient:
    """In-memory stand-in for the case server that records every call."""

    def __init__(self, snapshot: dict[str, Any] | None = None) -> None:
        self.sessions: dict[str, dict[str, Any]] = {}
        if snapshot is not None:
            self.sessions[snapshot["publicId"]] = snapshot
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.location_evidence: dict[str, list[dict[str, Any]]] = {}
        self.repeat_findings = False
        self.killer = "Ada"
        self.failures: dict[str, Exception] = {}
        self.subscriptions: list[FakeSubscription] = []
        self.summaries: list[dict[str, Any]] = []
        self.accept_gate: asyncio.Event | None = None
        self.action_gate: asyncio.Event | None = None
        self.accepted_id = "gen-1"
        self._next_id = 100

    def _fail(self, name: str) -> None:
        exc = self.failures.pop(name, None)
        if exc is not None:
            raise exc

    async def _pause(self) -> None:
        if self.action_gate is not None:
            await self.action_gate.wait()

    def _active(self, public_id: str) -> dict[str, Any]:
        session = self.sessions[public_id]
        if session["status"] != "ACTIVE":
            raise DomainRejectedError("진행 중인 세션이 아닙니다.", status=409)
        return session

    async def start_session(self, selection: SourceSelection) -> Session:
        self.calls.append(("start_session", (selection,)))
        self._fail("start_session")
        self._next_id += 1
        snapshot = make_snapshot(id=self._next_id, publicId=f"s-{self._next_id}")
        self.sessions[snapshot["publicId"]] = snapshot
        return Session.model_validate(copy.deepcopy(snapshot))

    async def start_session_async(self, selection: SourceSelection) -> GenerationAccepted:
        self.calls.append(("start_session_async", (selection,)))
        if self.accept_gate is not None:
            await self.accept_gate.wait()
        self._fail("start_session_async")
        return GenerationAccepted.model_validate({"publicId": self.accepted_id})

    async def list_sessions(self) -> list[SessionSummary]:
        self.calls.append(("list_sessions", ()))
        self._fail("list_sessions")
        return [SessionSummary.model_validate(item) for item in self.summaries]

    async def get_session(self, public_id: str) -> Session:
        self.calls.append(("get_session", (public_id,)))
        self._fail("get_session")
        return Session.model_validate(copy.deepcopy(self.sessions[public_id]))

    async def ask(self, public_id: str, question: str, suspect_name: str) -> AskResult:
        self.calls.append(("ask", (public_id, question, suspect_name)))
        self._fail("ask")
        session = self._active(public_id)
        if session["questionsUsed"] >= session["questionLimit"]:
            raise DomainRejectedError("질문 횟수를 모두 사용했습니다.", status=400)
        session["questionsUsed"] += 1
        session["gameMinutesUsed"] += 5
        session["messages"].append(
            {"id": len(session["messages"]) + 1, "role": "PLAYER", "content": question, "createdAt": None}
        )
        session["messages"].append(
            {"id": len(session["messages"]) + 1, "role": "SUSPECT", "content": "...", "createdAt": None}
        )
        return AskResult(answer="...", suspect_name=suspect_name)

    async def move(self, public_id: str, location: str) -> MoveResult:
        self.calls.append(("move", (public_id, location)))
        await self._pause()
        self._fail("move")
        session = self._active(public_id)
        session["gameMinutesUsed"] += MOVE_COST
        session["currentLocation"] = location
        return MoveResult(location=location, available_suspects=[])

    async def investigate(self, public_id: str) -> InvestigateResult:
        self.calls.append(("investigate", (public_id,)))
        self._fail("investigate")
        session = self._active(public_id)
        here = self.location_evidence.get(session["currentLocation"] or "", [])
        known = {item["id"] for item in session["evidence"]}
        fresh = [item for item in here if item["id"] not in known]
        session["evidence"].extend(copy.deepcopy(fresh))
        found = here if self.repeat_findings else fresh
        return InvestigateResult.model_validate({"evidenceFound": copy.deepcopy(found)})

    async def accuse(self, public_id: str, suspect_name: str) -> AccusationResult:
        self.calls.append(("accuse", (public_id, suspect_name)))
        await self._pause()
        self._fail("accuse")
        session = self._active(public_id)
        correct = suspect_name == self.killer
        session["status"] = "WON" if correct else "LOST"
        return AccusationResult(
            correct=correct,
            actual_killer=self.killer,
            explanation="The ink on the letter was still wet.",
            key_clues=["wet ink"],
            status=session["status"],
        )

    def open_generation_stream(self, on_event, on_transport_error=None) -> FakeSubscription:
        self.calls.append(("open_generation_stream", ()))
        subscription = FakeSubscription(on_event, on_transport_error)
        self.subscriptions.append(subscription)
        return subscription

    def called(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


@pytest.fixture
def fake_client() -> FakeCaseClient:
    return FakeCaseClient(make_snapshot())
