"""Invariant checks for cached session snapshots."""

from __future__ import annotations

from typing import Iterable

from inquest.domain.models import AccusationResult, EvidenceItem, Session, unique_evidence
from inquest.errors import SessionClosedError


def ensure_active(
    session: Session | None,
    public_id: str,
    verdict: AccusationResult | None = None,
) -> None:
    """Refuse to act on a session already seen to be over.

    ``verdict`` is the accusation result received for ``public_id``; it counts
    as a terminal observation even when the snapshot refresh after it failed.
    """
    if verdict is not None and verdict.status.is_terminal:
        raise SessionClosedError(f"Session {public_id} is already {verdict.status.value}")
    if session is None or session.public_id != public_id:
        return
    if not session.is_active:
        raise SessionClosedError(f"Session {public_id} is already {session.status.value}")


def newly_found(known: Iterable[EvidenceItem], found: Iterable[EvidenceItem]) -> list[EvidenceItem]:
    known_ids = {item.id for item in known}
    return [item for item in unique_evidence(list(found)) if item.id not in known_ids]


def snapshot_regressions(previous: Session | None, fresh: Session) -> list[str]:
    """Describe ways ``fresh`` moved backwards relative to ``previous``."""
    if previous is None or previous.public_id != fresh.public_id:
        return []
    problems: list[str] = []
    if fresh.game_minutes_used < previous.game_minutes_used:
        problems.append(
            f"minutes used dropped from {previous.game_minutes_used} to {fresh.game_minutes_used}"
        )
    missing = previous.evidence_ids() - fresh.evidence_ids()
    if missing:
        problems.append(f"evidence disappeared: {sorted(map(str, missing))}")
    if previous.status.is_terminal and fresh.status != previous.status:
        problems.append(f"terminal status changed from {previous.status} to {fresh.status}")
    return problems
