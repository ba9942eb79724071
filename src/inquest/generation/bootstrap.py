"""Reattach the generation controller to a job left running by an earlier visit."""

from __future__ import annotations

import logging
from typing import Protocol

from inquest.domain.enums import SessionStatus
from inquest.domain.models import SessionSummary
from inquest.errors import TransportError
from inquest.generation.controller import GenerationJobController
from inquest.util.ids import PublicId

logger = logging.getLogger(__name__)


class SessionLister(Protocol):
    async def list_sessions(self) -> list[SessionSummary]: ...


async def resume_generation(
    controller: GenerationJobController,
    lister: SessionLister,
) -> PublicId | None:
    try:
        summaries = await lister.list_sessions()
    except TransportError as exc:
        logger.warning("Could not list sessions to resume generation: %s", exc)
        return None
    for summary in summaries:
        if summary.status == SessionStatus.GENERATING:
            logger.info("Resuming generation for session %s", summary.public_id)
            controller.restore(summary.public_id)
            return summary.public_id
    return None
