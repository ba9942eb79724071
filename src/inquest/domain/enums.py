"""Shared enums for wire payloads and client state."""

from __future__ import annotations

from enum import StrEnum


class SessionStatus(StrEnum):
    GENERATING = "GENERATING"
    ACTIVE = "ACTIVE"
    WON = "WON"
    LOST = "LOST"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.WON, SessionStatus.LOST, SessionStatus.CLOSED})


class MessageRole(StrEnum):
    PLAYER = "PLAYER"
    SYSTEM = "SYSTEM"
    SUSPECT = "SUSPECT"


class GameMode(StrEnum):
    BASIC = "BASIC"
    AI = "AI"
    USER = "USER"


class CaseSourceType(StrEnum):
    BASIC_TEMPLATE = "BASIC_TEMPLATE"
    USER_PUBLISHED = "USER_PUBLISHED"
    AI_PROMPT = "AI_PROMPT"


class GenerationStatus(StrEnum):
    IDLE = "idle"
    DRAFTING_STORY = "drafting-story"
    RENDERING_IMAGES = "rendering-images"
    COMPLETE = "complete"
    FAILED = "failed"


# Stage tags carried by progress events. The short forms are what older
# generator builds emit.
STAGE_TAGS = {
    "drafting-story": GenerationStatus.DRAFTING_STORY,
    "story": GenerationStatus.DRAFTING_STORY,
    "rendering-images": GenerationStatus.RENDERING_IMAGES,
    "images": GenerationStatus.RENDERING_IMAGES,
}
