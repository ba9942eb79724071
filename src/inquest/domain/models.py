"""Domain models for server snapshots and client state."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from inquest.domain.enums import (
    CaseSourceType,
    GameMode,
    GenerationStatus,
    MessageRole,
    SessionStatus,
)
from inquest.util import time as clock_time
from inquest.util.ids import PublicId, SessionRowId


class WireModel(BaseModel):
    """Base for payloads exchanged with the case server (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MessageLogItem(WireModel):
    id: int | str
    role: MessageRole
    content: str
    created_at: str | None = None


class EvidenceItem(WireModel):
    id: int | str
    title: str
    detail: str = ""
    discovered_at: str | None = None


def unique_evidence(items: List[EvidenceItem]) -> List[EvidenceItem]:
    """Drop repeated ids, keeping the first occurrence and the original order."""
    seen: set[int | str] = set()
    unique: List[EvidenceItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


class GameClock(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    start_hour: int
    end_hour: int
    minutes_used: int = 0

    @property
    def total_minutes(self) -> int:
        return clock_time.total_minutes(self.start_hour, self.end_hour)

    @property
    def remaining(self) -> int:
        return clock_time.remaining_minutes(self.start_hour, self.end_hour, self.minutes_used)

    @property
    def progress(self) -> float:
        return clock_time.progress(self.start_hour, self.end_hour, self.minutes_used)

    @property
    def is_urgent(self) -> bool:
        return clock_time.is_urgent(self.start_hour, self.end_hour, self.minutes_used)

    @property
    def label(self) -> str:
        return clock_time.clock_label(self.start_hour, self.minutes_used)


class QuestionBudget(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    limit: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0


class Session(WireModel):
    """One investigation as held by the server of record."""

    id: SessionRowId
    public_id: PublicId
    mode: GameMode | None = None
    case_source_type: CaseSourceType | None = None
    source_ref_id: int | None = None
    status: SessionStatus
    narrative_payload: Any = Field(default=None, alias="generatedStoryJson")
    messages: List[MessageLogItem] = Field(default_factory=list)
    evidence: List[EvidenceItem] = Field(default_factory=list)
    current_location: str | None = None
    game_start_hour: int = 0
    game_end_hour: int = 0
    game_minutes_used: int = 0
    current_game_time: str | None = None
    question_limit: int = 0
    questions_used: int = 0

    @field_validator("evidence")
    @classmethod
    def _dedupe_evidence(cls, value: List[EvidenceItem]) -> List[EvidenceItem]:
        return unique_evidence(value)

    @property
    def clock(self) -> GameClock:
        return GameClock(
            start_hour=self.game_start_hour,
            end_hour=self.game_end_hour,
            minutes_used=self.game_minutes_used,
        )

    @property
    def question_budget(self) -> QuestionBudget:
        return QuestionBudget(limit=self.question_limit, used=self.questions_used)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def display_time(self) -> str:
        return self.current_game_time or self.clock.label

    def evidence_ids(self) -> set[int | str]:
        return {item.id for item in self.evidence}


class SessionSummary(WireModel):
    id: SessionRowId
    public_id: PublicId
    mode: GameMode | None = None
    case_source_type: CaseSourceType | None = None
    source_ref_id: int | None = None
    status: SessionStatus
    started_at: str | None = None
    title: str | None = None
    game_start_hour: int | None = None
    game_end_hour: int | None = None
    game_minutes_used: int | None = None
    question_limit: int | None = None
    questions_used: int | None = None


class AccusationResult(WireModel):
    correct: bool
    actual_killer: str
    explanation: str = ""
    key_clues: List[str] = Field(default_factory=list)
    status: SessionStatus


class AskResult(WireModel):
    answer: str = ""
    suspect_name: str = ""


class MoveResult(WireModel):
    location: str
    available_suspects: List[str] = Field(default_factory=list)


class InvestigateResult(WireModel):
    evidence_found: List[EvidenceItem] = Field(default_factory=list)

    @field_validator("evidence_found")
    @classmethod
    def _dedupe_found(cls, value: List[EvidenceItem]) -> List[EvidenceItem]:
        return unique_evidence(value)


class GenerationAccepted(WireModel):
    public_id: PublicId

    @model_validator(mode="before")
    @classmethod
    def _accept_job_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "publicId" not in data and "public_id" not in data:
            job_id = data.get("jobId")
            if job_id is not None:
                return {**data, "publicId": str(job_id)}
        return data


class AiPrompt(WireModel):
    setting: str | None = None
    victim_profile: str | None = None
    suspect_count: int | None = Field(default=None, ge=1)


class SourceSelection(WireModel):
    """Which scenario a new session is built from."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    mode: GameMode
    basic_case_template_id: int | None = None
    published_user_case_id: int | None = None
    ai_prompt: AiPrompt | None = None
    game_start_hour: int | None = Field(default=None, ge=0, le=24)
    game_end_hour: int | None = Field(default=None, ge=0, le=24)

    @model_validator(mode="after")
    def _check_reference(self) -> "SourceSelection":
        if self.mode == GameMode.BASIC and self.basic_case_template_id is None:
            raise ValueError("BASIC mode requires basic_case_template_id")
        if self.mode == GameMode.USER and self.published_user_case_id is None:
            raise ValueError("USER mode requires published_user_case_id")
        if self.mode == GameMode.AI and self.ai_prompt is None:
            raise ValueError("AI mode requires ai_prompt")
        if (
            self.game_start_hour is not None
            and self.game_end_hour is not None
            and self.game_end_hour <= self.game_start_hour
        ):
            raise ValueError("game_end_hour must be after game_start_hour")
        return self

    @classmethod
    def template(cls, template_id: int, **hours: int) -> "SourceSelection":
        return cls(mode=GameMode.BASIC, basic_case_template_id=template_id, **hours)

    @classmethod
    def published(cls, draft_id: int, **hours: int) -> "SourceSelection":
        return cls(mode=GameMode.USER, published_user_case_id=draft_id, **hours)

    @classmethod
    def prompt(
        cls,
        setting: str | None = None,
        victim_profile: str | None = None,
        suspect_count: int | None = None,
        **hours: int,
    ) -> "SourceSelection":
        ai_prompt = AiPrompt(
            setting=setting,
            victim_profile=victim_profile,
            suspect_count=suspect_count,
        )
        return cls(mode=GameMode.AI, ai_prompt=ai_prompt, **hours)


class GenerationJob(BaseModel):
    """Point-in-time view of the generation controller."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status: GenerationStatus = GenerationStatus.IDLE
    job_id: PublicId | None = None
    error_message: str | None = None
