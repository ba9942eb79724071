"""Wire models, enums and snapshot rules."""

from inquest.domain.enums import (
    CaseSourceType,
    GameMode,
    GenerationStatus,
    MessageRole,
    SessionStatus,
)
from inquest.domain.models import (
    AccusationResult,
    AiPrompt,
    AskResult,
    EvidenceItem,
    GameClock,
    GenerationAccepted,
    GenerationJob,
    InvestigateResult,
    MessageLogItem,
    MoveResult,
    QuestionBudget,
    Session,
    SessionSummary,
    SourceSelection,
)

__all__ = [
    "AccusationResult",
    "AiPrompt",
    "AskResult",
    "CaseSourceType",
    "EvidenceItem",
    "GameClock",
    "GameMode",
    "GenerationAccepted",
    "GenerationJob",
    "GenerationStatus",
    "InvestigateResult",
    "MessageLogItem",
    "MessageRole",
    "MoveResult",
    "QuestionBudget",
    "Session",
    "SessionStatus",
    "SessionSummary",
    "SourceSelection",
]
