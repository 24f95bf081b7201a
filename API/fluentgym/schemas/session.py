from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

LanguageCode = Literal["en", "es", "fr", "de", "it", "pt", "ja", "ko", "zh", "ar", "ru"]
ProficiencyLevel = Literal["beginner", "elementary", "intermediate", "advanced", "fluent"]
CorrectionCategory = Literal["grammar", "vocabulary", "syntax", "idiom"]
TurnRole = Literal["user", "assistant"]
Rating = Literal["excellent", "good", "okay", "slow"]


def _new_id() -> str:
    return str(uuid.uuid4())


class SessionState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


class TerminationReason(str, Enum):
    OBJECTIVES_MET = "objectives_met"
    USER_ENDED = "user_ended"
    ABORTED = "aborted"
    ERROR = "error"

    @property
    def terminal_state(self) -> SessionState:
        if self in (TerminationReason.OBJECTIVES_MET, TerminationReason.USER_ENDED):
            return SessionState.COMPLETED
        return SessionState.ABORTED


class LanguageSettings(BaseModel):
    target: LanguageCode = "es"
    native: LanguageCode = "en"
    proficiency_level: ProficiencyLevel = "beginner"


class Scenario(BaseModel):
    id: str
    title: str
    description: str = ""
    difficulty: ProficiencyLevel = "beginner"
    category: str = "custom"
    objectives: list[str] = Field(default_factory=list)
    required_vocabulary: list[str] = Field(default_factory=list)
    cultural_notes: list[str] = Field(default_factory=list)
    initial_greeting: str | None = None
    estimated_minutes: int = 5


class Personality(BaseModel):
    id: str
    name: str
    description: str = ""
    tone: str = "friendly"
    traits: list[str] = Field(default_factory=list)
    speaking_speed: Literal["slow", "normal", "fast"] = "normal"
    prompt_modifier: str = ""


class Correction(BaseModel):
    model_config = ConfigDict(frozen=True)

    original: str
    corrected: str
    explanation: str
    category: CorrectionCategory


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: TurnRole
    content: str
    timestamp: datetime
    latency_ms: float | None = None
    hesitation_count: int | None = None
    corrections: tuple[Correction, ...] = ()


class RatingCounts(BaseModel):
    excellent: int = 0
    good: int = 0
    okay: int = 0
    slow: int = 0


class SessionMetrics(BaseModel):
    turn_count: int = 0
    average_latency_ms: float = 0.0
    fluency_score: int = Field(default=0, ge=0, le=100)
    hesitation_total: int = 0
    ratings: RatingCounts = Field(default_factory=RatingCounts)


class TurnRating(BaseModel):
    model_config = ConfigDict(frozen=True)

    latency_ms: float
    hesitation_count: int
    rating: Rating
    score: int


class Session(BaseModel):
    id: str = Field(default_factory=_new_id)
    scenario: Scenario
    personality: Personality
    language: LanguageSettings
    state: SessionState = SessionState.ACTIVE
    started_at: datetime
    ended_at: datetime | None = None
    turns: list[Turn] = Field(default_factory=list)
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    termination_reason: TerminationReason | None = None

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def user_turns(self) -> list[Turn]:
        return [turn for turn in self.turns if turn.role == "user"]

    def snapshot(self) -> "Session":
        return self.model_copy(deep=True)


class FluencyGateState(BaseModel):
    phase: Literal["idle", "armed", "answered", "expired"] = "idle"
    deadline: float | None = None
    remaining_seconds: float | None = None
    elapsed_ms: float | None = None


class ObjectiveVerdict(BaseModel):
    completed: bool = False
    rationale: str = ""


class TurnResult(BaseModel):
    session_id: str
    assistant_content: str
    corrections: list[Correction] = Field(default_factory=list)
    should_end_session: bool = False
    rating: TurnRating


class FeedbackReport(BaseModel):
    session_id: str
    fluency_score: int = Field(ge=0, le=100)
    strengths: list[str]
    improvements: list[str]
    vocabulary_used: int = 0
    next_steps: list[str]
    source: Literal["collaborator", "fallback"] = "collaborator"
    metrics: SessionMetrics
    corrections_total: int = 0
