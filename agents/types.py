"""Shared type definitions for the orchestration engine."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Phase = Literal["intro", "calibration", "core", "deep_dive", "wrap_up"]

PHASES: Tuple[Phase, ...] = ("intro", "calibration", "core", "deep_dive", "wrap_up")

PHASE_HISTORY_LIMIT = 30
TRANSITION_REASONS_LIMIT = 50
EVIDENCE_LIMIT = 12


class _Record(BaseModel):
    """Base for models persisted in the caller's camelCase documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PhaseTransition(_Record):
    from_phase: Phase = Field(alias="from")
    to_phase: Phase = Field(alias="to")
    reason: str
    at: datetime


class CoverageEntry(_Record):
    answer_count: int = Field(default=0, ge=0)
    average_score: float = 0.0


class EvidenceCandidate(_Record):
    quote: str
    competency: Optional[str] = None
    turn_id: Optional[str] = None
    question_id: Optional[str] = None
    score: Optional[float] = None

    model_config = ConfigDict(extra="allow")


class TurnAssessment(_Record):
    """Per-turn record produced by the scoring adapter."""

    turn_id: Optional[str] = None
    question_id: Optional[str] = None
    competency: Optional[str] = None
    score: float = 0.0
    difficulty_before: Optional[str] = None
    difficulty_after: Optional[str] = None
    evidence_candidate: Optional[EvidenceCandidate] = None
    notes: str = ""

    model_config = ConfigDict(extra="allow")


class SignalFlags(_Record):
    is_non_answer: bool = False
    is_fatigued: bool = False


class OrchestrationState(_Record):
    """Normalized orchestration record; every transform returns a new copy."""

    phase: Phase = "intro"
    phase_history: List[PhaseTransition] = Field(default_factory=list)
    transition_reasons: List[str] = Field(default_factory=list)

    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_sec: Optional[int] = None

    prompt_version: str
    rubric_version: str
    scoring_version: str
    contract_version: str

    coverage: Dict[str, CoverageEntry] = Field(default_factory=dict)
    difficulty: str = "medium"
    evidence_candidates: List[EvidenceCandidate] = Field(default_factory=list)
    turn_assessments: List[TurnAssessment] = Field(default_factory=list)
    asked_question_ids: List[str] = Field(default_factory=list)

    last_question_id: Optional[str] = None
    fatigue_signals: int = 0
    non_answer_signals: int = 0
    non_answer_streak: int = 0

    last_transition_reason: Optional[str] = None
    last_transition_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the JSON document shape the caller persists."""
        return self.model_dump(mode="json", by_alias=True)


class CandidateQuestion(BaseModel):
    """An unanswered question together with its ordinal in the session."""

    index: int
    id: str
    question: Any = None
    competency: str = "general"


class QuestionOut(_Record):
    id: str
    text: str
    competency: str


class ContractEnvelope(_Record):
    name: str
    version: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)


class ScoreAnswerResult(_Record):
    orchestration: OrchestrationState
    signals: SignalFlags
    assessment: TurnAssessment
    contract: ContractEnvelope


class NextQuestionResult(_Record):
    question: Optional[QuestionOut] = None
    orchestration: OrchestrationState
    contract: ContractEnvelope
