"""Adaptive interview orchestration engine.

Every operation is a pure transform from the caller's persisted session record
to a new orchestration state plus a response payload. The engine never stores
anything itself: callers persist ``result.orchestration.to_record()`` under
``session['orchestration']`` and must serialize calls for the same session.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from agents.flow_manager import PhaseThresholds, apply_phase_transition, force_phase
from agents.question_selector import (
    question_id_of,
    question_text_of,
    select_question,
    unanswered_questions,
)
from agents.signal_extractor import resolve_classifier
from agents.types import (
    EVIDENCE_LIMIT,
    NextQuestionResult,
    OrchestrationState,
    QuestionOut,
    ScoreAnswerResult,
)
from config.settings import Settings, settings
from observability.logger import log_event
from observability.tracing import span
from orchestrator.contract import next_question_contract, score_answer_contract
from orchestrator.errors import OrchestrationInputError, SessionShapeError, TurnShapeError
from orchestrator.state import VersionTags, as_mapping, build_orchestration, parse_datetime
from services.scoring import resolve_scoring_adapter


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def coerce_time_remaining(value: Any) -> Optional[int]:
    """Non-negative rounded seconds, or None when ``value`` is not a finite number."""

    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return max(0, round_half_up(value))


class EngineConfig(BaseModel):
    """Immutable threshold and version snapshot handed to the engine."""

    thresholds: PhaseThresholds = Field(default_factory=PhaseThresholds)
    versions: VersionTags = Field(default_factory=VersionTags)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "EngineConfig":
        return cls(
            thresholds=PhaseThresholds(
                low_time_sec=cfg.PUBLIC_AI_PHASE_LOW_TIME_SEC,
                critical_time_sec=cfg.PUBLIC_AI_PHASE_CRITICAL_TIME_SEC,
                calibration_min_answers=cfg.PUBLIC_AI_PHASE_CALIBRATION_MIN_ANSWERS,
                core_min_competencies=cfg.PUBLIC_AI_PHASE_CORE_MIN_COMPETENCIES,
                deep_dive_min_competencies=cfg.PUBLIC_AI_PHASE_DEEP_DIVE_MIN_COMPETENCIES,
                deep_dive_min_average=cfg.PUBLIC_AI_PHASE_DEEP_DIVE_MIN_AVERAGE,
                wrap_up_fatigue_signals=cfg.PUBLIC_AI_PHASE_WRAP_UP_FATIGUE_SIGNALS,
                wrap_up_non_answer_streak=cfg.PUBLIC_AI_PHASE_WRAP_UP_NON_ANSWER_STREAK,
            ),
            versions=VersionTags(prompt_version=cfg.PUBLIC_AI_VOICE_PROMPT_VERSION),
        )


class EngineDeps(BaseModel):
    """Collaborators the engine calls out to. Protocol-typed fields are not validated."""

    scoring: Any  # ScoringAdapter
    classifier: Any  # SignalClassifier
    now: Callable[[], datetime] = _utcnow

    model_config = ConfigDict(frozen=True)


def default_deps() -> EngineDeps:
    """Collaborators bound in the model registry, or the built-in defaults."""

    return EngineDeps(scoring=resolve_scoring_adapter(), classifier=resolve_classifier())


def _require_structured(value: Any, error: Type[OrchestrationInputError], operation: str) -> Mapping[str, Any]:
    mapping = as_mapping(value)
    if mapping is None:
        raise error(operation)
    return mapping


def _session_id(session: Mapping[str, Any]) -> Optional[str]:
    for key in ("_id", "id", "token"):
        value = session.get(key)
        if value:
            return str(value)
    return None


def _questions(session: Mapping[str, Any]) -> List[Any]:
    questions = session.get("aiInterviewQuestions")
    return list(questions) if isinstance(questions, (list, tuple)) else []


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


class OrchestrationEngine:
    def __init__(self, config: Optional[EngineConfig] = None, deps: Optional[EngineDeps] = None):
        self.config = config or EngineConfig.from_settings(settings)
        self.deps = deps or default_deps()

    def _transition(
        self, state: OrchestrationState, time_remaining_sec: Optional[int], suffix: str
    ) -> OrchestrationState:
        return apply_phase_transition(
            state,
            time_remaining_sec=time_remaining_sec,
            thresholds=self.config.thresholds,
            now=self.deps.now,
            reason_suffix=suffix,
        )

    def _log_phase_change(self, session_id: Optional[str], before: OrchestrationState, after: OrchestrationState) -> None:
        if before.phase != after.phase:
            log_event(
                "phase_transition",
                session_id,
                from_phase=before.phase,
                to_phase=after.phase,
                reason=after.last_transition_reason,
            )

    def build(self, session: Any) -> OrchestrationState:
        """Restore or default the orchestration state for ``session``."""
        return build_orchestration(session, self.config.versions)

    def score_answer(self, session: Any, turn: Any, time_remaining_sec: Any = None) -> ScoreAnswerResult:
        """Score one candidate answer and advance the orchestration state.

        Not idempotent: each call appends an assessment, so call it once per
        actual answer. Adapter errors propagate to the caller.
        """

        session_map = _require_structured(session, SessionShapeError, "score_answer")
        turn_map = _require_structured(turn, TurnShapeError, "score_answer")
        remaining = coerce_time_remaining(time_remaining_sec)
        session_id = _session_id(session_map)

        state = self.build(session_map)
        questions = _questions(session_map)
        position = len(state.turn_assessments)
        question = questions[position] if position < len(questions) else None
        question_id = question_id_of(question, position) if question is not None else None
        competency = self.deps.scoring.infer_competency(question)

        text = turn_map.get("text")
        answer_text = text if isinstance(text, str) else ""
        turn_id = _optional_str(turn_map.get("turnId") or turn_map.get("id"))

        with span(session_id, "score_answer.adapter", competency=competency):
            assessment = self.deps.scoring.score_answer(
                answer_text=answer_text,
                competency=competency,
                turn_id=turn_id,
                question_id=question_id,
                difficulty=state.difficulty,
            )
        signals = self.deps.classifier.extract(answer_text)

        evidence = state.evidence_candidates
        if assessment.evidence_candidate is not None and assessment.evidence_candidate.quote:
            evidence = [*evidence, assessment.evidence_candidate][-EVIDENCE_LIMIT:]

        asked = state.asked_question_ids
        if question_id and question_id not in asked:
            asked = [*asked, question_id]

        scored = state.model_copy(
            update={
                "coverage": self.deps.scoring.build_coverage_update(state.coverage, competency, assessment.score),
                "difficulty": assessment.difficulty_after or state.difficulty,
                "evidence_candidates": evidence,
                "turn_assessments": [*state.turn_assessments, assessment],
                "asked_question_ids": asked,
                "last_question_id": question_id or state.last_question_id,
                "fatigue_signals": state.fatigue_signals + (1 if signals.is_fatigued else 0),
                "non_answer_signals": state.non_answer_signals + (1 if signals.is_non_answer else 0),
                "non_answer_streak": state.non_answer_streak + 1 if signals.is_non_answer else 0,
            }
        )
        next_state = self._transition(scored, remaining, "score_answer")

        log_event(
            "answer_scored",
            session_id,
            question_id=question_id,
            competency=competency,
            score=assessment.score,
            phase=next_state.phase,
        )
        self._log_phase_change(session_id, state, next_state)

        role = turn_map.get("role")
        return ScoreAnswerResult(
            orchestration=next_state,
            signals=signals,
            assessment=assessment,
            contract=score_answer_contract(
                next_state,
                time_remaining_sec=remaining,
                turn_id=turn_id,
                role=role if isinstance(role, str) and role else "candidate",
            ),
        )

    def next_question(self, session: Any, time_remaining_sec: Any = None) -> NextQuestionResult:
        """Choose the next unanswered question for the current phase.

        The chosen question is not marked as asked; that happens when its
        answer is scored. When nothing is left the state is forced to
        ``wrap_up`` with reason ``no_questions_remaining:next_question`` and a
        history entry, rather than re-running the policy with
        ``no_questions_remaining`` as the suffix.
        """

        session_map = _require_structured(session, SessionShapeError, "next_question")
        remaining = coerce_time_remaining(time_remaining_sec)
        session_id = _session_id(session_map)

        restored = self.build(session_map)
        state = self._transition(restored, remaining, "next_question")

        unanswered = unanswered_questions(
            _questions(session_map),
            state.asked_question_ids,
            self.deps.scoring.infer_competency,
        )
        selected = select_question(state.phase, unanswered, state.coverage)

        if selected is None:
            wrapped = force_phase(
                state,
                "wrap_up",
                reason="no_questions_remaining",
                now=self.deps.now,
                reason_suffix="next_question",
            )
            log_event("questions_exhausted", session_id, phase=wrapped.phase)
            self._log_phase_change(session_id, restored, wrapped)
            return NextQuestionResult(
                question=None,
                orchestration=wrapped,
                contract=next_question_contract(wrapped, time_remaining_sec=remaining, question=None),
            )

        question = QuestionOut(
            id=selected.id,
            text=question_text_of(selected.question),
            competency=selected.competency,
        )
        updated = state.model_copy(update={"last_question_id": selected.id})

        log_event(
            "question_selected",
            session_id,
            question_id=question.id,
            competency=question.competency,
            phase=updated.phase,
        )
        self._log_phase_change(session_id, restored, updated)

        return NextQuestionResult(
            question=question,
            orchestration=updated,
            contract=next_question_contract(updated, time_remaining_sec=remaining, question=question),
        )

    def finalize(self, session: Any, ended_at: Any = None) -> OrchestrationState:
        """Force ``wrap_up`` and stamp end time and duration. Never raises."""

        session_map = as_mapping(session) or {}
        state = self.build(session_map)
        ended = parse_datetime(ended_at) or parse_datetime(self.deps.now()) or _utcnow()
        started = state.started_at or ended
        duration = max(0, round_half_up((ended - started).total_seconds()))

        wrapped = force_phase(
            state,
            "wrap_up",
            reason="session_finalized",
            now=lambda: ended,
            reason_suffix="finalize",
        )
        final = wrapped.model_copy(update={"started_at": started, "ended_at": ended, "duration_sec": duration})
        log_event("session_finalized", _session_id(session_map), phase=final.phase, duration_sec=duration)
        return final


_engine: Optional[OrchestrationEngine] = None


def default_engine() -> OrchestrationEngine:
    global _engine
    if _engine is None:
        _engine = OrchestrationEngine()
    return _engine


def build(session: Any) -> OrchestrationState:
    return default_engine().build(session)


def score_answer(session: Any, turn: Any, time_remaining_sec: Any = None) -> ScoreAnswerResult:
    return default_engine().score_answer(session, turn, time_remaining_sec)


def next_question(session: Any, time_remaining_sec: Any = None) -> NextQuestionResult:
    return default_engine().next_question(session, time_remaining_sec)


def finalize(session: Any, ended_at: Any = None) -> OrchestrationState:
    return default_engine().finalize(session, ended_at)


__all__ = [
    "EngineConfig",
    "EngineDeps",
    "OrchestrationEngine",
    "build",
    "coerce_time_remaining",
    "default_deps",
    "default_engine",
    "finalize",
    "next_question",
    "round_half_up",
    "score_answer",
]
