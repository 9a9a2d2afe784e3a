"""Interview phase transition policy."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from agents.types import (
    PHASE_HISTORY_LIMIT,
    PHASES,
    TRANSITION_REASONS_LIMIT,
    CoverageEntry,
    OrchestrationState,
    Phase,
    PhaseTransition,
)


class PhaseThresholds(BaseModel):
    low_time_sec: float = Field(default=120, ge=0)
    critical_time_sec: float = Field(default=45, ge=0)
    calibration_min_answers: int = Field(default=2, ge=0)
    core_min_competencies: int = Field(default=2, ge=0)
    deep_dive_min_competencies: int = Field(default=3, ge=0)
    deep_dive_min_average: float = Field(default=3, ge=0)
    wrap_up_fatigue_signals: int = Field(default=2, ge=1)
    wrap_up_non_answer_streak: int = Field(default=2, ge=1)

    model_config = ConfigDict(frozen=True)


class CoverageSummary(BaseModel):
    competency_count: int
    answered_competency_count: int
    average_across_answered: float


class PhaseDecision(BaseModel):
    """Target phase proposed by the policy and the rule that produced it."""

    target_phase: Phase
    reasons: List[str] = Field(default_factory=list)


def phase_index(phase: str) -> int:
    return PHASES.index(phase) if phase in PHASES else 0


def coverage_summary(coverage: Mapping[str, CoverageEntry]) -> CoverageSummary:
    """Count answered competencies and average their scores (2dp)."""

    answered = [entry for entry in coverage.values() if entry.answer_count > 0]
    average = sum(entry.average_score for entry in answered) / len(answered) if answered else 0.0
    return CoverageSummary(
        competency_count=len(coverage),
        answered_competency_count=len(answered),
        average_across_answered=round(average, 2),
    )


def decide_target_phase(
    state: OrchestrationState,
    time_remaining_sec: Optional[int],
    thresholds: PhaseThresholds,
) -> PhaseDecision:
    """Evaluate the exit and progression rules in priority order; first match wins."""

    if time_remaining_sec is not None and time_remaining_sec <= thresholds.critical_time_sec:
        return PhaseDecision(target_phase="wrap_up", reasons=["time_remaining_critical"])

    if time_remaining_sec is not None and time_remaining_sec <= thresholds.low_time_sec:
        return PhaseDecision(target_phase="wrap_up", reasons=["time_remaining_low"])

    if (
        state.fatigue_signals >= thresholds.wrap_up_fatigue_signals
        or state.non_answer_streak >= thresholds.wrap_up_non_answer_streak
    ):
        return PhaseDecision(target_phase="wrap_up", reasons=["fatigue_or_non_answer_threshold_met"])

    total_answers = len(state.turn_assessments)
    if total_answers < 1:
        return PhaseDecision(target_phase="intro", reasons=["opening_turns"])

    if total_answers < thresholds.calibration_min_answers:
        return PhaseDecision(target_phase="calibration", reasons=["calibration_min_answers_not_met"])

    summary = coverage_summary(state.coverage)
    if (
        summary.answered_competency_count >= thresholds.deep_dive_min_competencies
        and summary.average_across_answered >= thresholds.deep_dive_min_average
    ):
        return PhaseDecision(target_phase="deep_dive", reasons=["coverage_and_score_ready_for_deep_dive"])

    if summary.answered_competency_count >= thresholds.core_min_competencies:
        return PhaseDecision(target_phase="core", reasons=["core_coverage_threshold_met"])

    return PhaseDecision(target_phase="calibration", reasons=["default_to_calibration"])


def _record_transition(
    state: OrchestrationState,
    next_phase: Phase,
    reason: str,
    at: datetime,
) -> OrchestrationState:
    updates = {
        "phase": next_phase,
        "last_transition_reason": reason,
        "last_transition_at": at,
    }
    if next_phase != state.phase:
        entry = PhaseTransition(from_phase=state.phase, to_phase=next_phase, reason=reason, at=at)
        updates["phase_history"] = [*state.phase_history, entry][-PHASE_HISTORY_LIMIT:]
        updates["transition_reasons"] = [*state.transition_reasons, reason][-TRANSITION_REASONS_LIMIT:]
    return state.model_copy(update=updates)


def apply_phase_transition(
    state: OrchestrationState,
    *,
    time_remaining_sec: Optional[int],
    thresholds: PhaseThresholds,
    now: Callable[[], datetime],
    reason_suffix: str = "state_update",
) -> OrchestrationState:
    """Run the policy and adopt its target unless that would move backwards.

    Moving to ``wrap_up`` is always allowed; any other lower-ranked target is
    held, which also keeps ``wrap_up`` absorbing. The composite reason is
    recorded even when the phase does not change.
    """

    decision = decide_target_phase(state, time_remaining_sec, thresholds)
    current = phase_index(state.phase)
    target = phase_index(decision.target_phase)
    if target < current and decision.target_phase != "wrap_up":
        next_phase = state.phase
    else:
        next_phase = decision.target_phase
    reason = f"{'|'.join(decision.reasons)}:{reason_suffix}"
    return _record_transition(state, next_phase, reason, now())


def force_phase(
    state: OrchestrationState,
    phase: Phase,
    *,
    reason: str,
    now: Callable[[], datetime],
    reason_suffix: str,
) -> OrchestrationState:
    """Move to ``phase`` unconditionally, recording it like a policy transition."""

    return _record_transition(state, phase, f"{reason}:{reason_suffix}", now())


__all__ = [
    "CoverageSummary",
    "PhaseDecision",
    "PhaseThresholds",
    "apply_phase_transition",
    "coverage_summary",
    "decide_target_phase",
    "force_phase",
    "phase_index",
]
