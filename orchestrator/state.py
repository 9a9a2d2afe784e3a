"""Restore persisted orchestration records into a normalized state.

Persisted records come from the caller's session document and may be absent,
partial or corrupted. Each field keeps its prior value only when it has the
expected shape; anything else silently falls back to its default, so the
engine stays usable from any record.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agents.types import (
    EVIDENCE_LIMIT,
    PHASE_HISTORY_LIMIT,
    PHASES,
    TRANSITION_REASONS_LIMIT,
    CoverageEntry,
    EvidenceCandidate,
    OrchestrationState,
    PhaseTransition,
    TurnAssessment,
)
from config.settings import settings
from orchestrator.contract import CONTRACT_VERSION
from services.scoring import RUBRIC_VERSION, SCORING_VERSION


class VersionTags(BaseModel):
    """Process-wide version defaults stamped onto freshly built states."""

    prompt_version: str = Field(default_factory=lambda: settings.PUBLIC_AI_VOICE_PROMPT_VERSION)
    rubric_version: str = RUBRIC_VERSION
    scoring_version: str = SCORING_VERSION
    contract_version: str = CONTRACT_VERSION

    model_config = ConfigDict(frozen=True)


def as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    """Return ``value`` as a mapping when it is a structured value, else None."""

    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Mapping):
        return value
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes or ISO-8601 strings; normalize to UTC."""

    if not isinstance(value, (datetime, str)) or (isinstance(value, str) and not value.strip()):
        return None
    try:
        if isinstance(value, datetime):
            parsed = value
        else:
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        # Offsets near datetime.min/max leave the representable range in UTC.
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _count(value: Any) -> int:
    return int(value) if _is_number(value) and value >= 0 else 0


def _text(value: Any, default: Optional[str]) -> Optional[str]:
    return value if isinstance(value, str) and value else default


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _phase_history(value: Any) -> List[PhaseTransition]:
    entries: List[PhaseTransition] = []
    for raw in _list(value):
        item = as_mapping(raw)
        if item is None:
            continue
        try:
            entries.append(PhaseTransition.model_validate(item))
        except ValidationError:
            continue
    return entries[-PHASE_HISTORY_LIMIT:]


def _coverage(value: Any) -> Dict[str, CoverageEntry]:
    coverage: Dict[str, CoverageEntry] = {}
    source = as_mapping(value) or {}
    for competency, raw in source.items():
        item = as_mapping(raw)
        if not isinstance(competency, str) or item is None:
            continue
        count = item.get("answerCount", 0)
        average = item.get("averageScore", 0.0)
        if not _is_number(count) or count < 0 or not _is_number(average):
            continue
        coverage[competency] = CoverageEntry(answer_count=int(count), average_score=float(average))
    return coverage


def _evidence(value: Any) -> List[EvidenceCandidate]:
    entries: List[EvidenceCandidate] = []
    for raw in _list(value):
        item = as_mapping(raw)
        if item is None:
            continue
        try:
            entries.append(EvidenceCandidate.model_validate(item))
        except ValidationError:
            continue
    return entries[-EVIDENCE_LIMIT:]


def _assessments(value: Any) -> List[TurnAssessment]:
    # Malformed entries still count as processed answers.
    entries: List[TurnAssessment] = []
    for raw in _list(value):
        item = as_mapping(raw)
        try:
            entries.append(TurnAssessment.model_validate(item) if item is not None else TurnAssessment())
        except ValidationError:
            entries.append(TurnAssessment())
    return entries


def _asked_ids(value: Any) -> List[str]:
    asked: List[str] = []
    for raw in _list(value):
        if isinstance(raw, bool) or not isinstance(raw, (str, int)):
            continue
        qid = str(raw)
        if qid and qid not in asked:
            asked.append(qid)
    return asked


def session_started_at(session: Mapping[str, Any]) -> Optional[datetime]:
    voice = as_mapping(session.get("voice")) or {}
    return parse_datetime(voice.get("startedAt")) or parse_datetime(session.get("startedAt"))


def build_orchestration(session: Any, versions: Optional[VersionTags] = None) -> OrchestrationState:
    """Restore ``session['orchestration']`` or produce a fresh default state. Never raises."""

    versions = versions or VersionTags()
    session_map = as_mapping(session) or {}
    existing = as_mapping(session_map.get("orchestration")) or {}

    phase = existing.get("phase")
    duration = existing.get("durationSec")

    return OrchestrationState(
        phase=phase if phase in PHASES else "intro",
        phase_history=_phase_history(existing.get("phaseHistory")),
        transition_reasons=[
            reason for reason in _list(existing.get("transitionReasons")) if isinstance(reason, str)
        ][-TRANSITION_REASONS_LIMIT:],
        started_at=parse_datetime(existing.get("startedAt")) or session_started_at(session_map),
        ended_at=parse_datetime(existing.get("endedAt")),
        duration_sec=int(duration) if _is_number(duration) and duration >= 0 else None,
        prompt_version=_text(existing.get("promptVersion"), versions.prompt_version),
        rubric_version=_text(existing.get("rubricVersion"), versions.rubric_version),
        scoring_version=_text(existing.get("scoringVersion"), versions.scoring_version),
        contract_version=_text(existing.get("contractVersion"), versions.contract_version),
        coverage=_coverage(existing.get("coverage")),
        difficulty=_text(existing.get("difficulty"), "medium"),
        evidence_candidates=_evidence(existing.get("evidenceCandidates")),
        turn_assessments=_assessments(existing.get("turnAssessments")),
        asked_question_ids=_asked_ids(existing.get("askedQuestionIds")),
        last_question_id=_text(existing.get("lastQuestionId"), None),
        fatigue_signals=_count(existing.get("fatigueSignals")),
        non_answer_signals=_count(existing.get("nonAnswerSignals")),
        non_answer_streak=_count(existing.get("nonAnswerStreak")),
        last_transition_reason=_text(existing.get("lastTransitionReason"), None),
        last_transition_at=parse_datetime(existing.get("lastTransitionAt")),
    )


__all__ = [
    "VersionTags",
    "as_mapping",
    "build_orchestration",
    "parse_datetime",
    "session_started_at",
]
