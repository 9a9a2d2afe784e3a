"""Phase-aware selection of the next unanswered question."""
from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional, Sequence

from agents.types import CandidateQuestion, CoverageEntry

UNSCORED_PRIORITY = 999.0
IN_ORDER_PHASES = {"intro", "calibration", "wrap_up"}


def question_id_of(question: Any, index: int) -> str:
    """Stable identifier: ``id``, ``questionId`` or ``_id``, else ``q<ordinal>``."""

    if isinstance(question, Mapping):
        for key in ("id", "questionId", "_id"):
            value = question.get(key)
            if value:
                return str(value)
    return f"q{index + 1}"


def question_text_of(question: Any) -> str:
    if isinstance(question, Mapping):
        return str(question.get("text") or question.get("question") or "")
    if isinstance(question, str):
        return question
    return ""


def unanswered_questions(
    questions: Sequence[Any],
    asked_ids: Sequence[str],
    infer_competency: Callable[[Any], str],
) -> List[CandidateQuestion]:
    asked = set(asked_ids)
    candidates: List[CandidateQuestion] = []
    for index, question in enumerate(questions):
        qid = question_id_of(question, index)
        if qid in asked:
            continue
        candidates.append(
            CandidateQuestion(index=index, id=qid, question=question, competency=infer_competency(question))
        )
    return candidates


def _core_priority(candidate: CandidateQuestion, coverage: Mapping[str, CoverageEntry]) -> float:
    entry = coverage.get(candidate.competency)
    return float(entry.answer_count) if entry else 0.0


def _deep_dive_priority(candidate: CandidateQuestion, coverage: Mapping[str, CoverageEntry]) -> float:
    entry = coverage.get(candidate.competency)
    if entry and entry.average_score > 0:
        return entry.average_score
    return UNSCORED_PRIORITY


def select_question(
    phase: str,
    unanswered: Sequence[CandidateQuestion],
    coverage: Mapping[str, CoverageEntry],
) -> Optional[CandidateQuestion]:
    """Pick the next question for ``phase``.

    Opening, calibration and wrap-up phases take questions in order. Core
    prefers the least-covered competency; deep dive prefers the competency with
    the lowest positive average so weak areas get probed again. Ties fall back
    to list position.
    """

    if not unanswered:
        return None
    if phase in IN_ORDER_PHASES:
        return min(unanswered, key=lambda candidate: candidate.index)
    priority = _core_priority if phase == "core" else _deep_dive_priority
    return min(unanswered, key=lambda candidate: (priority(candidate, coverage), candidate.index))


__all__ = [
    "UNSCORED_PRIORITY",
    "question_id_of",
    "question_text_of",
    "select_question",
    "unanswered_questions",
]
