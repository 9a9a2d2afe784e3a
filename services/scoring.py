"""Scoring adapter interface and the offline heuristic scorer."""
from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from agents.types import CoverageEntry, EvidenceCandidate, TurnAssessment
from config.registry import SCORING_KEY, resolve_model

SCORING_VERSION = "heuristic-scoring-v1"
RUBRIC_VERSION = "competency-rubric-v1"

DEFAULT_COMPETENCY = "general"
DIFFICULTY_LADDER: Tuple[str, ...] = ("easy", "medium", "hard")
LOW_CONTENT_TOKENS = 12
EVIDENCE_MIN_SCORE = 3.0
EVIDENCE_MAX_CHARS = 200

COMPETENCY_CUES: Tuple[Tuple[str, re.Pattern[str]], ...] = (
    ("system_design", re.compile(r"\b(architect\w*|design\w*|scal\w*|distributed)\b", re.IGNORECASE)),
    ("leadership", re.compile(r"\b(lead\w*|mentor\w*|ownership|influenc\w*)\b", re.IGNORECASE)),
    ("collaboration", re.compile(r"\b(team\w*|stakeholder\w*|collaborat\w*|cross-functional)\b", re.IGNORECASE)),
    ("communication", re.compile(r"\b(explain\w*|communicat\w*|conflict\w*|present\w*)\b", re.IGNORECASE)),
    ("problem_solving", re.compile(r"\b(problem\w*|debug\w*|challeng\w*|troubleshoot\w*|incident\w*)\b", re.IGNORECASE)),
    ("motivation", re.compile(r"\b(why|motivat\w*|interest\w*|passion\w*)\b", re.IGNORECASE)),
)

_SPECIFICITY_CUES: Tuple[re.Pattern[str], ...] = (
    re.compile(r"\d"),
    re.compile(r"\b(i\s+(led|built|designed|decided|owned|wrote|drove)|my\s+role)\b", re.IGNORECASE),
    re.compile(r"\b(result\w*|impact|improv\w*|reduc\w*|increas\w*|outcome|so\s+that)\b", re.IGNORECASE),
    re.compile(r"\b(trade-?offs?|because|instead\s+of|alternative\w*)\b", re.IGNORECASE),
)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class ScoringAdapter(Protocol):
    def infer_competency(self, question: Any) -> str:
        ...

    def score_answer(
        self,
        *,
        answer_text: str,
        competency: str,
        turn_id: Optional[str],
        question_id: Optional[str],
        difficulty: str,
    ) -> TurnAssessment:
        ...

    def build_coverage_update(
        self, coverage: Mapping[str, CoverageEntry], competency: str, score: float
    ) -> Dict[str, CoverageEntry]:
        ...


def _round1(value: float) -> float:
    """Round a float to one decimal place with stable formatting."""
    return float(f"{value:.1f}")


def _token_count(text: str) -> int:
    return 0 if not text else len(text.strip().split())


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")


def _field(question: Any, *names: str) -> Any:
    for name in names:
        if isinstance(question, Mapping):
            value = question.get(name)
        else:
            value = getattr(question, name, None)
        if value:
            return value
    return None


def infer_competency(question: Any) -> str:
    """Map a question to a competency: explicit field, keyword cue, or ``general``."""

    if question is None:
        return DEFAULT_COMPETENCY
    explicit = _field(question, "competency", "competencyId", "category")
    if isinstance(explicit, str) and _slug(explicit):
        return _slug(explicit)
    text = question if isinstance(question, str) else _field(question, "text", "question")
    if isinstance(text, str):
        for competency, cue in COMPETENCY_CUES:
            if cue.search(text):
                return competency
    return DEFAULT_COMPETENCY


def build_coverage_update(
    coverage: Mapping[str, CoverageEntry], competency: str, score: float
) -> Dict[str, CoverageEntry]:
    """Return a new coverage mapping with ``score`` folded into the running mean."""

    updated = dict(coverage)
    entry = updated.get(competency) or CoverageEntry()
    count = entry.answer_count + 1
    average = (entry.average_score * entry.answer_count + float(score)) / count
    updated[competency] = CoverageEntry(answer_count=count, average_score=average)
    return updated


def next_difficulty(current: str, score: float) -> str:
    """Step the difficulty ladder up on strong answers and down on weak ones."""

    index = DIFFICULTY_LADDER.index(current) if current in DIFFICULTY_LADDER else 1
    if score >= 4.0:
        index = min(index + 1, len(DIFFICULTY_LADDER) - 1)
    elif score <= 2.0:
        index = max(index - 1, 0)
    return DIFFICULTY_LADDER[index]


def _evidence_quote(answer_text: str) -> str:
    first = _SENTENCE_END.split(answer_text.strip(), maxsplit=1)[0]
    return first[:EVIDENCE_MAX_CHARS].strip()


class HeuristicScoringAdapter:
    """Deterministic offline scorer used when no model-backed adapter is bound."""

    def infer_competency(self, question: Any) -> str:
        return infer_competency(question)

    def build_coverage_update(
        self, coverage: Mapping[str, CoverageEntry], competency: str, score: float
    ) -> Dict[str, CoverageEntry]:
        return build_coverage_update(coverage, competency, score)

    def score_answer(
        self,
        *,
        answer_text: str,
        competency: str,
        turn_id: Optional[str],
        question_id: Optional[str],
        difficulty: str,
    ) -> TurnAssessment:
        text = answer_text or ""
        tokens = _token_count(text)
        if tokens < LOW_CONTENT_TOKENS:
            score = 1.0
            notes = "too brief; insufficient evidence"
        else:
            base = 2.0 if tokens < 30 else 2.5 if tokens < 60 else 3.0
            bonus = 0.5 * sum(1 for cue in _SPECIFICITY_CUES if cue.search(text))
            score = _round1(max(1.0, min(5.0, base + bonus)))
            notes = "heuristic length and specificity scoring"

        evidence = None
        if score >= EVIDENCE_MIN_SCORE:
            quote = _evidence_quote(text)
            if quote:
                evidence = EvidenceCandidate(
                    quote=quote,
                    competency=competency,
                    turn_id=turn_id,
                    question_id=question_id,
                    score=score,
                )

        return TurnAssessment(
            turn_id=turn_id,
            question_id=question_id,
            competency=competency,
            score=score,
            difficulty_before=difficulty,
            difficulty_after=next_difficulty(difficulty, score),
            evidence_candidate=evidence,
            notes=notes,
        )


def resolve_scoring_adapter() -> ScoringAdapter:
    """Return the registry-bound adapter, or the heuristic scorer."""

    return resolve_model(SCORING_KEY, HeuristicScoringAdapter)


__all__ = [
    "DEFAULT_COMPETENCY",
    "DIFFICULTY_LADDER",
    "RUBRIC_VERSION",
    "SCORING_VERSION",
    "HeuristicScoringAdapter",
    "ScoringAdapter",
    "build_coverage_update",
    "infer_competency",
    "next_difficulty",
    "resolve_scoring_adapter",
]
