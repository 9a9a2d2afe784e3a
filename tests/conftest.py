import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import config.registry as registry
import orchestrator.engine as engine_mod
from agents.signal_extractor import PatternSignalClassifier
from agents.types import CoverageEntry, EvidenceCandidate, TurnAssessment
from orchestrator.engine import EngineConfig, EngineDeps, OrchestrationEngine
from services.scoring import build_coverage_update

FIXED_NOW = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)

QUESTIONS: List[Dict[str, Any]] = [
    {"id": "q-intro", "text": "Tell me about yourself.", "competency": "motivation"},
    {"id": "q-arch", "text": "Design a rate limiter.", "competency": "system_design"},
    {"id": "q-team", "text": "Describe a disagreement with a peer.", "competency": "collaboration"},
    {"id": "q-debug", "text": "Walk me through a production incident.", "competency": "problem_solving"},
    {"id": "q-arch-2", "text": "How would the limiter behave across regions?", "competency": "system_design"},
    {"id": "q-lead", "text": "How do you grow junior engineers?", "competency": "leadership"},
]

SOLID_ANSWER = "I led the migration of our billing service and we cut checkout latency in half."


class ScriptedScoringAdapter:
    """Deterministic adapter: scores come from a per-answer script."""

    def __init__(self, scores: Optional[Dict[str, float]] = None, default: float = 3.0):
        self.scores = scores or {}
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def infer_competency(self, question: Any) -> str:
        if isinstance(question, Mapping) and question.get("competency"):
            return str(question["competency"])
        return "general"

    def score_answer(self, *, answer_text, competency, turn_id, question_id, difficulty) -> TurnAssessment:
        self.calls.append(
            {
                "answer_text": answer_text,
                "competency": competency,
                "turn_id": turn_id,
                "question_id": question_id,
                "difficulty": difficulty,
            }
        )
        score = self.scores.get(answer_text, self.default)
        evidence = None
        if score >= 3:
            evidence = EvidenceCandidate(quote=answer_text[:40], competency=competency, question_id=question_id)
        return TurnAssessment(
            turn_id=turn_id,
            question_id=question_id,
            competency=competency,
            score=score,
            difficulty_before=difficulty,
            difficulty_after="hard" if score >= 4 else difficulty,
            evidence_candidate=evidence,
        )

    def build_coverage_update(self, coverage: Mapping[str, CoverageEntry], competency: str, score: float):
        return build_coverage_update(coverage, competency, score)


def make_session(questions=None, orchestration=None, **extra) -> Dict[str, Any]:
    session: Dict[str, Any] = {
        "_id": "sess-1",
        "aiInterviewQuestions": list(QUESTIONS if questions is None else questions),
    }
    if orchestration is not None:
        session["orchestration"] = orchestration
    session.update(extra)
    return session


def persist(session: Dict[str, Any], result) -> Dict[str, Any]:
    """Mimic the caller storing the returned state on the session record."""

    state = getattr(result, "orchestration", result)
    return {**session, "orchestration": state.to_record()}


@pytest.fixture(autouse=True)
def clean_registry(monkeypatch):
    monkeypatch.setattr(registry, "_REGISTRY", {})
    monkeypatch.setattr(engine_mod, "_engine", None)
    yield


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def classifier(tmp_path) -> PatternSignalClassifier:
    return PatternSignalClassifier(path=str(tmp_path / "no-signals.yaml"))


@pytest.fixture
def adapter() -> ScriptedScoringAdapter:
    return ScriptedScoringAdapter()


@pytest.fixture
def engine(adapter, classifier, fixed_now) -> OrchestrationEngine:
    return OrchestrationEngine(
        EngineConfig(),
        EngineDeps(scoring=adapter, classifier=classifier, now=lambda: fixed_now),
    )
