"""Versioned contract envelopes attached to engine responses."""
from __future__ import annotations

from typing import Any, Dict, Optional

from agents.types import ContractEnvelope, OrchestrationState, QuestionOut
from orchestrator.errors import ContractVersionMismatch

CONTRACT_VERSION = "orchestration-contract-v2"


def score_answer_contract(
    state: OrchestrationState,
    *,
    time_remaining_sec: Optional[int],
    turn_id: Optional[str],
    role: str,
) -> ContractEnvelope:
    return ContractEnvelope(
        name="score_answer",
        version=CONTRACT_VERSION,
        input={
            "timeRemainingSec": time_remaining_sec,
            "turnId": turn_id,
            "role": role,
        },
        output={
            "phase": state.phase,
            "difficulty": state.difficulty,
            "coverageCompetencies": list(state.coverage),
            "lastTransitionReason": state.last_transition_reason,
        },
    )


def next_question_contract(
    state: OrchestrationState,
    *,
    time_remaining_sec: Optional[int],
    question: Optional[QuestionOut],
) -> ContractEnvelope:
    input_echo: Dict[str, Any] = {"timeRemainingSec": time_remaining_sec}
    output: Dict[str, Any] = {
        "questionId": question.id if question else None,
        "phase": state.phase,
        "transitionReason": state.last_transition_reason,
    }
    if question is not None:
        input_echo["currentPhase"] = state.phase
        output["competency"] = question.competency
    return ContractEnvelope(name="next_question", version=CONTRACT_VERSION, input=input_echo, output=output)


def verify_contract(envelope: ContractEnvelope, expected_version: str = CONTRACT_VERSION) -> ContractEnvelope:
    """Return ``envelope`` unchanged, or raise when its version is not ``expected_version``."""

    if envelope.version != expected_version:
        raise ContractVersionMismatch(envelope.name, expected_version, envelope.version)
    return envelope


__all__ = [
    "CONTRACT_VERSION",
    "next_question_contract",
    "score_answer_contract",
    "verify_contract",
]
