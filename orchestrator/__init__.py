"""Adaptive interview orchestration engine public API."""
from .contract import CONTRACT_VERSION, verify_contract
from .engine import (
    EngineConfig,
    EngineDeps,
    OrchestrationEngine,
    build,
    default_engine,
    finalize,
    next_question,
    score_answer,
)
from .errors import ContractVersionMismatch, OrchestrationInputError, SessionShapeError, TurnShapeError

__all__ = [
    "CONTRACT_VERSION",
    "ContractVersionMismatch",
    "EngineConfig",
    "EngineDeps",
    "OrchestrationEngine",
    "OrchestrationInputError",
    "SessionShapeError",
    "TurnShapeError",
    "build",
    "default_engine",
    "finalize",
    "next_question",
    "score_answer",
    "verify_contract",
]
