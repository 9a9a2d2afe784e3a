"""Input-shape errors raised by the public engine operations."""
from __future__ import annotations


class OrchestrationInputError(ValueError):
    """A request field is missing or is not a structured value."""

    code = "input_must_be_object"
    field = "input"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation}: {self.field} must be a structured value")


class SessionShapeError(OrchestrationInputError):
    code = "session_must_be_object"
    field = "session"


class TurnShapeError(OrchestrationInputError):
    code = "turn_must_be_object"
    field = "turn"


class ContractVersionMismatch(RuntimeError):
    """A response envelope carries a contract version the caller does not expect."""

    def __init__(self, name: str, expected: str, actual: str):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"{name}: expected contract {expected}, got {actual}")


__all__ = [
    "ContractVersionMismatch",
    "OrchestrationInputError",
    "SessionShapeError",
    "TurnShapeError",
]
