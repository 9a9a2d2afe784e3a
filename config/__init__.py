"""Configuration package for the interview orchestration engine."""
from .registry import SCORING_KEY, SIGNAL_KEY, bind_model, get_model, resolve_model, unbind_model
from .settings import Settings, settings

__all__ = [
    "SCORING_KEY",
    "SIGNAL_KEY",
    "Settings",
    "bind_model",
    "get_model",
    "resolve_model",
    "settings",
    "unbind_model",
]
