"""In-memory registry of pluggable engine collaborators.

Hosts bind zero-argument factories under well-known keys; the engine
resolves them when it assembles its default dependencies.
"""
from typing import Any, Callable, Dict

SCORING_KEY = "models.scoring_adapter"
SIGNAL_KEY = "models.signal_classifier"

Factory = Callable[[], Any]

_REGISTRY: Dict[str, Factory] = {}


def bind_model(key: str, factory: Factory) -> None:
    _REGISTRY[key] = factory


def unbind_model(key: str) -> None:
    _REGISTRY.pop(key, None)


def get_model(key: str) -> Factory:
    """Return the factory bound to ``key``.

    Raises:
        KeyError: If nothing has been bound for ``key``.
    """

    try:
        return _REGISTRY[key]
    except KeyError:
        raise KeyError(f"No collaborator bound for {key}") from None


def resolve_model(key: str, default: Factory) -> Any:
    """Build the collaborator bound to ``key``, falling back to ``default``."""

    return _REGISTRY.get(key, default)()
