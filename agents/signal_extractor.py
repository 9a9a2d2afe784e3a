"""Behavioral signal extraction for candidate answers.

Two independent classifiers run over the same answer text: one flags
non-answers (too short, or refusal/uncertainty phrasing) and one flags
explicit fatigue or requests to stop. Patterns come from an optional YAML
file and fall back to the built-in set when the file is missing.
"""
from __future__ import annotations

import os
import re
import time
from typing import Dict, List, Optional, Protocol

import yaml

from agents.types import SignalFlags
from config.registry import SIGNAL_KEY, resolve_model
from config.settings import settings

NON_ANSWER_MAX_WORDS = 3

DEFAULT_PATTERNS: Dict[str, List[str]] = {
    "non_answer": [
        r"\b(i\s*(do\s*not|don't)\s*know|not\s*sure|no\s*idea|pass|skip|next\s*question)\b",
    ],
    "fatigue": [
        r"\b(tired|fatigue|fatigued|exhausted|drained|can\s*we\s*wrap|let'?s\s*finish|end\s*this)\b",
    ],
}


class SignalClassifier(Protocol):
    def extract(self, answer_text: Optional[str]) -> SignalFlags:
        ...


def word_count(text: Optional[str]) -> int:
    """Count whitespace-separated words in the trimmed text."""

    if not text or not text.strip():
        return 0
    return len(text.strip().split())


def _load_yaml(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


class PatternSignalClassifier:
    """Compile and evaluate regex-based signal categories from YAML."""

    def __init__(self, path: Optional[str] = None, max_non_answer_words: int = NON_ANSWER_MAX_WORDS):
        self.path = path or settings.SIGNAL_PATTERNS_PATH
        self.max_non_answer_words = max_non_answer_words
        self._mtime = 0.0
        self._compiled: Dict[str, List[re.Pattern[str]]] = {}
        self.reload_if_changed(force=True)

    def reload_if_changed(self, force: bool = False) -> None:
        """Reload YAML patterns when the file timestamp changes."""

        try:
            stat = os.stat(self.path)
            if not force and stat.st_mtime <= self._mtime:
                return
            cfg = _load_yaml(self.path)
            self._mtime = stat.st_mtime
        except FileNotFoundError:
            if not force and self._compiled:
                return
            cfg = {"signals": DEFAULT_PATTERNS}
            self._mtime = time.time()

        signals = cfg.get("signals") or {}
        self._compiled = {
            name: [re.compile(pattern, re.IGNORECASE) for pattern in signals.get(name) or DEFAULT_PATTERNS[name]]
            for name in DEFAULT_PATTERNS
        }
        if "max_non_answer_words" in cfg:
            self.max_non_answer_words = int(cfg["max_non_answer_words"])

    def _matches(self, category: str, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._compiled.get(category, []))

    def extract(self, answer_text: Optional[str]) -> SignalFlags:
        self.reload_if_changed()
        text = answer_text.strip() if isinstance(answer_text, str) else ""
        is_non_answer = word_count(text) <= self.max_non_answer_words or self._matches("non_answer", text)
        is_fatigued = self._matches("fatigue", text)
        return SignalFlags(is_non_answer=is_non_answer, is_fatigued=is_fatigued)


_classifier: Optional[PatternSignalClassifier] = None


def pattern_classifier() -> PatternSignalClassifier:
    global _classifier
    if _classifier is None:
        _classifier = PatternSignalClassifier()
    return _classifier


def resolve_classifier() -> SignalClassifier:
    """Return the registry-bound classifier, or the default pattern classifier."""

    return resolve_model(SIGNAL_KEY, pattern_classifier)


def extract_signals(answer_text: Optional[str]) -> SignalFlags:
    """Convenience wrapper classifying ``answer_text`` with the active classifier."""

    return resolve_classifier().extract(answer_text)


__all__ = [
    "DEFAULT_PATTERNS",
    "PatternSignalClassifier",
    "SignalClassifier",
    "extract_signals",
    "pattern_classifier",
    "resolve_classifier",
    "word_count",
]
