"""Lightweight CLI for inspecting a persisted interview session record."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from observability.logger import configure_logging
from orchestrator.engine import OrchestrationEngine


def load_session(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def inspect_session(
    session: Dict[str, Any],
    *,
    engine: OrchestrationEngine,
    next_question: bool = False,
    finalize: bool = False,
    time_remaining: Optional[float] = None,
) -> Dict[str, Any]:
    """Run a read-only engine operation and return a JSON-ready payload."""

    if finalize:
        return {"orchestration": engine.finalize(session).to_record()}
    if next_question:
        result = engine.next_question(session, time_remaining)
        return result.model_dump(mode="json", by_alias=True)
    return {"orchestration": engine.build(session).to_record()}


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Inspect orchestration state for a session JSON file")
    parser.add_argument("session", type=Path, help="Path to a session document")
    parser.add_argument("--next-question", action="store_true", help="Show the next question decision")
    parser.add_argument("--time-remaining", type=float, help="Seconds left in the session")
    parser.add_argument("--finalize", action="store_true", help="Show the finalized state")
    parser.add_argument("--verbose", action="store_true", help="Keep engine log lines on stdout")
    args = parser.parse_args(argv)
    configure_logging(None if args.verbose else logging.WARNING)

    payload = inspect_session(
        load_session(args.session),
        engine=OrchestrationEngine(),
        next_question=args.next_question,
        finalize=args.finalize,
        time_remaining=args.time_remaining,
    )
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
