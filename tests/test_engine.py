from datetime import datetime, timedelta, timezone

import pytest

from conftest import FIXED_NOW, QUESTIONS, SOLID_ANSWER, ScriptedScoringAdapter, make_session, persist
from orchestrator import (
    CONTRACT_VERSION,
    SessionShapeError,
    TurnShapeError,
)
from orchestrator.engine import EngineConfig, EngineDeps, OrchestrationEngine, coerce_time_remaining


def _turn(text=SOLID_ANSWER, turn_id="t1", **extra):
    return {"turnId": turn_id, "text": text, **extra}


# --- scenarios -------------------------------------------------------------


def test_fresh_session_opens_in_intro(engine):
    result = engine.next_question(make_session(), 500)

    assert result.orchestration.phase == "intro"
    assert result.orchestration.last_transition_reason == "opening_turns:next_question"
    assert result.question.id == "q-intro"
    assert result.question.text == "Tell me about yourself."
    assert result.question.competency == "motivation"


@pytest.mark.parametrize("phase", ["intro", "calibration", "core", "deep_dive", "wrap_up"])
def test_critical_time_forces_wrap_up(engine, phase):
    session = make_session(orchestration={"phase": phase})
    result = engine.next_question(session, 40)

    assert result.orchestration.phase == "wrap_up"
    assert result.orchestration.last_transition_reason.startswith("time_remaining_critical:")


def test_two_non_answers_end_the_interview(engine):
    session = make_session()
    first = engine.score_answer(session, _turn("I don't know", "t1"), 600)
    assert first.signals.is_non_answer is True
    assert first.orchestration.non_answer_streak == 1
    assert first.orchestration.phase == "calibration"

    session = persist(session, first)
    second = engine.score_answer(session, _turn("I don't know", "t2"), 540)

    assert second.orchestration.non_answer_streak == 2
    assert second.orchestration.non_answer_signals == 2
    assert second.orchestration.phase == "wrap_up"
    assert second.orchestration.last_transition_reason == "fatigue_or_non_answer_threshold_met:score_answer"


def test_strong_coverage_moves_to_deep_dive(adapter, engine):
    adapter.default = 4.0
    session = make_session()
    phases = []
    for n in range(3):
        result = engine.score_answer(session, _turn(f"{SOLID_ANSWER} Turn {n}.", f"t{n}"), 900)
        phases.append(result.orchestration.phase)
        session = persist(session, result)

    assert phases == ["calibration", "core", "deep_dive"]
    state = result.orchestration
    assert state.last_transition_reason == "coverage_and_score_ready_for_deep_dive:score_answer"
    assert [entry.to_phase for entry in state.phase_history] == ["calibration", "core", "deep_dive"]


def test_finalize_without_start_uses_end_time(engine):
    ended = datetime(2026, 1, 5, 11, 30, tzinfo=timezone.utc)
    state = engine.finalize(make_session(), ended)

    assert state.phase == "wrap_up"
    assert state.started_at == ended
    assert state.ended_at == ended
    assert state.duration_sec == 0


# --- score_answer ----------------------------------------------------------


def test_score_answer_updates_state(adapter, engine):
    adapter.scores = {SOLID_ANSWER: 4.0}
    session = make_session()
    result = engine.score_answer(session, _turn(), 600)
    state = result.orchestration

    assert adapter.calls == [
        {
            "answer_text": SOLID_ANSWER,
            "competency": "motivation",
            "turn_id": "t1",
            "question_id": "q-intro",
            "difficulty": "medium",
        }
    ]
    assert state.asked_question_ids == ["q-intro"]
    assert state.last_question_id == "q-intro"
    assert state.coverage["motivation"].answer_count == 1
    assert state.coverage["motivation"].average_score == 4.0
    assert state.difficulty == "hard"
    assert len(state.turn_assessments) == 1
    assert result.assessment.score == 4.0
    assert [e.quote for e in state.evidence_candidates] == [SOLID_ANSWER[:40]]
    assert state.non_answer_streak == 0
    assert "orchestration" not in session


def test_score_answer_contract(engine):
    result = engine.score_answer(make_session(), _turn(role="candidate"), 300.4)
    contract = result.contract

    assert contract.name == "score_answer"
    assert contract.version == CONTRACT_VERSION
    assert contract.input == {"timeRemainingSec": 300, "turnId": "t1", "role": "candidate"}
    assert contract.output["phase"] == result.orchestration.phase
    assert contract.output["coverageCompetencies"] == ["motivation"]
    assert contract.output["lastTransitionReason"] == result.orchestration.last_transition_reason


def test_real_answer_resets_streak(engine):
    session = make_session(orchestration={"nonAnswerStreak": 1, "nonAnswerSignals": 1, "turnAssessments": [{"score": 1}]})
    result = engine.score_answer(session, _turn(turn_id="t2"))
    assert result.orchestration.non_answer_streak == 0
    assert result.orchestration.non_answer_signals == 1


def test_fatigue_signals_accumulate(engine):
    session = make_session()
    for n in range(2):
        result = engine.score_answer(session, _turn("I am exhausted, can we wrap this up soon please", f"t{n}"))
        session = persist(session, result)
    state = result.orchestration
    assert state.fatigue_signals == 2
    assert state.phase == "wrap_up"


def test_running_mean_per_competency(adapter, engine):
    adapter.scores = {"first answer about the rate limiter design": 2.0, "second answer about the regional limiter": 5.0}
    questions = [
        {"id": "a", "text": "x", "competency": "system_design"},
        {"id": "b", "text": "y", "competency": "system_design"},
    ]
    session = make_session(questions)
    session = persist(session, engine.score_answer(session, _turn("first answer about the rate limiter design")))
    result = engine.score_answer(session, _turn("second answer about the regional limiter", "t2"))

    entry = result.orchestration.coverage["system_design"]
    assert entry.answer_count == 2
    assert entry.average_score == pytest.approx(3.5)


def test_score_answer_is_not_idempotent(engine):
    session = make_session()
    first = persist(session, engine.score_answer(session, _turn()))
    second = engine.score_answer(first, _turn())
    assert len(second.orchestration.turn_assessments) == 2
    assert second.orchestration.asked_question_ids == ["q-intro", "q-arch"]


def test_questions_without_ids_use_ordinal_ids(engine):
    session = make_session([{"text": "First?"}, {"text": "Second?"}])
    session = persist(session, engine.score_answer(session, _turn()))
    assert session["orchestration"]["askedQuestionIds"] == ["q1"]

    result = engine.next_question(session)
    assert result.question.id == "q2"


def test_answers_beyond_question_list(engine):
    session = make_session([{"id": "only"}], orchestration={"turnAssessments": [{"score": 3}], "askedQuestionIds": ["only"], "lastQuestionId": "only"})
    result = engine.score_answer(session, _turn())
    assert result.orchestration.asked_question_ids == ["only"]
    assert result.orchestration.last_question_id == "only"
    assert result.orchestration.coverage["general"].answer_count == 1


def test_evidence_is_bounded(engine):
    evidence = [{"quote": f"e{i}"} for i in range(12)]
    session = make_session(orchestration={"evidenceCandidates": evidence})
    result = engine.score_answer(session, _turn())
    quotes = [e.quote for e in result.orchestration.evidence_candidates]
    assert len(quotes) == 12
    assert quotes[0] == "e1"
    assert quotes[-1] == SOLID_ANSWER[:40]


def test_difficulty_kept_when_adapter_omits_it(classifier, fixed_now):
    class NoDifficulty(ScriptedScoringAdapter):
        def score_answer(self, **kwargs):
            return super().score_answer(**kwargs).model_copy(update={"difficulty_after": None})

    engine = OrchestrationEngine(EngineConfig(), EngineDeps(scoring=NoDifficulty(default=5), classifier=classifier, now=lambda: fixed_now))
    session = make_session(orchestration={"difficulty": "easy"})
    assert engine.score_answer(session, _turn()).orchestration.difficulty == "easy"


def test_adapter_errors_propagate(classifier, fixed_now):
    class Broken(ScriptedScoringAdapter):
        def score_answer(self, **kwargs):
            raise RuntimeError("model unavailable")

    engine = OrchestrationEngine(EngineConfig(), EngineDeps(scoring=Broken(), classifier=classifier, now=lambda: fixed_now))
    with pytest.raises(RuntimeError, match="model unavailable"):
        engine.score_answer(make_session(), _turn())


# --- input validation ------------------------------------------------------


@pytest.mark.parametrize("session", [None, [], ["x"], "session", 3])
def test_invalid_session(adapter, engine, session):
    with pytest.raises(SessionShapeError) as excinfo:
        engine.score_answer(session, _turn())
    assert excinfo.value.code == "session_must_be_object"
    assert "session must be a structured value" in str(excinfo.value)
    assert adapter.calls == []

    with pytest.raises(SessionShapeError):
        engine.next_question(session)


@pytest.mark.parametrize("turn", [None, [], "answer"])
def test_invalid_turn(adapter, engine, turn):
    with pytest.raises(TurnShapeError) as excinfo:
        engine.score_answer(make_session(), turn)
    assert excinfo.value.code == "turn_must_be_object"
    assert excinfo.value.operation == "score_answer"
    assert adapter.calls == []


@pytest.mark.parametrize(
    "value,expected",
    [(120.5, 121), (119.4, 119), (-3, 0), (0, 0), (None, None), ("60", None), (True, None), (float("inf"), None)],
)
def test_coerce_time_remaining(value, expected):
    assert coerce_time_remaining(value) == expected


def test_non_numeric_time_is_ignored(engine):
    result = engine.next_question(make_session(), "10")
    assert result.orchestration.phase == "intro"
    assert result.contract.input["timeRemainingSec"] is None


def test_negative_time_counts_as_zero(engine):
    result = engine.next_question(make_session(), -20)
    assert result.orchestration.phase == "wrap_up"
    assert result.contract.input["timeRemainingSec"] == 0


# --- next_question ---------------------------------------------------------


def test_next_question_does_not_mark_asked(engine):
    session = make_session()
    first = engine.next_question(session)
    second = engine.next_question(persist(session, first))

    assert first.orchestration.last_question_id == "q-intro"
    assert first.orchestration.asked_question_ids == []
    assert second.question.id == "q-intro"


def test_next_question_contract(engine):
    result = engine.next_question(make_session(), 700)
    assert result.contract.name == "next_question"
    assert result.contract.version == CONTRACT_VERSION
    assert result.contract.input == {"timeRemainingSec": 700, "currentPhase": "intro"}
    assert result.contract.output == {
        "questionId": "q-intro",
        "phase": "intro",
        "transitionReason": "opening_turns:next_question",
        "competency": "motivation",
    }


def test_core_phase_prefers_uncovered_competency(engine):
    orchestration = {
        "phase": "calibration",
        "turnAssessments": [{"score": 2}, {"score": 2}, {"score": 2}],
        "askedQuestionIds": ["q-intro", "q-team"],
        "coverage": {
            "motivation": {"answerCount": 1, "averageScore": 2},
            "system_design": {"answerCount": 1, "averageScore": 2},
            "collaboration": {"answerCount": 1, "averageScore": 2},
        },
    }
    result = engine.next_question(make_session(orchestration=orchestration), 900)

    assert result.orchestration.phase == "core"
    assert result.question.id == "q-debug"


def test_deep_dive_probes_weakest_scored_competency(engine):
    orchestration = {
        "phase": "core",
        "turnAssessments": [{"score": 4}, {"score": 3.1}, {"score": 4.5}],
        "askedQuestionIds": ["q-intro", "q-arch", "q-team"],
        "coverage": {
            "motivation": {"answerCount": 1, "averageScore": 4},
            "system_design": {"answerCount": 1, "averageScore": 3.1},
            "collaboration": {"answerCount": 1, "averageScore": 4.5},
        },
    }
    result = engine.next_question(make_session(orchestration=orchestration), 900)

    assert result.orchestration.phase == "deep_dive"
    assert result.question.id == "q-arch-2"


def test_no_questions_remaining_forces_wrap_up(engine):
    asked = [q["id"] for q in QUESTIONS]
    session = make_session(orchestration={"phase": "core", "askedQuestionIds": asked, "turnAssessments": [{"score": 3}] * 6})
    result = engine.next_question(session, 900)

    assert result.question is None
    assert result.orchestration.phase == "wrap_up"
    assert result.orchestration.last_transition_reason == "no_questions_remaining:next_question"
    assert result.orchestration.phase_history[-1].from_phase == "core"
    assert result.contract.output["questionId"] is None
    assert result.contract.input == {"timeRemainingSec": 900}


def test_empty_question_list(engine):
    result = engine.next_question(make_session([]))
    assert result.question is None
    assert result.orchestration.phase == "wrap_up"


def test_wrap_up_persisted_state_stays_wrap_up(engine):
    session = make_session(orchestration={"phase": "wrap_up"})
    result = engine.next_question(session, 3000)
    assert result.orchestration.phase == "wrap_up"
    assert result.orchestration.last_transition_reason == "opening_turns:next_question"
    assert result.question.id == "q-intro"


# --- finalize and build ----------------------------------------------------


def test_finalize_computes_duration(engine):
    started = FIXED_NOW - timedelta(minutes=12, seconds=30, milliseconds=600)
    session = make_session(orchestration={"phase": "core", "startedAt": started.isoformat()})
    state = engine.finalize(session, FIXED_NOW.isoformat())

    assert state.phase == "wrap_up"
    assert state.started_at == started
    assert state.duration_sec == 751
    assert state.phase_history[-1].reason == "session_finalized:finalize"


def test_finalize_defaults_to_now(engine):
    session = make_session(startedAt="2026-01-05T09:00:00Z")
    state = engine.finalize(session)
    assert state.ended_at == FIXED_NOW
    assert state.duration_sec == 3600


def test_finalize_clamps_negative_duration(engine):
    session = make_session(orchestration={"startedAt": "2026-01-05T12:00:00Z"})
    assert engine.finalize(session, FIXED_NOW).duration_sec == 0


@pytest.mark.parametrize("session", [None, [], "garbage"])
def test_finalize_never_raises(engine, session):
    state = engine.finalize(session, FIXED_NOW)
    assert state.phase == "wrap_up"
    assert state.duration_sec == 0


@pytest.mark.parametrize("ended_at", ["9999-12-31T23:59:59-05:00", "0001-01-01T00:00:00+05:00"])
def test_finalize_ignores_unrepresentable_end_time(engine, ended_at):
    state = engine.finalize(make_session(), ended_at)
    assert state.ended_at == FIXED_NOW
    assert state.duration_sec == 0


def test_unrepresentable_persisted_start_time_is_ignored(engine):
    session = make_session(orchestration={"phase": "core", "startedAt": "0001-01-01T00:00:00+05:00"})
    assert engine.build(session).started_at is None
    assert engine.next_question(session, 900).question is not None
    assert engine.finalize(session, FIXED_NOW).duration_sec == 0


def test_build_exposes_restored_state(engine):
    session = make_session(orchestration={"phase": "core", "difficulty": "hard"})
    state = engine.build(session)
    assert state.phase == "core"
    assert state.difficulty == "hard"
    assert state.to_record()["phase"] == "core"


def test_inputs_are_never_mutated(engine):
    orchestration = {"phase": "calibration", "askedQuestionIds": ["q-intro"], "turnAssessments": [{"score": 3}]}
    session = make_session(orchestration=orchestration)
    engine.score_answer(session, _turn())
    engine.next_question(session, 30)
    engine.finalize(session, FIXED_NOW)
    assert orchestration == {"phase": "calibration", "askedQuestionIds": ["q-intro"], "turnAssessments": [{"score": 3}]}


def test_module_level_operations_use_default_engine():
    import orchestrator

    session = make_session()
    result = orchestrator.score_answer(session, _turn())
    assert result.orchestration.scoring_version == "heuristic-scoring-v1"
    assert result.orchestration.contract_version == CONTRACT_VERSION
    assert orchestrator.default_engine() is orchestrator.default_engine()

    upcoming = orchestrator.next_question(persist(session, result), 900)
    assert upcoming.question.id == "q-arch"


def test_finalize_logs_duration_in_seconds(engine, monkeypatch):
    import orchestrator.engine as engine_mod

    events = []
    monkeypatch.setattr(engine_mod, "log_event", lambda kind, session_id, **fields: events.append((kind, fields)))
    engine.finalize(make_session(startedAt="2026-01-05T09:59:00Z"), FIXED_NOW)

    kind, fields = events[-1]
    assert kind == "session_finalized"
    assert fields["duration_sec"] == 60
    assert "ms" not in fields
