from __future__ import annotations

import pytest

from fakes import ManualClock, NeverAnswers, ScriptedJudge
from fluentgym.agents.correction import CorrectionAnalyzer
from fluentgym.agents.feedback import FeedbackSynthesizer
from fluentgym.agents.objective import ObjectiveEvaluator
from fluentgym.core.exceptions import ProviderError
from fluentgym.data.catalog import get_personality, get_scenario
from fluentgym.orchestrator.metrics import MetricsAggregator
from fluentgym.schemas.session import Correction, LanguageSettings, Session, Turn

GOOD_ENTRY = {
    "original": "Yo soy hambre",
    "corrected": "Tengo hambre",
    "explanation": "Hunger is expressed with tener.",
    "category": "grammar",
}


def _turns(clock: ManualClock, *pairs: tuple[str, str]) -> list[Turn]:
    return [Turn(role=role, content=content, timestamp=clock.now()) for role, content in pairs]


# Correction analysis


@pytest.mark.asyncio
async def test_corrections_are_validated_field_by_field():
    judge = ScriptedJudge(
        corrections={
            "corrections": [
                GOOD_ENTRY,
                {"original": "la cafe", "corrected": "el café", "explanation": "Gender.", "errorType": "Vocabulary"},
                {"original": "x", "corrected": "y", "explanation": "bad category", "category": "pronunciation"},
                {"original": "missing fields"},
                {"original": "same", "corrected": "same", "explanation": "no change", "category": "syntax"},
                "not an object",
            ]
        }
    )
    corrections = await CorrectionAnalyzer(judge).analyze("Yo soy hambre y quiero la cafe", "es", "beginner")
    assert corrections == [
        Correction(**GOOD_ENTRY),
        Correction(original="la cafe", corrected="el café", explanation="Gender.", category="vocabulary"),
    ]
    assert judge.calls["corrections"] == 1
    assert "Spanish" in judge.prompts["corrections"][0]


@pytest.mark.asyncio
async def test_bare_array_payload_is_accepted():
    judge = ScriptedJudge(corrections=[GOOD_ENTRY])
    corrections = await CorrectionAnalyzer(judge).analyze("Yo soy hambre", "es", "beginner")
    assert [c.corrected for c in corrections] == ["Tengo hambre"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        "Sorry, I cannot help with that.",
        "{not json",
        {"corrections": "none"},
        {"errors": [GOOD_ENTRY]},
        42,
    ],
)
async def test_malformed_payload_yields_empty_list(payload):
    judge = ScriptedJudge(corrections=payload)
    assert await CorrectionAnalyzer(judge).analyze("Hola", "es", "beginner") == []


@pytest.mark.asyncio
async def test_json_wrapped_in_prose_is_recovered():
    judge = ScriptedJudge(corrections='Here you go:\n```json\n{"corrections": [%s]}\n```' % (
        '{"original": "Yo soy hambre", "corrected": "Tengo hambre", '
        '"explanation": "Use tener.", "category": "grammar"}'
    ))
    corrections = await CorrectionAnalyzer(judge).analyze("Yo soy hambre", "es", "beginner")
    assert len(corrections) == 1


@pytest.mark.asyncio
async def test_correction_provider_failure_and_timeout_degrade_to_empty():
    failing = ScriptedJudge(errors={"corrections": ProviderError("upstream 500")})
    crashing = ScriptedJudge(errors={"corrections": RuntimeError("socket closed")})
    assert await CorrectionAnalyzer(failing).analyze("Hola", "es", "beginner") == []
    assert await CorrectionAnalyzer(crashing).analyze("Hola", "es", "beginner") == []
    assert await CorrectionAnalyzer(NeverAnswers(), timeout_seconds=0.05).analyze("Hola", "es", "beginner") == []


@pytest.mark.asyncio
async def test_blank_utterance_skips_the_collaborator():
    judge = ScriptedJudge()
    assert await CorrectionAnalyzer(judge).analyze("   ", "es", "beginner") == []
    assert judge.calls["corrections"] == 0


# Objective evaluation


@pytest.mark.asyncio
async def test_objective_verdict_is_taken_from_payload():
    clock = ManualClock()
    judge = ScriptedJudge(objective={"completed": True, "rationale": "Ordered and paid."})
    verdict = await ObjectiveEvaluator(judge).evaluate(
        ["Greet the barista", "Order a drink"],
        _turns(clock, ("assistant", "¡Hola!"), ("user", "Hola, un café por favor")),
        scenario_title="Ordering at a Café",
    )
    assert verdict.completed is True
    assert verdict.rationale == "Ordered and paid."
    prompt = judge.prompts["objective"][0]
    assert "1. Greet the barista" in prompt and "user: Hola, un café por favor" in prompt


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"completed": "true"}, {"completed": 1}, ["completed"], "yes", {}])
async def test_non_boolean_verdicts_count_as_incomplete(payload):
    verdict = await ObjectiveEvaluator(ScriptedJudge(objective=payload)).evaluate(["Greet"], [])
    assert verdict.completed is False


@pytest.mark.asyncio
async def test_objective_failure_degrades_to_incomplete():
    judge = ScriptedJudge(errors={"objective": RuntimeError("boom")})
    verdict = await ObjectiveEvaluator(judge).evaluate(["Greet"], [])
    assert verdict.completed is False
    assert "evaluation_failure" in verdict.rationale

    timed_out = await ObjectiveEvaluator(NeverAnswers(), timeout_seconds=0.05).evaluate(["Greet"], [])
    assert timed_out.completed is False
    assert "timeout" in timed_out.rationale


@pytest.mark.asyncio
async def test_no_objectives_never_completes_or_calls_the_collaborator():
    judge = ScriptedJudge(objective={"completed": True})
    verdict = await ObjectiveEvaluator(judge).evaluate([], [])
    assert verdict.completed is False
    assert judge.calls["objective"] == 0


# Feedback synthesis


def _finished_session(clock: ManualClock) -> Session:
    session = Session(
        scenario=get_scenario("cafe-order"),
        personality=get_personality("patient-guide"),
        language=LanguageSettings(),
        started_at=clock.now(),
    )
    aggregator = MetricsAggregator(session.metrics)
    for latency, hesitations in [(400, 0), (1500, 1), (3500, 0)]:
        aggregator.record_turn(latency, hesitations)
    session.turns = _turns(clock, ("user", "Hola"), ("assistant", "¡Hola! ¿Qué desea?"))
    session.turns[0] = session.turns[0].model_copy(update={"corrections": (Correction(**GOOD_ENTRY),)})
    return session


@pytest.mark.asyncio
async def test_report_uses_local_fluency_score_over_collaborator_score():
    session = _finished_session(ManualClock())
    judge = ScriptedJudge()
    report = await FeedbackSynthesizer(judge).synthesize(session)
    assert report.fluency_score == 78
    assert report.source == "collaborator"
    assert report.strengths == ["Clear greetings"]
    assert report.vocabulary_used == 14
    assert report.next_steps == ["Try the restaurant scenario"]
    assert report.corrections_total == 1
    assert judge.calls["feedback"] == 1


@pytest.mark.asyncio
async def test_failing_feedback_collaborator_yields_deterministic_report():
    session = _finished_session(ManualClock())
    judge = ScriptedJudge(errors={"feedback": ProviderError("quota exceeded")})
    report = await FeedbackSynthesizer(judge).synthesize(session)
    assert report.source == "fallback"
    assert report.fluency_score == 78
    assert report.vocabulary_used == 0
    assert report.strengths and report.improvements and report.next_steps
    assert "Review grammar mistakes flagged during the session" in report.improvements
    assert report == FeedbackSynthesizer(judge).fallback_report(session)


@pytest.mark.asyncio
async def test_partial_feedback_payload_falls_back_per_field():
    session = _finished_session(ManualClock())
    judge = ScriptedJudge(feedback={"strengths": [], "improvements": ["Slow down"], "vocabularyUsed": "lots"})
    report = await FeedbackSynthesizer(judge).synthesize(session)
    assert report.improvements == ["Slow down"]
    assert report.strengths == ["Completed the conversation", "Responded quickly in most turns"]
    assert report.vocabulary_used == 0
    assert report.next_steps


@pytest.mark.asyncio
@pytest.mark.parametrize("vocabulary", [float("nan"), float("inf"), float("-inf"), "12", -3, True, None])
async def test_unusable_vocabulary_counts_fall_back_to_zero(vocabulary):
    session = _finished_session(ManualClock())
    judge = ScriptedJudge(feedback={"strengths": ["Good pace"], "vocabularyUsed": vocabulary})
    report = await FeedbackSynthesizer(judge).synthesize(session)
    assert report.vocabulary_used == 0
    assert report.strengths == ["Good pace"]
    assert report.source == "collaborator"
