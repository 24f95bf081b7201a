import math
from collections import Counter

from fluentgym.agents.base import BaseAgent
from fluentgym.core.exceptions import ProviderError
from fluentgym.core.logging import DOMAIN_FEEDBACK, get_domain_logger
from fluentgym.orchestrator.prompts import feedback_prompt
from fluentgym.schemas.session import FeedbackReport, Session

logger = get_domain_logger(__name__, DOMAIN_FEEDBACK)


def _correction_counts(session: Session) -> Counter:
    counts: Counter = Counter()
    for turn in session.user_turns():
        for correction in turn.corrections:
            counts[correction.category] += 1
    return counts


def _fallback_strengths(session: Session) -> list[str]:
    ratings = session.metrics.ratings
    strengths = ["Completed the conversation"]
    if ratings.excellent + ratings.good > ratings.okay + ratings.slow:
        strengths.append("Responded quickly in most turns")
    if session.metrics.turn_count and session.metrics.hesitation_total == 0:
        strengths.append("Spoke without hesitations")
    return strengths


def _fallback_improvements(session: Session, corrections: Counter) -> list[str]:
    improvements = []
    if session.metrics.ratings.slow:
        improvements.append("Answer within the three-second window more often")
    if corrections:
        category, _count = corrections.most_common(1)[0]
        improvements.append(f"Review {category} mistakes flagged during the session")
    if not improvements:
        improvements.append("Continue practicing")
    return improvements


def _fallback_next_steps(session: Session) -> list[str]:
    steps = ["Try another scenario"]
    if session.metrics.fluency_score < 60:
        steps.insert(0, f"Repeat '{session.scenario.title}' to build speed")
    return steps


def _vocabulary_count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class FeedbackSynthesizer(BaseAgent):
    """End-of-session report.

    The narrative (strengths, improvements, next steps, vocabulary) comes from
    the judgment collaborator; the headline score is always the locally
    computed session fluency score, whatever the collaborator claims.
    """

    name = "feedback_synthesizer"

    def fallback_report(self, session: Session) -> FeedbackReport:
        corrections = _correction_counts(session)
        return FeedbackReport(
            session_id=session.id,
            fluency_score=session.metrics.fluency_score,
            strengths=_fallback_strengths(session),
            improvements=_fallback_improvements(session, corrections),
            vocabulary_used=0,
            next_steps=_fallback_next_steps(session),
            source="fallback",
            metrics=session.metrics.model_copy(deep=True),
            corrections_total=sum(corrections.values()),
        )

    async def synthesize(self, session: Session) -> FeedbackReport:
        fallback = self.fallback_report(session)
        try:
            payload = await self._judge(feedback_prompt(session.scenario, session.language, session.turns))
        except ProviderError as exc:
            logger.warning("Feedback collaborator unavailable, using local report: %s", exc.message)
            return fallback
        if not isinstance(payload, dict):
            logger.warning("Feedback payload unparsable, using local report")
            return fallback

        return fallback.model_copy(
            update={
                "strengths": _string_list(payload.get("strengths")) or fallback.strengths,
                "improvements": _string_list(payload.get("improvements")) or fallback.improvements,
                "next_steps": _string_list(payload.get("nextSteps", payload.get("next_steps"))) or fallback.next_steps,
                "vocabulary_used": _vocabulary_count(payload.get("vocabularyUsed", payload.get("vocabulary_used"))),
                "source": "collaborator",
            }
        )
