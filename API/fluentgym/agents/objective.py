from fluentgym.agents.base import BaseAgent
from fluentgym.core.exceptions import ProviderError
from fluentgym.core.logging import DOMAIN_EVALUATION, get_domain_logger
from fluentgym.orchestrator.prompts import objective_prompt
from fluentgym.schemas.session import ObjectiveVerdict, Turn

logger = get_domain_logger(__name__, DOMAIN_EVALUATION)


class ObjectiveEvaluator(BaseAgent):
    """Judges whether a transcript window satisfies the scenario objectives.

    Every call is a single oracle query whose answer is consumed as given;
    anything other than an explicit boolean ``true`` counts as not completed.
    """

    name = "objective_evaluator"

    async def evaluate(
        self,
        objectives: list[str],
        recent_turns: list[Turn],
        *,
        scenario_title: str = "practice conversation",
    ) -> ObjectiveVerdict:
        if not objectives:
            return ObjectiveVerdict(completed=False, rationale="scenario has no objectives")
        try:
            payload = await self._judge(objective_prompt(scenario_title, objectives, recent_turns))
        except ProviderError as exc:
            logger.warning("Objective evaluation unavailable: %s", exc.message)
            return ObjectiveVerdict(completed=False, rationale=f"evaluation unavailable: {exc.code}")
        if not isinstance(payload, dict):
            return ObjectiveVerdict(completed=False, rationale="unparsable evaluation")
        rationale = payload.get("rationale", payload.get("reason", ""))
        return ObjectiveVerdict(
            completed=payload.get("completed") is True,
            rationale=rationale if isinstance(rationale, str) else "",
        )
