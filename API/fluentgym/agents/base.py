from abc import ABC
from typing import Any

from fluentgym.core.exceptions import EvaluationFailure, ProviderError
from fluentgym.core.json_parser import parse_llm_json
from fluentgym.core.resilience import bounded_wait
from fluentgym.core.settings import settings
from fluentgym.orchestrator.collaborators import JudgmentClient


class BaseAgent(ABC):
    """An enrichment agent backed by the structured-judgment collaborator."""

    name = "agent"
    failure: type[ProviderError] = EvaluationFailure

    def __init__(self, judge: JudgmentClient, *, timeout_seconds: float | None = None):
        self.judge = judge
        self.timeout_seconds = timeout_seconds or settings.collaborator_timeout_seconds

    async def _judge(self, prompt: str) -> Any:
        """One bounded judgment call. Returns the decoded payload (None if undecodable).

        Timeouts raise CollaboratorTimeout; any other collaborator fault is
        wrapped in ``self.failure`` so callers handle a single family.
        """
        try:
            raw = await bounded_wait(self.judge.judge(prompt), seconds=self.timeout_seconds, name=self.name)
        except ProviderError:
            raise
        except Exception as exc:
            raise self.failure(f"{self.name} failed: {exc}", details={"collaborator": self.name}) from exc
        return parse_llm_json(raw)
