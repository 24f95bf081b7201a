"""Collaborator interfaces consumed by the practice engine, plus LLM-backed implementations."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from fluentgym.core.exceptions import ProviderError
from fluentgym.core.json_parser import parse_llm_json
from fluentgym.core.llm_provider import BaseLLMProvider, get_llm_provider
from fluentgym.core.settings import settings


@runtime_checkable
class CompletionClient(Protocol):
    async def complete(self, system_instructions: str, turn_history: list[dict]) -> str: ...


@runtime_checkable
class JudgmentClient(Protocol):
    async def judge(self, prompt: str) -> Any: ...


@runtime_checkable
class Transcriber(Protocol):
    async def transcribe(self, audio_handle: Any) -> str: ...


@runtime_checkable
class Clock(Protocol):
    def monotonic(self) -> float: ...

    def now(self) -> datetime: ...


@runtime_checkable
class SnapshotSink(Protocol):
    def save(self, snapshot: dict) -> None: ...


class LLMCompletionClient:
    """Conversation replies from a chat-capable provider."""

    def __init__(self, provider: BaseLLMProvider | None = None):
        self.provider = provider or get_llm_provider(role="conversation")

    async def complete(self, system_instructions: str, turn_history: list[dict]) -> str:
        text, usage = await self.provider.generate(
            system_instruction=system_instructions,
            history=turn_history,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        )
        if not text:
            raise ProviderError(
                f"{self.provider.provider_name} returned no reply",
                details={"reason": usage.get("reason", "empty_response")},
            )
        return text


class LLMJudgmentClient:
    """Structured judgments: the provider is asked for JSON and the text is decoded best-effort.

    The decoded value is returned as-is; shape validation belongs to the consumer.
    """

    def __init__(self, provider: BaseLLMProvider | None = None):
        self.provider = provider or get_llm_provider(role="judge")

    async def judge(self, prompt: str) -> Any:
        text, usage = await self.provider.generate(
            prompt,
            temperature=settings.judgment_temperature,
            max_tokens=settings.judgment_max_tokens,
        )
        if not text:
            raise ProviderError(
                f"{self.provider.provider_name} returned no judgment",
                details={"reason": usage.get("reason", "empty_response")},
            )
        return parse_llm_json(text)
