from __future__ import annotations

import asyncio

import pytest

from fluentgym.core.event_bus import METRICS_UPDATED, TURN_APPENDED, EventBus
from fluentgym.core.exceptions import CollaboratorTimeout, ProviderError
from fluentgym.core.json_parser import parse_llm_json
from fluentgym.core.llm_provider import GeminiLLMProvider, NullLLMProvider, get_llm_provider
from fluentgym.core.logging import redact_secrets
from fluentgym.core.resilience import CircuitBreaker, CircuitState, bounded_wait
from fluentgym.orchestrator.collaborators import (
    CompletionClient,
    JudgmentClient,
    LLMCompletionClient,
    LLMJudgmentClient,
)
from fluentgym.runtime.persistence import SessionSnapshotStore


class CannedProvider(NullLLMProvider):
    provider_name = "canned"

    def __init__(self, text):
        self.text = text
        self.calls: list[dict] = []

    async def generate(self, prompt=None, *, system_instruction=None, history=None, temperature=0.3, max_tokens=700):
        self.calls.append(
            {"prompt": prompt, "system": system_instruction, "history": history, "temperature": temperature}
        )
        return self.text, {"provider": self.provider_name}


def test_llm_json_parsing_handles_fences_and_prose():
    assert parse_llm_json('```json\n{"completed": true}\n```') == {"completed": True}
    assert parse_llm_json('Sure! {"corrections": []} Hope that helps.') == {"corrections": []}
    assert parse_llm_json([1, 2]) == [1, 2]
    assert parse_llm_json("no json here") is None
    assert parse_llm_json("") is None


def test_secret_redaction():
    line = "POST https://example.test/v1?key=abc123 x-goog-api-key: sk-999"
    redacted = redact_secrets(line)
    assert "abc123" not in redacted
    assert "sk-999" not in redacted
    assert redacted.count("[REDACTED]") == 2


def test_test_env_selects_null_provider():
    assert isinstance(get_llm_provider(role="judge"), NullLLMProvider)


def test_gemini_contents_map_roles():
    contents = GeminiLLMProvider._contents(
        "Analyze this",
        [{"role": "assistant", "content": "¡Hola!"}, {"role": "user", "content": "Hola"}],
    )
    assert [c["role"] for c in contents] == ["model", "user", "user"]
    assert contents[-1]["parts"][0]["text"] == "Analyze this"


@pytest.mark.asyncio
async def test_completion_client_requires_a_reply():
    client = LLMCompletionClient(NullLLMProvider())
    assert isinstance(client, CompletionClient)
    with pytest.raises(ProviderError) as exc_info:
        await client.complete("You are Sofia.", [{"role": "user", "content": "Hola"}])
    assert exc_info.value.details["reason"] == "unsupported_provider"

    provider = CannedProvider("¡Hola! ¿Qué tal?")
    reply = await LLMCompletionClient(provider).complete("You are Sofia.", [{"role": "user", "content": "Hola"}])
    assert reply == "¡Hola! ¿Qué tal?"
    assert provider.calls[0]["system"] == "You are Sofia."
    assert provider.calls[0]["prompt"] is None


@pytest.mark.asyncio
async def test_judgment_client_decodes_payload():
    provider = CannedProvider('```json\n{"completed": false, "rationale": "not yet"}\n```')
    client = LLMJudgmentClient(provider)
    assert isinstance(client, JudgmentClient)
    assert await client.judge("Has the learner completed ALL objectives?") == {
        "completed": False,
        "rationale": "not yet",
    }
    assert await LLMJudgmentClient(CannedProvider("I think so")).judge("?") is None


@pytest.mark.asyncio
async def test_bounded_wait_raises_collaborator_timeout():
    with pytest.raises(CollaboratorTimeout) as exc_info:
        await bounded_wait(asyncio.sleep(1), seconds=0.01, name="completion")
    assert exc_info.value.details == {"collaborator": "completion", "timeout_seconds": 0.01}
    assert await bounded_wait(asyncio.sleep(0, result="ok"), seconds=1, name="completion") == "ok"


def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker(name="llm:test", failure_threshold=2, recovery_timeout_seconds=60)
    breaker.record_failure()
    assert breaker.can_execute()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.can_execute()


@pytest.mark.asyncio
async def test_event_bus_filters_and_replays():
    bus = EventBus(history_size=3)
    for n in range(4):
        await bus.publish(TURN_APPENDED, "test", {"n": n})

    replayed = await bus.subscribe(replay_last=2)
    assert [replayed.get_nowait()["data"]["n"] for _ in range(2)] == [2, 3]

    only_metrics = await bus.subscribe(replay_last=0, event_types={METRICS_UPDATED})
    await bus.publish(TURN_APPENDED, "test", {"n": 4})
    await bus.publish(METRICS_UPDATED, "test", {"turn_count": 1})
    assert only_metrics.qsize() == 1
    assert (await only_metrics.get())["type"] == METRICS_UPDATED
    assert len(bus.history()) == 3
    assert len(bus.history(METRICS_UPDATED)) == 1

    await bus.unsubscribe(only_metrics)
    await bus.publish(METRICS_UPDATED, "test", {"turn_count": 2})
    assert only_metrics.empty()


def test_snapshot_store_round_trip(tmp_path):
    store = SessionSnapshotStore(tmp_path / "sessions")
    assert store.list_ids() == []
    store.save({"session": {"id": "abc", "state": "completed"}, "report": {"fluency_score": 81}})
    assert store.list_ids() == ["abc"]
    loaded = store.load("abc")
    assert loaded["report"]["fluency_score"] == 81
    assert "saved_at" in loaded
    assert store.load("missing") is None
