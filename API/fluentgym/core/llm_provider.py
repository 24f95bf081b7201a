from abc import ABC, abstractmethod
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from fluentgym.core.logging import DOMAIN_PROVIDERS, get_domain_logger
from fluentgym.core.resilience import get_breaker, retry_with_backoff
from fluentgym.core.settings import settings

logger = get_domain_logger(__name__, DOMAIN_PROVIDERS)


def _estimate_tokens(text: str) -> int:
    # Lightweight deterministic estimate used for observability without provider-specific token APIs.
    return max(1, len((text or "").strip()) // 4)


def _usage(provider: str, model: str, role: str, prompt_text: str, text: str) -> dict:
    prompt_tokens = _estimate_tokens(prompt_text)
    completion_tokens = _estimate_tokens(text)
    return {
        "provider": provider,
        "model": model,
        "role": role,
        "prompt_tokens_estimate": prompt_tokens,
        "completion_tokens_estimate": completion_tokens,
        "total_tokens_estimate": prompt_tokens + completion_tokens,
    }


class BaseLLMProvider(ABC):
    """Text generation backend.

    ``history`` is a list of ``{"role": "user" | "assistant", "content": str}``
    entries; ``prompt`` is appended as the final user message when given.
    Returns ``(text, usage)`` where text is None when the provider produced
    nothing usable; transport failures raise.
    """

    provider_name: str

    @abstractmethod
    async def generate(
        self,
        prompt: str | None = None,
        *,
        system_instruction: str | None = None,
        history: list[dict] | None = None,
        temperature: float = 0.3,
        max_tokens: int = 700,
    ) -> tuple[str | None, dict]:
        raise NotImplementedError


class GeminiLLMProvider(BaseLLMProvider):
    provider_name = "gemini"

    def __init__(self, model_name: str | None = None, role: str | None = None):
        self.model_name = model_name or settings.llm_model
        self.role = role or "conversation"

    @staticmethod
    def _sanitize_url(raw_url: str) -> str:
        parsed = urlparse(raw_url)
        if not parsed.query:
            return raw_url
        filtered = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k.lower() != "key"]
        return urlunparse(parsed._replace(query=urlencode(filtered)))

    def _api_url(self) -> str:
        api_url = settings.gemini_api_url.strip()
        if not api_url:
            api_url = (
                f"https://generativelanguage.googleapis.com/v1beta/models/"
                f"{self.model_name}:generateContent"
            )
        return self._sanitize_url(api_url)

    @staticmethod
    def _contents(prompt: str | None, history: list[dict] | None) -> list[dict]:
        contents = []
        for message in history or []:
            role = "model" if message.get("role") == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": str(message.get("content", ""))}]})
        if prompt:
            contents.append({"role": "user", "parts": [{"text": prompt}]})
        return contents

    async def generate(
        self,
        prompt: str | None = None,
        *,
        system_instruction: str | None = None,
        history: list[dict] | None = None,
        temperature: float = 0.3,
        max_tokens: int = 700,
    ) -> tuple[str | None, dict]:
        if not settings.gemini_api_key:
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "missing_api_key"}

        payload: dict = {
            "contents": self._contents(prompt, history),
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        breaker = get_breaker(f"llm:{self.provider_name}:{self.model_name}:{self.role}")
        if not breaker.can_execute():
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "circuit_open"}

        prompt_text = "\n".join(
            [system_instruction or ""] + [m.get("content", "") for m in history or []] + [prompt or ""]
        )

        async def _call():
            async with httpx.AsyncClient(timeout=20.0) as client:
                response = await client.post(
                    self._api_url(),
                    json=payload,
                    headers={"x-goog-api-key": settings.gemini_api_key},
                )
                response.raise_for_status()
                data = response.json()
                candidates = data.get("candidates", [])
                if not candidates:
                    return None, {
                        "provider": self.provider_name,
                        "model": self.model_name,
                        "reason": "no_candidates",
                    }
                parts = candidates[0].get("content", {}).get("parts", [])
                text = "\n".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
                return (text or None), _usage(self.provider_name, self.model_name, self.role, prompt_text, text)

        try:
            result = await retry_with_backoff(_call)
            breaker.record_success()
            return result
        except Exception as exc:
            breaker.record_failure()
            status = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning("Gemini call failed | model=%s | role=%s | status=%s", self.model_name, self.role, status)
            raise


class OllamaLLMProvider(BaseLLMProvider):
    provider_name = "ollama"

    def __init__(self, model_name: str, role: str | None = None):
        self.model_name = model_name
        self.role = role or "conversation"

    async def generate(
        self,
        prompt: str | None = None,
        *,
        system_instruction: str | None = None,
        history: list[dict] | None = None,
        temperature: float = 0.3,
        max_tokens: int = 700,
    ) -> tuple[str | None, dict]:
        breaker = get_breaker(f"llm:{self.provider_name}:{self.model_name}:{self.role}")
        if not breaker.can_execute():
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "circuit_open"}

        messages: list[dict] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        for message in history or []:
            role = "assistant" if message.get("role") == "assistant" else "user"
            messages.append({"role": role, "content": str(message.get("content", ""))})
        if prompt:
            messages.append({"role": "user", "content": prompt})
        prompt_text = "\n".join(m["content"] for m in messages)

        async def _call():
            async with httpx.AsyncClient(timeout=20.0) as client:
                response = await client.post(
                    f"{settings.ollama_base_url.rstrip('/')}/api/chat",
                    json={
                        "model": self.model_name,
                        "messages": messages,
                        "stream": False,
                        "options": {"temperature": temperature, "num_predict": max_tokens},
                    },
                )
                response.raise_for_status()
                body = response.json()
                text = ((body.get("message") or {}).get("content") or "").strip()
                return (text or None), _usage(self.provider_name, self.model_name, self.role, prompt_text, text)

        try:
            result = await retry_with_backoff(_call)
            breaker.record_success()
            return result
        except Exception:
            breaker.record_failure()
            logger.warning("Ollama call failed | model=%s | role=%s", self.model_name, self.role)
            raise


class NullLLMProvider(BaseLLMProvider):
    provider_name = "none"

    async def generate(
        self,
        prompt: str | None = None,
        *,
        system_instruction: str | None = None,
        history: list[dict] | None = None,
        temperature: float = 0.3,
        max_tokens: int = 700,
    ) -> tuple[str | None, dict]:
        return None, {
            "provider": self.provider_name,
            "model": "none",
            "prompt_tokens_estimate": _estimate_tokens(prompt or ""),
            "completion_tokens_estimate": 0,
            "reason": "unsupported_provider",
        }


def get_llm_provider(role: str | None = None) -> BaseLLMProvider:
    provider = (settings.llm_provider or "").lower()
    if provider == "gemini":
        return GeminiLLMProvider(model_name=settings.llm_model, role=role)
    if provider == "ollama":
        return OllamaLLMProvider(model_name=settings.ollama_model, role=role)
    return NullLLMProvider()
