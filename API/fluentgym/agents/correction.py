import json

from fluentgym.agents.base import BaseAgent
from fluentgym.core.exceptions import ProviderError
from fluentgym.core.logging import DOMAIN_CORRECTIONS, get_domain_logger
from fluentgym.orchestrator.prompts import correction_prompt
from fluentgym.schemas.session import Correction

logger = get_domain_logger(__name__, DOMAIN_CORRECTIONS)

CATEGORIES = ("grammar", "vocabulary", "syntax", "idiom")


def _text_field(entry: dict, key: str) -> str | None:
    value = entry.get(key)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def normalize_correction(entry) -> Correction | None:
    """Validate one judgment entry against the Correction shape; None when it does not fit."""
    if not isinstance(entry, dict):
        return None
    original = _text_field(entry, "original")
    corrected = _text_field(entry, "corrected")
    explanation = _text_field(entry, "explanation")
    category = entry.get("category", entry.get("errorType"))
    if not (original and corrected and explanation) or not isinstance(category, str):
        return None
    category = category.strip().lower()
    if category not in CATEGORIES:
        return None
    if original == corrected:
        return None
    return Correction(original=original, corrected=corrected, explanation=explanation, category=category)


def _entries(payload) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("corrections"), list):
        return payload["corrections"]
    return []


class CorrectionAnalyzer(BaseAgent):
    name = "correction_analyzer"
    failure = ProviderError

    async def analyze(self, utterance: str, target_language: str, proficiency_level: str) -> list[Correction]:
        if not (utterance or "").strip():
            return []
        try:
            payload = await self._judge(correction_prompt(utterance, target_language, proficiency_level))
        except ProviderError as exc:
            logger.warning("Correction analysis unavailable: %s", exc.message)
            return []
        entries = _entries(payload)
        corrections = [c for c in (normalize_correction(entry) for entry in entries) if c is not None]
        dropped = len(entries) - len(corrections)
        if dropped or payload is None:
            logger.info(
                json.dumps(
                    {
                        "type": "corrections_normalized",
                        "received": len(entries),
                        "kept": len(corrections),
                        "payload_parsed": payload is not None,
                    }
                )
            )
        return corrections
