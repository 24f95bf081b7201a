from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - no external LLM traffic
# - no snapshot files written by the default app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LLM_PROVIDER", "none")
os.environ.setdefault("PERSIST_SNAPSHOTS", "false")

from fakes import ManualClock, ScriptedCompletion, ScriptedJudge  # noqa: E402
from fluentgym.data.catalog import get_personality, get_scenario  # noqa: E402
from fluentgym.orchestrator.session_manager import SessionManager  # noqa: E402
from fluentgym.schemas.session import LanguageSettings  # noqa: E402


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scenario():
    return get_scenario("cafe-order")


@pytest.fixture
def personality():
    return get_personality("encouraging-mentor")


@pytest.fixture
def language() -> LanguageSettings:
    return LanguageSettings(target="es", native="en", proficiency_level="beginner")


@pytest.fixture
def make_manager(clock):
    """Build a SessionManager wired to deterministic fixture collaborators."""

    def _make(completion=None, judge=None, **kwargs) -> SessionManager:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("tick_seconds", 0.01)
        kwargs.setdefault("timeout_seconds", 1.0)
        return SessionManager(
            completion=completion or ScriptedCompletion(),
            judge=judge or ScriptedJudge(),
            **kwargs,
        )

    return _make
