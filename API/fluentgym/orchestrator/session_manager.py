from __future__ import annotations

import asyncio
import json
from typing import Any

from fluentgym.agents.correction import CorrectionAnalyzer
from fluentgym.agents.feedback import FeedbackSynthesizer
from fluentgym.agents.objective import ObjectiveEvaluator
from fluentgym.core.clock import MonotonicClock
from fluentgym.core.event_bus import (
    GATE_EXPIRED,
    SESSION_ENDED,
    SESSION_RESET,
    SESSION_STARTED,
    TURN_APPENDED,
    EventBus,
)
from fluentgym.core.exceptions import (
    InvalidStateError,
    ProviderError,
    SessionAlreadyActiveError,
    ValidationError,
)
from fluentgym.core.logging import DOMAIN_SESSION, get_domain_logger
from fluentgym.core.resilience import bounded_wait
from fluentgym.core.settings import settings
from fluentgym.orchestrator.collaborators import (
    Clock,
    CompletionClient,
    JudgmentClient,
    SnapshotSink,
    Transcriber,
)
from fluentgym.orchestrator.fluency_gate import FluencyGate
from fluentgym.orchestrator.metrics import MetricsAggregator, estimate_hesitations
from fluentgym.orchestrator.turns import TurnOrchestrator
from fluentgym.schemas.session import (
    FeedbackReport,
    FluencyGateState,
    LanguageSettings,
    Personality,
    Scenario,
    Session,
    SessionMetrics,
    TerminationReason,
    Turn,
    TurnResult,
)

logger = get_domain_logger(__name__, DOMAIN_SESSION)


class SessionManager:
    """Public entry point of the practice engine; owns at most one Session.

    Callers hold an explicit instance (the HTTP app keeps one on
    ``app.state``) and observe it through ``subscribe``.
    """

    def __init__(
        self,
        *,
        completion: CompletionClient,
        judge: JudgmentClient,
        transcriber: Transcriber | None = None,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        snapshot_sink: SnapshotSink | None = None,
        gate_seconds: float | None = None,
        tick_seconds: float | None = None,
        timeout_seconds: float | None = None,
        min_user_turns: int | None = None,
        window_turns: int | None = None,
    ):
        self.completion = completion
        self.transcriber = transcriber
        self.clock = clock or MonotonicClock()
        self.event_bus = event_bus or EventBus(history_size=settings.event_history_size)
        self.snapshot_sink = snapshot_sink
        self.gate_seconds = gate_seconds or settings.fluency_gate_seconds
        self.timeout_seconds = timeout_seconds or settings.collaborator_timeout_seconds
        self.min_user_turns = min_user_turns or settings.objective_min_user_turns
        self.window_turns = window_turns or settings.objective_window_turns

        self.correction_analyzer = CorrectionAnalyzer(judge, timeout_seconds=self.timeout_seconds)
        self.objective_evaluator = ObjectiveEvaluator(judge, timeout_seconds=self.timeout_seconds)
        self.feedback_synthesizer = FeedbackSynthesizer(judge, timeout_seconds=self.timeout_seconds)

        self.gate = FluencyGate(self.clock, tick_seconds=tick_seconds or settings.fluency_gate_tick_ms / 1000.0)
        self.gate.on_expired(self._on_gate_expired)

        self._session: Session | None = None
        self._orchestrator: TurnOrchestrator | None = None
        self._metrics: MetricsAggregator | None = None
        self._prompted_at: float | None = None
        self.report: FeedbackReport | None = None
        self._closing: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    # Observation

    @property
    def current_session(self) -> Session | None:
        return self._session.snapshot() if self._session else None

    @property
    def gate_state(self) -> FluencyGateState:
        return self.gate.state

    def get_session_metrics(self) -> SessionMetrics:
        if self._session is None:
            raise InvalidStateError("no session")
        return self._session.metrics.model_copy(deep=True)

    async def subscribe(self, *, replay_last: int = 0, event_types: set[str] | None = None) -> asyncio.Queue:
        return await self.event_bus.subscribe(replay_last=replay_last, event_types=event_types)

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        await self.event_bus.unsubscribe(queue)

    # Lifecycle

    async def start_session(
        self,
        scenario: Scenario | None,
        personality: Personality | None,
        language_settings: LanguageSettings | None = None,
    ) -> Session:
        if scenario is None:
            raise ValidationError("scenario is required")
        if personality is None:
            raise ValidationError("personality is required")
        if self._session is not None and self._session.is_active:
            raise SessionAlreadyActiveError(
                "a session is already active; end or reset it first",
                details={"session_id": self._session.id},
            )

        session = Session(
            scenario=scenario,
            personality=personality,
            language=language_settings or LanguageSettings(),
            started_at=self.clock.now(),
        )
        if scenario.initial_greeting:
            session.turns.append(Turn(role="assistant", content=scenario.initial_greeting, timestamp=session.started_at))

        self._session = session
        self._metrics = MetricsAggregator(session.metrics)
        self._orchestrator = TurnOrchestrator(
            session,
            completion=self.completion,
            correction_analyzer=self.correction_analyzer,
            objective_evaluator=self.objective_evaluator,
            metrics=self._metrics,
            clock=self.clock,
            event_bus=self.event_bus,
            timeout_seconds=self.timeout_seconds,
            gate_seconds=self.gate_seconds,
            min_user_turns=self.min_user_turns,
            window_turns=self.window_turns,
        )
        self.report = None
        self._closing = None
        self._arm_gate()
        logger.info(
            json.dumps(
                {
                    "type": "session_started",
                    "session_id": session.id,
                    "scenario_id": scenario.id,
                    "personality_id": personality.id,
                    "target": session.language.target,
                }
            )
        )
        await self.event_bus.publish(
            SESSION_STARTED,
            "session_manager",
            {"session_id": session.id, "scenario_id": scenario.id, "personality_id": personality.id},
        )
        for turn in session.turns:
            await self.event_bus.publish(
                TURN_APPENDED, "session_manager", {"session_id": session.id, "turn": turn.model_dump(mode="json")}
            )
        return session.snapshot()

    async def send_user_turn(
        self,
        content: str,
        elapsed_latency_ms: float | None = None,
        hesitation_count: int = 0,
    ) -> TurnResult:
        session = self._require_active()
        orchestrator = self._orchestrator
        orchestrator.ensure_ready(content)

        if elapsed_latency_ms is None:
            elapsed_latency_ms = self._measured_latency_ms()
        await self.gate.record_answer(elapsed_latency_ms)
        self.gate.disarm()

        try:
            result = await orchestrator.send_user_turn(content, elapsed_latency_ms, hesitation_count)
        except BaseException:
            # Let the learner retry, also after a cancelled request; a BusyError loser must not touch the winner's gate.
            if self._session is session and session.is_active and not orchestrator.in_flight:
                self._arm_gate()
            raise

        if result.should_end_session and self._session is session and session.is_active:
            # The reply goes back now; the report is built in a tracked task (see wait_closed).
            snapshot = self._close(session, TerminationReason.OBJECTIVES_MET)
            self._closing = asyncio.create_task(self._finish(session, snapshot, TerminationReason.OBJECTIVES_MET))
            self._background.add(self._closing)
            self._closing.add_done_callback(self._background.discard)
        elif self._session is session and session.is_active:
            self._arm_gate()
        return result

    async def send_audio_turn(
        self,
        audio_handle: Any,
        *,
        speech_duration_ms: float | None = None,
        elapsed_latency_ms: float | None = None,
        hesitation_count: int | None = None,
    ) -> TurnResult:
        self._require_active()
        if self.transcriber is None:
            raise ValidationError("no speech-to-text collaborator configured")
        if elapsed_latency_ms is None:
            elapsed_latency_ms = self._measured_latency_ms()
        try:
            text = await bounded_wait(
                self.transcriber.transcribe(audio_handle),
                seconds=self.timeout_seconds,
                name="transcriber",
            )
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"transcription failed: {exc}", details={"collaborator": "transcriber"}) from exc
        text = (text or "").strip()
        if hesitation_count is None:
            hesitation_count = estimate_hesitations(speech_duration_ms or 0, len(text.split()))
        return await self.send_user_turn(text, elapsed_latency_ms, hesitation_count)

    async def end_session(self, reason: TerminationReason | str = TerminationReason.USER_ENDED) -> FeedbackReport:
        reason = TerminationReason(reason)
        session = self._require_active()
        snapshot = self._close(session, reason)
        return await self._finish(session, snapshot, reason)

    async def wait_closed(self) -> FeedbackReport | None:
        """Wait for a report still being built after the session closed itself; returns it."""
        if self._closing is None:
            return self.report
        return await self._closing

    def _close(self, session: Session, reason: TerminationReason) -> Session:
        # Everything up to the state change is synchronous so no turn can land in between.
        self.gate.disarm()
        self._metrics.freeze()
        self._orchestrator.close()
        session.state = reason.terminal_state
        session.ended_at = self.clock.now()
        session.termination_reason = reason
        snapshot = session.snapshot()
        logger.info(
            json.dumps(
                {
                    "type": "session_ended",
                    "session_id": session.id,
                    "reason": reason.value,
                    "state": session.state.value,
                    "fluency_score": session.metrics.fluency_score,
                }
            )
        )
        return snapshot

    async def _finish(self, session: Session, snapshot: Session, reason: TerminationReason) -> FeedbackReport:
        try:
            report = await self.feedback_synthesizer.synthesize(snapshot)
        except Exception:
            logger.exception("Feedback synthesis failed, using local report | session_id=%s", session.id)
            report = self.feedback_synthesizer.fallback_report(snapshot)
        if self._session is session:
            self.report = report
        self._persist(snapshot, report)
        await self.event_bus.publish(
            SESSION_ENDED,
            "session_manager",
            {
                "session_id": session.id,
                "reason": reason.value,
                "state": session.state.value,
                "report": report.model_dump(mode="json"),
            },
        )
        return report

    async def reset(self) -> None:
        self.gate.disarm()
        if self._orchestrator is not None:
            self._orchestrator.close()
        session_id = self._session.id if self._session else None
        self._session = None
        self._orchestrator = None
        self._metrics = None
        self._prompted_at = None
        self.report = None
        self._closing = None
        await self.event_bus.publish(SESSION_RESET, "session_manager", {"session_id": session_id})

    # Internals

    def _require_active(self) -> Session:
        if self._session is None:
            raise InvalidStateError("no session; start one first")
        if not self._session.is_active:
            raise InvalidStateError(
                f"session {self._session.id} is {self._session.state.value}",
                details={"session_id": self._session.id},
            )
        return self._session

    def _arm_gate(self) -> None:
        self.gate.disarm()
        self.gate.arm(self.gate_seconds)
        self._prompted_at = self.gate.armed_at

    def _measured_latency_ms(self) -> float:
        if self._prompted_at is None:
            return 0.0
        return max(0.0, (self.clock.monotonic() - self._prompted_at) * 1000.0)

    def _persist(self, snapshot: Session, report: FeedbackReport) -> None:
        if self.snapshot_sink is None:
            return
        try:
            self.snapshot_sink.save(
                {"session": snapshot.model_dump(mode="json"), "report": report.model_dump(mode="json")}
            )
        except Exception:
            logger.exception("Session snapshot could not be persisted | session_id=%s", snapshot.id)

    async def _on_gate_expired(self) -> None:
        if self._session is None:
            return
        await self.event_bus.publish(
            GATE_EXPIRED,
            "fluency_gate",
            {"session_id": self._session.id, "deadline_seconds": self.gate_seconds},
        )
