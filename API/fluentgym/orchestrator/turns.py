from __future__ import annotations

import asyncio
import json

from fluentgym.agents.correction import CorrectionAnalyzer
from fluentgym.agents.objective import ObjectiveEvaluator
from fluentgym.core.event_bus import METRICS_UPDATED, TURN_APPENDED, EventBus
from fluentgym.core.exceptions import (
    BusyError,
    CompletionFailure,
    InvalidStateError,
    ProviderError,
    ValidationError,
)
from fluentgym.core.logging import DOMAIN_TURNS, get_domain_logger
from fluentgym.core.resilience import bounded_wait
from fluentgym.orchestrator.collaborators import Clock, CompletionClient
from fluentgym.orchestrator.metrics import MetricsAggregator
from fluentgym.orchestrator.prompts import conversation_instructions, history_messages
from fluentgym.schemas.session import (
    Correction,
    ObjectiveVerdict,
    Session,
    Turn,
    TurnRating,
    TurnResult,
)

logger = get_domain_logger(__name__, DOMAIN_TURNS)


class TurnOrchestrator:
    """Runs one learner/partner exchange at a time against a single Session.

    Collaborator calls run as concurrent tasks over immutable snapshots of the
    transcript. Every write to the Session happens in a synchronous ``_apply``
    step on the event loop, after checking the Session is still writable, so
    results that arrive after the Session ended are dropped.
    """

    def __init__(
        self,
        session: Session,
        *,
        completion: CompletionClient,
        correction_analyzer: CorrectionAnalyzer,
        objective_evaluator: ObjectiveEvaluator,
        metrics: MetricsAggregator,
        clock: Clock,
        event_bus: EventBus,
        timeout_seconds: float = 20.0,
        gate_seconds: float = 3.0,
        min_user_turns: int = 3,
        window_turns: int = 10,
    ):
        self.session = session
        self.completion = completion
        self.correction_analyzer = correction_analyzer
        self.objective_evaluator = objective_evaluator
        self.metrics = metrics
        self.clock = clock
        self.event_bus = event_bus
        self.timeout_seconds = timeout_seconds
        self.gate_seconds = gate_seconds
        self.min_user_turns = min_user_turns
        self.window_turns = window_turns
        self.in_flight = False
        self.objectives_met = False
        self.evaluations_issued = 0
        self._closed = False

    @property
    def writable(self) -> bool:
        return not self._closed and self.session.is_active

    def close(self) -> None:
        """Stop accepting writes; pending results will be discarded on arrival."""
        self._closed = True

    def ensure_ready(self, content: str) -> None:
        if not self.writable:
            raise InvalidStateError(f"session {self.session.id} is not active")
        if self.in_flight:
            raise BusyError("a turn is already in flight for this session")
        if not (content or "").strip():
            raise ValidationError("user turn content must not be blank")

    async def send_user_turn(self, content: str, elapsed_latency_ms: float, hesitation_count: int = 0) -> TurnResult:
        self.ensure_ready(content)
        self.in_flight = True
        try:
            return await self._run(content.strip(), float(elapsed_latency_ms), int(hesitation_count))
        finally:
            self.in_flight = False

    async def _run(self, content: str, latency_ms: float, hesitation_count: int) -> TurnResult:
        history = list(self.session.turns)
        language = self.session.language
        instructions = conversation_instructions(
            self.session.scenario,
            self.session.personality,
            language,
            gate_seconds=self.gate_seconds,
        )
        messages = history_messages(history) + [{"role": "user", "content": content}]

        # Corrections only need the utterance, so they start alongside the reply.
        correction_task = asyncio.create_task(
            self.correction_analyzer.analyze(content, language.target, language.proficiency_level)
        )
        evaluation_task: asyncio.Task | None = None
        try:
            reply = await self._complete(instructions, messages)
            if not self.writable:
                raise InvalidStateError(f"session {self.session.id} ended while the turn was in flight")

            user_turn, assistant_turn, rating = self._apply_exchange(content, reply, latency_ms, hesitation_count)
            await self._publish_exchange(user_turn, assistant_turn)

            if self._should_evaluate():
                window = list(self.session.turns[-self.window_turns:])
                self.evaluations_issued += 1
                evaluation_task = asyncio.create_task(
                    self.objective_evaluator.evaluate(
                        self.session.scenario.objectives,
                        window,
                        scenario_title=self.session.scenario.title,
                    )
                )

            corrections = self._apply_corrections(user_turn.id, await self._settle_corrections(correction_task))

            verdict = await self._settle_evaluation(evaluation_task) if evaluation_task else None
            should_end = self._apply_verdict(verdict)
        finally:
            for task in (correction_task, evaluation_task):
                if task is not None and not task.done():
                    task.cancel()

        return TurnResult(
            session_id=self.session.id,
            assistant_content=assistant_turn.content,
            corrections=corrections,
            should_end_session=should_end,
            rating=rating,
        )

    async def _complete(self, instructions: str, messages: list[dict]) -> str:
        try:
            reply = await bounded_wait(
                self.completion.complete(instructions, messages),
                seconds=self.timeout_seconds,
                name="completion",
            )
        except ProviderError as exc:
            logger.warning("Completion failed: %s", exc.message)
            raise CompletionFailure(exc.message, details={"cause": exc.code, **exc.details}) from exc
        except Exception as exc:
            logger.warning("Completion failed: %s", exc)
            raise CompletionFailure(f"completion failed: {exc}") from exc
        if not isinstance(reply, str) or not reply.strip():
            raise CompletionFailure("completion returned an empty reply")
        return reply.strip()

    def _should_evaluate(self) -> bool:
        if self.objectives_met or not self.writable:
            return False
        return len(self.session.user_turns()) >= self.min_user_turns

    def _timestamp(self):
        now = self.clock.now()
        if self.session.turns and self.session.turns[-1].timestamp > now:
            return self.session.turns[-1].timestamp
        return now

    def _apply_exchange(
        self, content: str, reply: str, latency_ms: float, hesitation_count: int
    ) -> tuple[Turn, Turn, TurnRating]:
        rating = self.metrics.record_turn(latency_ms, hesitation_count)
        user_turn = Turn(
            role="user",
            content=content,
            timestamp=self._timestamp(),
            latency_ms=rating.latency_ms,
            hesitation_count=rating.hesitation_count,
        )
        self.session.turns.append(user_turn)
        assistant_turn = Turn(role="assistant", content=reply, timestamp=self._timestamp())
        self.session.turns.append(assistant_turn)
        logger.info(
            json.dumps(
                {
                    "type": "exchange_applied",
                    "session_id": self.session.id,
                    "turn_count": self.session.metrics.turn_count,
                    "rating": rating.rating,
                    "score": rating.score,
                }
            )
        )
        return user_turn, assistant_turn, rating

    async def _publish_exchange(self, user_turn: Turn, assistant_turn: Turn) -> None:
        source = "turn_orchestrator"
        for turn in (user_turn, assistant_turn):
            await self.event_bus.publish(
                TURN_APPENDED,
                source,
                {"session_id": self.session.id, "turn": turn.model_dump(mode="json")},
            )
        await self.event_bus.publish(
            METRICS_UPDATED,
            source,
            {"session_id": self.session.id, "metrics": self.session.metrics.model_dump(mode="json")},
        )

    async def _settle_corrections(self, task: asyncio.Task) -> list[Correction]:
        try:
            return await task
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Correction analysis failed, continuing without corrections: %s", exc)
            return []

    def _apply_corrections(self, turn_id: str, corrections: list[Correction]) -> list[Correction]:
        """Attach corrections to the user turn; returns what was actually attached."""
        if not corrections or not self.writable:
            return []
        for idx, turn in enumerate(self.session.turns):
            if turn.id == turn_id:
                self.session.turns[idx] = turn.model_copy(update={"corrections": tuple(corrections)})
                return corrections
        return []

    async def _settle_evaluation(self, task: asyncio.Task) -> ObjectiveVerdict:
        try:
            return await task
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Objective evaluation failed, treating as incomplete: %s", exc)
            return ObjectiveVerdict(completed=False, rationale="evaluation failed")

    def _apply_verdict(self, verdict: ObjectiveVerdict | None) -> bool:
        if verdict is None or not verdict.completed or self.objectives_met or not self.writable:
            return False
        self.objectives_met = True
        logger.info(
            json.dumps(
                {
                    "type": "objectives_met",
                    "session_id": self.session.id,
                    "rationale": verdict.rationale,
                }
            )
        )
        return True
