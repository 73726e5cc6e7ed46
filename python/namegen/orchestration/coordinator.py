"""
Generation Coordinator - fans a prompt out to several models and gathers the names

Protocol:
- Admission (budget, per-user limits) happens before a session exists
- Requested models are filtered by availability at dispatch; the rest are
  recorded as not attempted
- Dispatch is sequential (request order) or concurrent (one task per model)
- Each model's result or failure is recorded as it arrives; one model failing
  never stops the others
- Fan-in ends when every call is done, the user cancels, or the session-wide
  timeout elapses; the session is then settled from whatever completed

Cancellation is cooperative: the session is flipped to cancelled at once, an
asyncio.Event wakes the dispatch loop, and in-flight calls are cancelled on a
best-effort basis. Anything arriving afterwards is dropped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from namegen.config.settings import Settings, get_settings
from namegen.cost.estimator import CostEstimator
from namegen.cost.usage import UsageLedger, UsageRecord
from namegen.exceptions import (
    GenerationError,
    GenerationErrorKind,
    NoModelsAvailableError,
    ValidationError,
)
from namegen.llm.gateway import GenerationGateway
from namegen.llm.prompts import GenerationMode, mode_parameters, optimize_prompt
from namegen.llm.registry import ModelRegistry
from namegen.logging_utils import session_id_context
from namegen.middleware.admission import AdmissionGate
from namegen.sessions.models import (
    GenerationSession,
    ModelMetrics,
    ModelRunStatus,
    SessionStatus,
    StatusSnapshot,
    normalize_models,
)
from namegen.sessions.store import SessionStore

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 2000


# ============================================================================
# Run bookkeeping
# ============================================================================

@dataclass
class _SessionRun:
    """Live coordination state for one running session."""
    session: GenerationSession
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: Set[asyncio.Task] = field(default_factory=set)
    runner: Optional[asyncio.Task] = None


# ============================================================================
# Coordinator
# ============================================================================

class GenerationCoordinator:
    """Owns the fan-out / fan-in protocol for generation sessions."""

    def __init__(
        self,
        registry: ModelRegistry,
        gateway: GenerationGateway,
        store: SessionStore,
        gate: AdmissionGate,
        ledger: UsageLedger,
        estimator: Optional[CostEstimator] = None,
        settings_provider: Callable[[], Settings] = get_settings,
    ):
        self.registry = registry
        self.gateway = gateway
        self.store = store
        self.gate = gate
        self.ledger = ledger
        self.estimator = estimator or CostEstimator(registry=registry)
        self._settings_provider = settings_provider
        self._runs: Dict[str, _SessionRun] = {}

    @property
    def settings(self) -> Settings:
        return self._settings_provider()

    # ------------------------------------------------------------------
    # Inbound interface
    # ------------------------------------------------------------------

    async def start_session(
        self,
        user_id: str,
        prompt: str,
        models: Optional[List[str]],
        mode: str = GenerationMode.CREATIVE.value,
        deep_thinking: bool = False,
        parameters: Optional[Dict[str, Any]] = None,
        project_id: Optional[str] = None,
        run_in_background: bool = False,
    ) -> str:
        """
        Admit, create and run a generation session.

        Args:
            user_id: Requesting user
            prompt: Business description to name
            models: Requested model ids, in dispatch order; empty means the
                registry's default model
            mode: Generation mode (creative, professional, brandable, tech-focused)
            deep_thinking: Ask models to reason more carefully
            parameters: Sampling overrides passed to every model
            project_id: Optional owning project
            run_in_background: Return as soon as dispatch starts instead of
                waiting for the session to settle

        Returns:
            The new session id

        Raises:
            ValidationError: bad prompt, mode or model list
            BudgetExceededError: a system spend window is exhausted
            RateLimitedError: the user's hourly or daily window is exhausted
            NoModelsAvailableError: every requested model is unavailable (the
                session exists and is failed), or none was named and there is
                no default to fall back to (no session is created)
        """
        requested, generation_mode = self._validate(user_id, prompt, models, mode)

        await self.gate.admit(user_id)

        session = GenerationSession(
            user_id=user_id,
            prompt=prompt.strip(),
            requested_models=requested,
            mode=generation_mode,
            deep_thinking=bool(deep_thinking),
            parameters=dict(parameters or {}),
            project_id=project_id,
        )
        self.store.create(session)
        session_id_context.set(session.session_id)
        logger.info(
            "Generation session created",
            extra={"user_id": user_id, "models": requested, "mode": generation_mode.value},
        )

        run = self._start(session)
        run.runner = asyncio.create_task(self._execute(run), name=f"namegen-session-{session.session_id}")
        if not run_in_background:
            await run.runner
        return session.session_id

    def get_status(self, session_id: str) -> StatusSnapshot:
        """Point-in-time snapshot; unknown ids yield a not_found snapshot."""
        try:
            session = self.store.get(session_id)
        except Exception as e:
            logger.error("Status lookup failed for %s: %s", session_id, e)
            session = None
        if session is None:
            return StatusSnapshot.not_found(session_id)
        return session.snapshot()

    def cancel_session(self, session_id: str) -> bool:
        """Cancel a running session. Returns False if it was not running."""
        run = self._runs.get(session_id)
        session = run.session if run is not None else self.store.get(session_id)
        if session is None or not session.cancel():
            return False

        self.store.save(session)
        if run is not None:
            run.cancel_event.set()
        logger.info(
            "Generation session cancelled",
            extra={"session_id": session_id, "completed_models": sorted(session.results)},
        )
        return True

    def delete_session(self, session_id: str, user_id: str) -> bool:
        """Delete a session owned by ``user_id``; running sessions are cancelled first."""
        session = self.store.get(session_id)
        if session is None:
            return False
        if session.user_id != user_id:
            logger.warning("Refusing to delete session %s for non-owner %s", session_id, user_id)
            return False
        if session.status == SessionStatus.RUNNING:
            self.cancel_session(session_id)
        self._runs.pop(session_id, None)
        return self.store.delete(session_id)

    async def wait(self, session_id: str, timeout: Optional[float] = None) -> StatusSnapshot:
        """Wait for a background session to settle, then return its snapshot."""
        run = self._runs.get(session_id)
        if run is not None and run.runner is not None:
            await asyncio.wait({run.runner}, timeout=timeout)
        return self.get_status(session_id)

    async def shutdown(self, timeout: float = 5.0) -> int:
        """Cancel every running session and wait for its runner to settle it.

        Returns the number of sessions that were cancelled.
        """
        runs = list(self._runs.values())
        cancelled = sum(1 for run in runs if self.cancel_session(run.session.session_id))
        runners = {run.runner for run in runs if run.runner is not None}
        if runners:
            _, stuck = await asyncio.wait(runners, timeout=timeout)
            for runner in stuck:
                runner.cancel()
            if stuck:
                logger.warning("%d session runners did not stop within %ss", len(stuck), timeout)
        logger.info("Coordinator shut down", extra={"cancelled_sessions": cancelled})
        return cancelled

    def available_models(self) -> List[str]:
        return self.registry.available_models()

    def model_capabilities(self, model_id: Optional[str] = None) -> Dict[str, Any]:
        return self.registry.capabilities(model_id)

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def _validate(self, user_id: str, prompt: str, models: Optional[List[str]], mode: str):
        if not user_id:
            raise ValidationError("user_id is required")
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise ValidationError(f"Prompt must be at most {MAX_PROMPT_LENGTH} characters")

        requested = normalize_models(models)
        if models and not requested:
            raise ValidationError("Model ids must not be blank")
        unknown = [m for m in requested if m not in self.registry]
        if unknown:
            raise ValidationError(f"Unknown models: {', '.join(unknown)}", details={"unknown_models": unknown})

        try:
            generation_mode = GenerationMode(mode)
        except ValueError:
            valid = [m.value for m in GenerationMode]
            raise ValidationError(f"Invalid generation mode: {mode}", details={"valid_modes": valid})

        if not requested:
            requested = [self.registry.default_model()]
        return requested, generation_mode

    def _start(self, session: GenerationSession) -> _SessionRun:
        """Filter by availability and move the session to running (or straight to failed)."""
        dispatchable = []
        for model_id in session.requested_models:
            if self.registry.is_available(model_id):
                dispatchable.append(model_id)
            else:
                session.mark_model(model_id, ModelRunStatus.UNAVAILABLE)
                logger.info(
                    "Model %s not attempted (%s)", model_id, self.registry.status(model_id).value,
                    extra={"session_id": session.session_id},
                )

        if not dispatchable:
            session.fail("no models available")
            self.store.save(session)
            logger.warning("Generation session failed: no models available", extra={"session_id": session.session_id})
            raise NoModelsAvailableError(session_id=session.session_id)

        session.transition(SessionStatus.RUNNING)
        self.store.save(session)
        run = _SessionRun(session=session)
        self._runs[session.session_id] = run
        return run

    async def _execute(self, run: _SessionRun) -> None:
        session = run.session
        session_id_context.set(session.session_id)
        settings = self.settings
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.session_timeout_seconds
        dispatchable = session.models_in(ModelRunStatus.PENDING)
        cancel_waiter = asyncio.ensure_future(run.cancel_event.wait())

        try:
            if settings.dispatch_mode == "concurrent":
                tasks = [self._spawn(run, model_id) for model_id in dispatchable]
                await self._fan_in(run, tasks, cancel_waiter, deadline)
            else:
                for model_id in dispatchable:
                    if run.cancel_event.is_set() or loop.time() >= deadline:
                        break
                    await self._fan_in(run, [self._spawn(run, model_id)], cancel_waiter, deadline)
        finally:
            cancel_waiter.cancel()
            for task in list(run.tasks):
                task.cancel()

            if session.status == SessionStatus.RUNNING:
                timed_out = loop.time() >= deadline
                if timed_out:
                    logger.warning(
                        "Generation session timed out after %ss",
                        settings.session_timeout_seconds,
                        extra={"abandoned": session.models_in(ModelRunStatus.PENDING, ModelRunStatus.RUNNING)},
                    )
                status = session.finalize()
                self.store.save(session)
                logger.info(
                    "Generation session finished: %s",
                    status.value,
                    extra={
                        "duration_seconds": session.duration_seconds,
                        "names": session.total_names_generated,
                        "cost_cents": session.total_cost_cents,
                    },
                )
            self._runs.pop(session.session_id, None)

    def _spawn(self, run: _SessionRun, model_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._run_model(run, model_id), name=f"namegen-{model_id}")
        run.tasks.add(task)
        task.add_done_callback(run.tasks.discard)
        return task

    async def _fan_in(
        self,
        run: _SessionRun,
        tasks: List[asyncio.Task],
        cancel_waiter: asyncio.Future,
        deadline: float,
    ) -> None:
        """Observe ``tasks`` in poll-interval slices until done, cancelled or past the deadline."""
        loop = asyncio.get_running_loop()
        poll_interval = self.settings.poll_interval_seconds
        pending = set(tasks)
        while pending and not run.cancel_event.is_set():
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, _ = await asyncio.wait(
                pending | {cancel_waiter},
                timeout=min(poll_interval, remaining),
                return_when=asyncio.FIRST_COMPLETED,
            )
            pending -= done

    async def _run_model(self, run: _SessionRun, model_id: str) -> None:
        session = run.session
        if not session.mark_model(model_id, ModelRunStatus.RUNNING):
            return
        self.store.save(session)

        parameters = {
            **mode_parameters(session.mode),
            **session.parameters,
            "mode": session.mode.value,
            "deep_thinking": session.deep_thinking,
        }
        prompt = optimize_prompt(session.prompt, session.mode, session.deep_thinking, model_id)
        logger.info("Dispatching to %s", model_id, extra={"model_id": model_id})

        start = time.perf_counter()
        try:
            outcome = await self.gateway.generate(model_id, prompt, parameters)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            kind = e.kind.value if isinstance(e, GenerationError) else GenerationErrorKind.PROVIDER_ERROR.value
            upstream = getattr(e, "upstream_message", None)
            logger.error(
                "Model %s failed: %s", model_id, e,
                extra={"model_id": model_id, "error_kind": kind, "upstream": upstream},
            )
            self._record_usage(session, model_id, 0, 0, elapsed_ms, success=False, error_kind=kind)
            if session.record_failure(model_id, kind, ModelMetrics(execution_ms=round(elapsed_ms, 2))):
                self.store.save(session)
            return

        elapsed_ms = (time.perf_counter() - start) * 1000
        cost_usd = self.estimator.cost(model_id, outcome.input_tokens, outcome.output_tokens)
        metrics = ModelMetrics(
            execution_ms=round(elapsed_ms, 2),
            input_tokens=outcome.input_tokens,
            output_tokens=outcome.output_tokens,
            cost_usd=cost_usd,
            cost_cents=self.estimator.cost_cents(model_id, outcome.input_tokens, outcome.output_tokens),
            cached=outcome.cached,
        )
        self._record_usage(session, model_id, outcome.input_tokens, outcome.output_tokens, elapsed_ms, success=True)

        if session.record_result(model_id, outcome.names, metrics):
            self.store.save(session)
            logger.info(
                "Model %s returned %d names", model_id, len(outcome.names),
                extra={"model_id": model_id, "execution_ms": metrics.execution_ms, "cached": outcome.cached},
            )
        else:
            logger.info("Dropped late result from %s", model_id, extra={"model_id": model_id})

    def _record_usage(
        self,
        session: GenerationSession,
        model_id: str,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        success: bool,
        error_kind: Optional[str] = None,
    ) -> None:
        self.ledger.append(UsageRecord(
            session_id=session.session_id,
            user_id=session.user_id,
            model_id=model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self.estimator.cost(model_id, input_tokens, output_tokens),
            latency_ms=round(latency_ms, 2),
            success=success,
            error_kind=error_kind,
            timestamp=self.ledger.now(),
        ))
