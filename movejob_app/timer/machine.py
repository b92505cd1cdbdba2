"""
Job timer state machine.

Commands are applied to the in-memory state synchronously and then
persisted before control returns, one command at a time per job: a command
issued while a previous write is still in flight waits for it instead of
being dropped. Rejected commands are logged and return the unchanged state.
"""

import asyncio
from typing import Any, Callable, Optional, Sequence

from ..billing.calculator import compute_billable
from ..config.defaults import BillingParams
from ..errors import InvalidTransition
from ..logging.config import (
    get_billing_logger,
    get_timer_logger,
    log_billing_decision,
    log_rejected_command,
    log_step_transition,
)
from ..persistence.job_state_store import JobStateStore
from ..steps.catalog import StepDefinition, step_name
from ..utils.time import Clock, ms_to_hours, now_ms
from . import transitions
from .models import JobTimerState, TimerPhase

timer_logger = get_timer_logger(__name__)
billing_logger = get_billing_logger(__name__)

CompletionCallback = Callable[[float, float], Any]


class JobTimer:
    """Live clock of one job, persisted through a JobStateStore."""

    def __init__(
        self,
        state: JobTimerState,
        store: JobStateStore,
        steps: Sequence[StepDefinition] = (),
        billing: Optional[BillingParams] = None,
        clock: Clock = now_ms,
        on_job_completed: Optional[CompletionCallback] = None
    ):
        self._state = state
        self.store = store
        self.steps = tuple(steps)
        self.billing = billing or BillingParams()
        self.clock = clock
        self.on_job_completed = on_job_completed
        self.logger = timer_logger.bind(job_id=state.job_id)
        self._lock = asyncio.Lock()

    @classmethod
    async def restore(
        cls,
        job_id: str,
        store: JobStateStore,
        steps: Sequence[StepDefinition],
        billing: Optional[BillingParams] = None,
        clock: Clock = now_ms,
        on_job_completed: Optional[CompletionCallback] = None
    ) -> "JobTimer":
        """Load the stored timer for ``job_id`` or create a fresh one."""
        total = len(steps)
        record = await store.load(job_id)
        state = None

        if record is not None:
            try:
                state = JobTimerState.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                timer_logger.error(
                    "Stored timer record is malformed, starting fresh",
                    job_id=job_id,
                    error=str(e)
                )

        if state is not None and state.total_steps != total:
            timer_logger.warning(
                "Stored timer step count differs from catalog, keeping stored count",
                job_id=job_id,
                stored_total=state.total_steps,
                catalog_total=total
            )

        if state is None:
            state = transitions.fresh_state(job_id, total, clock())
            timer_logger.info("Created new job timer", job_id=job_id, total_steps=total)
        else:
            timer_logger.info(
                "Restored job timer",
                job_id=job_id,
                current_step=state.current_step,
                phase=state.phase.value
            )

        return cls(
            state,
            store,
            steps=steps,
            billing=billing,
            clock=clock,
            on_job_completed=on_job_completed,
        )

    # Read API

    @property
    def state(self) -> JobTimerState:
        return self._state

    @property
    def job_id(self) -> str:
        return self._state.job_id

    @property
    def current_step(self) -> int:
        return self._state.current_step

    @property
    def total_steps(self) -> int:
        return self._state.total_steps

    @property
    def phase(self) -> TimerPhase:
        return self._state.phase

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def is_on_break(self) -> bool:
        return self._state.is_on_break

    @property
    def is_completed(self) -> bool:
        return self._state.is_terminal

    def total_elapsed(self, now: Optional[int] = None) -> int:
        """Wall-clock elapsed milliseconds at ``now``."""
        return self._state.elapsed_ms(self.clock() if now is None else now)

    def billable_elapsed(self, now: Optional[int] = None) -> int:
        """Elapsed milliseconds minus breaks at ``now``."""
        return self._state.billable_ms(self.clock() if now is None else now)

    def break_elapsed(self, now: Optional[int] = None) -> int:
        return self._state.break_ms(self.clock() if now is None else now)

    def step_history(self, now: Optional[int] = None) -> list[dict[str, Any]]:
        """Per-step intervals with names; the open interval reports its live duration."""
        now = self.clock() if now is None else now
        history = []
        for interval in self._state.intervals:
            duration = interval.duration_ms
            if duration is None:
                duration = max(0, now - interval.started_at_ms)
            history.append({
                "step": interval.step,
                "stepName": step_name(interval.step, self.steps),
                "startedAtMs": interval.started_at_ms,
                "endedAtMs": interval.ended_at_ms,
                "durationMs": duration,
            })
        return history

    def timer_sync_payload(self, now: Optional[int] = None) -> dict[str, Any]:
        """Figures the remote timer-sync endpoint expects, in hours."""
        now = self.clock() if now is None else now
        return {
            "jobId": self.job_id,
            "totalHours": ms_to_hours(self.total_elapsed(now)),
            "billableHours": ms_to_hours(self.billable_elapsed(now)),
            "breakHours": ms_to_hours(self.break_elapsed(now)),
            "isRunning": self.is_running,
            "isOnBreak": self.is_on_break,
            "currentStep": self.current_step,
        }

    # Commands

    async def start(self) -> JobTimerState:
        """Start the job clock at step 1."""
        return await self._apply("start", lambda s, now: transitions.start(s, now))

    async def advance_step(self, target: int) -> JobTimerState:
        """Advance to exactly ``current_step + 1``; reaching the last step completes the job."""
        return await self._apply(
            "advance_step", lambda s, now: transitions.advance(s, target, now)
        )

    async def start_break(self) -> JobTimerState:
        return await self._apply("start_break", transitions.begin_break)

    async def stop_break(self) -> JobTimerState:
        return await self._apply("stop_break", transitions.end_break)

    async def toggle_break(self) -> JobTimerState:
        """Flip between Running and OnBreak."""
        if self._state.is_on_break:
            return await self.stop_break()
        return await self.start_break()

    async def reset(self) -> JobTimerState:
        """
        Re-initialize the timer for the same job, clearing completion.

        Only meant to correct operator error; logged apart from completion.
        """
        async with self._lock:
            old = self._state
            now = self.clock()
            self._state = transitions.fresh_state(old.job_id, old.total_steps, now)

            log_step_transition(
                self.logger,
                job_id=old.job_id,
                from_step=old.current_step,
                to_step=0,
                trigger="operator_reset",
                context={
                    "was_completed": old.is_terminal,
                    "elapsed_ms": old.elapsed_ms(now),
                }
            )

            await self._persist()
            return self._state

    async def flush(self) -> None:
        """Wait for any in-flight command and its write to finish."""
        async with self._lock:
            return None

    async def _apply(
        self,
        command: str,
        transition: Callable[[JobTimerState, int], JobTimerState]
    ) -> JobTimerState:
        async with self._lock:
            old = self._state
            now = self.clock()

            try:
                new = transition(old, now)
            except InvalidTransition as e:
                log_rejected_command(
                    self.logger,
                    job_id=old.job_id,
                    command=command,
                    reason=str(e),
                    context={
                        "current_step": e.current_step,
                        "attempted_step": e.attempted_step,
                        "phase": old.phase.value,
                    }
                )
                return old

            completing = new.is_terminal and not old.is_terminal
            if completing:
                new = self._freeze_completion(new, now)

            self._state = new

            if new.current_step != old.current_step:
                log_step_transition(
                    self.logger,
                    job_id=new.job_id,
                    from_step=old.current_step,
                    to_step=new.current_step,
                    trigger="job_completed" if completing else command,
                    context={"phase": new.phase.value}
                )
            else:
                self.logger.info(
                    "Timer command applied",
                    command=command,
                    phase=new.phase.value,
                    current_step=new.current_step
                )

            if completing:
                self._notify_completion(new)

            await self._persist()
            return self._state

    def _freeze_completion(self, state: JobTimerState, now: int) -> JobTimerState:
        worked_ms = state.total_elapsed_ms - state.break_ms(now)
        result = compute_billable(worked_ms, self.billing)

        log_billing_decision(
            billing_logger,
            job_id=state.job_id,
            raw_hours=result.raw_hours,
            billable_hours=result.billable_hours,
            cost=result.cost,
            context={
                "total_elapsed_ms": state.total_elapsed_ms,
                "break_ms": state.break_ms(now),
                "currency": self.billing.currency,
            }
        )

        return state.with_changes(
            now,
            final_cost=result.cost,
            final_billable_hours=result.billable_hours,
        )

    def _notify_completion(self, state: JobTimerState) -> None:
        if state.completion_notified:
            return

        self._state = state.with_changes(state.last_modified_at_ms, completion_notified=True)

        if self.on_job_completed is None:
            return

        try:
            self.on_job_completed(state.final_cost, state.final_billable_hours)
        except Exception as e:
            self.logger.error(
                "Job completion callback failed",
                error=str(e),
                final_cost=state.final_cost
            )

    async def _persist(self) -> None:
        await self.store.save(self.job_id, self._state.to_dict())
