"""
Job session coordinator.

Binds one JobTimer and one JobProgress to the same job and exposes a single
API to the UI. The timer is authoritative for the live step; every step the
timer takes is propagated to the progress record, and external step changes
are replayed through the timer's own advance command so step intervals are
always closed properly.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .billing.calculator import BillableResult, Invoice, build_invoice, compute_billable
from .collaborators import (
    PaymentCollaborator,
    PaymentRequest,
    PaymentStage,
    RemoteJobSource,
)
from .config.defaults import EngineConfig, StorageParams, get_default_config
from .errors import InvalidConfiguration, StorageWriteError
from .logging.config import get_billing_logger, get_logger
from .persistence.job_state_store import JobStateStore
from .progress.machine import JobProgress
from .progress.models import JobProgressState
from .steps.catalog import StepDefinition, generate_steps, step_name
from .timer.machine import CompletionCallback, JobTimer
from .timer.models import JobTimerState, TimerPhase
from .utils.time import Clock, format_duration, format_epoch_ms, now_ms

logger = get_logger(__name__)
billing_logger = get_billing_logger(__name__)


@dataclass(frozen=True)
class SessionReadout:
    """Derived, read-only view of a session at one instant."""
    job_id: str
    current_step: int
    total_steps: int
    step_name: str
    is_running: bool
    is_on_break: bool
    is_completed: bool
    total_elapsed_ms: int
    billable_elapsed_ms: int
    total_elapsed_display: str
    billable_elapsed_display: str
    estimated_cost: float


def open_stores(
    params: Optional[StorageParams] = None,
    clock: Clock = now_ms
) -> tuple[JobStateStore, JobStateStore]:
    """Create the progress and timer stores sharing one database file."""
    params = params or StorageParams()
    progress_store = JobStateStore(
        params.db_path,
        key_prefix=params.key_prefix,
        index_key=params.index_key,
        clock=clock,
    )
    timer_store = JobStateStore(
        params.db_path,
        key_prefix=params.timer_key_prefix,
        index_key=params.timer_index_key,
        clock=clock,
    )
    return progress_store, timer_store


async def purge_expired(
    progress_store: JobStateStore,
    timer_store: JobStateStore,
    params: Optional[StorageParams] = None
) -> tuple[int, int]:
    """
    Drop job records untouched for longer than the retention window.

    Returns:
        Number of progress and timer records removed
    """
    params = params or StorageParams()
    removed_progress = await progress_store.purge_older_than(params.retention_days)
    removed_timers = await timer_store.purge_older_than(params.retention_days)
    logger.info(
        "Expired job records purged",
        retention_days=params.retention_days,
        progress_records=removed_progress,
        timer_records=removed_timers
    )
    return removed_progress, removed_timers


class JobSession:
    """Single coherent API over the timer and progress of one job."""

    def __init__(
        self,
        timer: JobTimer,
        progress: JobProgress,
        steps: tuple[StepDefinition, ...],
        config: Optional[EngineConfig] = None,
        payments: Optional[PaymentCollaborator] = None,
        clock: Clock = now_ms
    ):
        self.timer = timer
        self.progress = progress
        self.steps = steps
        self.config = config or get_default_config()
        self.payments = payments
        self.clock = clock
        self.logger = logger.bind(job_id=timer.job_id)
        self._lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        job_id: str,
        progress_store: JobStateStore,
        timer_store: JobStateStore,
        remote_source: Optional[RemoteJobSource] = None,
        config: Optional[EngineConfig] = None,
        payments: Optional[PaymentCollaborator] = None,
        on_job_completed: Optional[CompletionCallback] = None,
        clock: Clock = now_ms
    ) -> "JobSession":
        """
        Open a session, resuming stored state or seeding it from the remote source.

        The remote source is consulted only when no progress record exists.

        Raises:
            InvalidConfiguration: If there is neither stored state nor a
                remote source, or the remote job has no stops
        """
        config = config or get_default_config()

        stored = await progress_store.load(job_id)
        remote_step = 0
        steps: tuple[StepDefinition, ...] = ()

        if stored is not None:
            try:
                steps = tuple(
                    s.definition for s in JobProgressState.from_dict(stored).steps
                )
            except (KeyError, TypeError, ValueError):
                steps = ()

        if not steps:
            if remote_source is None:
                raise InvalidConfiguration(
                    f"No stored state for job {job_id} and no remote source",
                    field="remote_source",
                    value=None,
                )
            remote = await remote_source.fetch_job(job_id)
            include_return = remote.include_return
            if include_return is None:
                include_return = config.steps.include_return
            steps = generate_steps(remote.stop_count, include_return, remote.stop_labels)
            remote_step = remote.current_step

        progress = await JobProgress.restore(
            job_id, progress_store, steps=steps, initial_step=remote_step, clock=clock
        )
        timer = await JobTimer.restore(
            job_id,
            timer_store,
            steps,
            billing=config.billing,
            clock=clock,
            on_job_completed=on_job_completed,
        )

        session = cls(timer, progress, steps, config=config, payments=payments, clock=clock)
        session.logger.info(
            "Job session opened",
            current_step=timer.current_step,
            progress_step=progress.actual_step,
            total_steps=len(steps),
            started_at=(
                format_epoch_ms(timer.state.started_at_ms)
                if timer.state.is_started else None
            )
        )

        if progress.actual_step > timer.current_step:
            async with session._lock:
                errors: list[StorageWriteError] = []
                await session._catch_up_timer(progress.actual_step, errors)
                session._raise_first(errors)

        return session

    # Read API

    @property
    def job_id(self) -> str:
        return self.timer.job_id

    @property
    def current_step(self) -> int:
        return self.timer.current_step

    @property
    def total_steps(self) -> int:
        return self.timer.total_steps

    @property
    def is_running(self) -> bool:
        return self.timer.is_running

    @property
    def is_on_break(self) -> bool:
        return self.timer.is_on_break

    @property
    def is_completed(self) -> bool:
        return self.timer.is_completed

    @property
    def total_elapsed(self) -> int:
        return self.timer.total_elapsed()

    @property
    def billable_elapsed(self) -> int:
        return self.timer.billable_elapsed()

    @property
    def current_step_definition(self) -> Optional[StepDefinition]:
        return self._definition(self.current_step)

    @property
    def is_at_billing_step(self) -> bool:
        step = self.current_step_definition
        return step is not None and step.is_billing_trigger

    def format_time(self, milliseconds: int, include_seconds: bool = False) -> str:
        return format_duration(milliseconds, include_seconds)

    def calculate_cost(self, milliseconds: int) -> BillableResult:
        return compute_billable(milliseconds, self.config.billing)

    def invoice(self) -> Invoice:
        """Invoice over the billable time so far (final once the job is complete)."""
        return build_invoice(self.job_id, self.timer.billable_elapsed(), self.config.billing)

    def readout(self, now: Optional[int] = None) -> SessionReadout:
        now = self.clock() if now is None else now
        total = self.timer.total_elapsed(now)
        billable = self.timer.billable_elapsed(now)
        return SessionReadout(
            job_id=self.job_id,
            current_step=self.current_step,
            total_steps=self.total_steps,
            step_name=step_name(self.current_step, self.steps),
            is_running=self.is_running,
            is_on_break=self.is_on_break,
            is_completed=self.is_completed,
            total_elapsed_ms=total,
            billable_elapsed_ms=billable,
            total_elapsed_display=format_duration(total),
            billable_elapsed_display=format_duration(billable),
            estimated_cost=compute_billable(billable, self.config.billing).cost,
        )

    async def run_display_ticker(
        self,
        on_tick: Callable[[SessionReadout], Any],
        stop_event: asyncio.Event,
        interval_seconds: Optional[float] = None
    ) -> None:
        """
        Emit a readout every tick until ``stop_event`` is set.

        The tick only derives values from the clock; it never mutates or
        persists state.
        """
        interval = interval_seconds or self.config.timer.tick_interval_seconds

        while not stop_event.is_set():
            on_tick(self.readout())
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    # Commands
    #
    # Every command holds the session lock for its whole run, so commands
    # issued while another is in flight are queued and applied in order.

    async def start_timer(self) -> None:
        async with self._lock:
            errors: list[StorageWriteError] = []
            await self._start(errors)
            self._raise_first(errors)

    async def next_step(self) -> None:
        """Advance one step, starting the timer if the job has not started."""
        async with self._lock:
            errors: list[StorageWriteError] = []
            if not self.timer.state.is_started:
                await self._start(errors)
            else:
                await self._advance_once(errors)
            self._raise_first(errors)

    async def stop_timer(self) -> None:
        """
        Advance straight to the terminal step.

        Any ongoing break is ended first; intermediate steps are walked one
        at a time so every interval is closed.
        """
        async with self._lock:
            if not self.timer.state.is_started:
                self.logger.warning("Cannot stop a timer that never started")
                return

            errors: list[StorageWriteError] = []

            if self.timer.is_on_break:
                await self._guarded(errors, self.timer.stop_break())

            while self.timer.phase == TimerPhase.RUNNING:
                if not await self._advance_once(errors):
                    break

            self._raise_first(errors)

    async def start_break(self) -> None:
        async with self._lock:
            await self.timer.start_break()

    async def stop_break(self) -> None:
        async with self._lock:
            await self.timer.stop_break()

    async def toggle_break(self) -> None:
        async with self._lock:
            await self.timer.toggle_break()

    async def reset(self) -> None:
        """Operator correction: clear timer and progress for this job."""
        async with self._lock:
            errors: list[StorageWriteError] = []
            await self._guarded(errors, self.timer.reset())
            await self._guarded(errors, self.progress.reset())
            self._raise_first(errors)

    async def apply_remote_progress(self, remote: JobProgressState) -> None:
        """
        Reconcile a remote progress payload after an explicit network round-trip.

        Forward step moves are absorbed by replaying the timer's advance
        command; backward moves are ignored by the timer.
        """
        async with self._lock:
            errors: list[StorageWriteError] = []
            await self._guarded(errors, self.progress.sync_from_remote(remote))
            await self._catch_up_timer(self.progress.actual_step, errors)
            self._raise_first(errors)

    async def close(self) -> None:
        """Wait until every queued command and pending write has completed."""
        async with self._lock:
            await self.timer.flush()
            await self.progress.flush()
        self.logger.info("Job session closed", current_step=self.current_step)

    # Internals

    async def _start(self, errors: list[StorageWriteError]) -> None:
        before = self.timer.state
        after = await self._timer_command(errors, self.timer.start())
        if after.current_step != before.current_step:
            await self._guarded(errors, self.progress.set_step(after.current_step))

    async def _advance_once(self, errors: list[StorageWriteError]) -> bool:
        before = self.timer.state
        after = await self._timer_command(
            errors, self.timer.advance_step(before.current_step + 1)
        )
        if after.current_step == before.current_step:
            return False

        await self._guarded(errors, self.progress.complete_step(before.current_step))
        await self._guarded(errors, self.progress.set_step(after.current_step))
        await self._after_advance(before, after, errors)
        return True

    async def _after_advance(
        self,
        before: JobTimerState,
        after: JobTimerState,
        errors: list[StorageWriteError]
    ) -> None:
        """Payment and completion side effects of one timer advance."""
        step = self._definition(after.current_step)
        if step is not None and step.is_billing_trigger:
            result = self.calculate_cost(after.billable_ms(self.clock()))
            await self._request_payment(
                PaymentStage.BILLING_STEP, result.billable_hours, result.cost
            )

        if after.is_terminal and not before.is_terminal:
            if not self.progress.is_completed:
                await self._guarded(errors, self.progress.complete_job())
            await self._request_payment(
                PaymentStage.COMPLETION, after.final_billable_hours, after.final_cost
            )

    async def _catch_up_timer(
        self,
        target: int,
        errors: Optional[list[StorageWriteError]] = None
    ) -> None:
        errors = [] if errors is None else errors

        if target < self.timer.current_step:
            self.logger.warning(
                "Ignoring backward external step change",
                timer_step=self.timer.current_step,
                external_step=target
            )
            return

        if target > 0 and not self.timer.state.is_started:
            await self._timer_command(errors, self.timer.start())

        while self.timer.current_step < target:
            if self.timer.phase != TimerPhase.RUNNING:
                self.logger.warning(
                    "Cannot absorb external step change while timer is not running",
                    timer_step=self.timer.current_step,
                    external_step=target,
                    phase=self.timer.phase.value
                )
                break

            before = self.timer.state
            after = await self._timer_command(
                errors, self.timer.advance_step(before.current_step + 1)
            )
            if after.current_step == before.current_step:
                break
            await self._after_advance(before, after, errors)

        self.logger.info(
            "Absorbed external step change",
            timer_step=self.timer.current_step,
            external_step=target
        )

    async def _timer_command(
        self,
        errors: list[StorageWriteError],
        command: Awaitable[JobTimerState]
    ) -> JobTimerState:
        # A failed write still leaves the new state in memory
        try:
            return await command
        except StorageWriteError as e:
            errors.append(e)
            return self.timer.state

    async def _request_payment(self, stage: PaymentStage, billable_hours: float, cost: float) -> None:
        if self.payments is None:
            return

        request = PaymentRequest(
            job_id=self.job_id,
            stage=stage,
            billable_hours=billable_hours,
            cost=cost,
            currency=self.config.billing.currency,
        )

        try:
            await self.payments.request_payment(request)
            billing_logger.info("Payment requested", payment=request.to_dict())
        except Exception as e:
            billing_logger.error(
                "Payment collaborator failed",
                job_id=self.job_id,
                stage=stage.value,
                error=str(e)
            )

    def _definition(self, step_id: int) -> Optional[StepDefinition]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @staticmethod
    async def _guarded(errors: list[StorageWriteError], command: Awaitable[Any]) -> None:
        try:
            await command
        except StorageWriteError as e:
            errors.append(e)

    def _raise_first(self, errors: list[StorageWriteError]) -> None:
        if not errors:
            return
        self.logger.error(
            "State may not survive a restart",
            failed_writes=len(errors),
            error=str(errors[0])
        )
        raise errors[0]
