"""
Job progress state machine.

Mirrors the timer's command discipline: apply in memory, persist the full
snapshot, return. Out-of-range moves are logged warnings and no-ops.
"""

import asyncio
from typing import Callable, Optional, Sequence

from ..errors import InvalidConfiguration, InvalidTransition
from ..logging.config import get_progress_logger, log_rejected_command, log_step_transition
from ..persistence.job_state_store import JobStateStore
from ..steps.catalog import StepDefinition
from ..utils.time import Clock, now_ms
from .models import JobProgressState

progress_logger = get_progress_logger(__name__)


class JobProgress:
    """Step-completion bookkeeping of one job, persisted through a JobStateStore."""

    def __init__(
        self,
        state: JobProgressState,
        store: JobStateStore,
        clock: Clock = now_ms
    ):
        self._state = state
        self.store = store
        self.clock = clock
        self.logger = progress_logger.bind(job_id=state.job_id)
        self._lock = asyncio.Lock()

    @classmethod
    async def restore(
        cls,
        job_id: str,
        store: JobStateStore,
        steps: Optional[Sequence[StepDefinition]] = None,
        initial_step: int = 0,
        clock: Clock = now_ms
    ) -> "JobProgress":
        """
        Load the stored progress for ``job_id``, or seed it from ``steps``.

        Raises:
            InvalidConfiguration: If nothing is stored and no catalog is given
        """
        record = await store.load(job_id)
        state = None

        if record is not None:
            try:
                state = JobProgressState.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                progress_logger.error(
                    "Stored progress record is malformed, discarding",
                    job_id=job_id,
                    error=str(e)
                )

        if state is not None:
            progress_logger.info(
                "Restored job progress",
                job_id=job_id,
                actual_step=state.actual_step,
                is_dirty=state.is_dirty
            )
            return cls(state, store, clock=clock)

        if not steps:
            raise InvalidConfiguration(
                f"No stored progress and no initial progress for job {job_id}",
                field="initial_progress",
                value=None,
            )

        state = JobProgressState.from_catalog(job_id, steps, initial_step, clock())
        progress = cls(state, store, clock=clock)
        progress.logger.info(
            "Created new job progress",
            actual_step=state.actual_step,
            total_steps=state.total_steps
        )
        await progress._persist()
        return progress

    @property
    def state(self) -> JobProgressState:
        return self._state

    @property
    def job_id(self) -> str:
        return self._state.job_id

    @property
    def actual_step(self) -> int:
        return self._state.actual_step

    @property
    def total_steps(self) -> int:
        return self._state.total_steps

    @property
    def is_completed(self) -> bool:
        return self._state.is_completed

    async def set_step(self, step: int) -> JobProgressState:
        return await self._apply("set_step", lambda s, now: s.with_step(step, now))

    async def next(self) -> JobProgressState:
        return await self._apply(
            "next", lambda s, now: s.with_step(s.actual_step + 1, now, command="next")
        )

    async def prev(self) -> JobProgressState:
        return await self._apply(
            "prev", lambda s, now: s.with_step(s.actual_step - 1, now, command="prev")
        )

    async def complete_step(self, step_id: int) -> JobProgressState:
        return await self._apply(
            "complete_step", lambda s, now: s.with_step_completed(step_id, now)
        )

    async def complete_job(self) -> JobProgressState:
        """Stamp every uncompleted step; already-completed steps keep their stamp."""
        return await self._apply("complete_job", lambda s, now: s.with_job_completed(now))

    async def reset(self) -> JobProgressState:
        return await self._apply("operator_reset", lambda s, now: s.with_reset(now))

    async def sync_from_remote(self, remote: JobProgressState) -> JobProgressState:
        """
        Reconcile with the remote source of truth.

        Last write wins on ``last_modified_at_ms``: unsynced local changes
        newer than the remote payload are kept (and stay dirty); otherwise
        the remote payload replaces the local record wholesale.
        """
        def reconcile(local: JobProgressState, now: int) -> JobProgressState:
            if remote.job_id != local.job_id:
                raise InvalidTransition(
                    f"Remote progress belongs to job {remote.job_id}",
                    command="sync_from_remote",
                    current_step=local.actual_step,
                    attempted_step=remote.actual_step,
                )

            if local.is_dirty and local.last_modified_at_ms > remote.last_modified_at_ms:
                self.logger.info(
                    "Local progress is newer than remote, keeping local",
                    local_modified_at_ms=local.last_modified_at_ms,
                    remote_modified_at_ms=remote.last_modified_at_ms
                )
                return local

            return JobProgressState(
                job_id=local.job_id,
                actual_step=remote.actual_step,
                steps=remote.steps,
                completed_at_ms=remote.completed_at_ms,
                last_synced_at_ms=now,
                last_modified_at_ms=remote.last_modified_at_ms,
                is_dirty=False,
            )

        return await self._apply("sync_from_remote", reconcile)

    async def flush(self) -> None:
        """Wait for any in-flight command and its write to finish."""
        async with self._lock:
            return None

    async def _apply(
        self,
        command: str,
        reducer: Callable[[JobProgressState, int], JobProgressState]
    ) -> JobProgressState:
        async with self._lock:
            old = self._state
            now = self.clock()

            try:
                new = reducer(old, now)
            except InvalidTransition as e:
                log_rejected_command(
                    self.logger,
                    job_id=old.job_id,
                    command=command,
                    reason=str(e),
                    context={
                        "actual_step": old.actual_step,
                        "attempted_step": e.attempted_step,
                    }
                )
                return old

            if new is old:
                return old

            self._state = new

            if new.actual_step != old.actual_step:
                log_step_transition(
                    self.logger,
                    job_id=new.job_id,
                    from_step=old.actual_step,
                    to_step=new.actual_step,
                    trigger=command,
                    context={"is_dirty": new.is_dirty}
                )
            else:
                self.logger.info(
                    "Progress command applied",
                    command=command,
                    actual_step=new.actual_step,
                    is_completed=new.is_completed
                )

            await self._persist()
            return self._state

    async def _persist(self) -> None:
        await self.store.save(self.job_id, self._state.to_dict())
