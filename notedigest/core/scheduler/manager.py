# notedigest/core/scheduler/manager.py
from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional
from notedigest.core.errors import (
    ScheduleAlreadyRunningError,
    ScheduleNotFoundError,
    StoreUnavailableError,
    SweepTimeoutError,
)
from notedigest.core.logging import get_logger
from notedigest.core.models.app import ManagerConfig
from notedigest.core.models.execution import ScheduleExecution
from notedigest.core.models.schedule import ScheduleConfig
from notedigest.core.scheduler.calculator import (
    Clock,
    compute_next_run,
    is_schedule_due,
    utc_now,
)
from notedigest.core.scheduler.events import (
    ScheduleEventBus,
    ScheduleExecutionCompleted,
    ScheduleExecutionStarted,
)
from notedigest.core.scheduler.executor import ScheduleExecutor
from notedigest.core.scheduler.tracking import ExecutionTracker
from notedigest.core.store.base import ScheduleStore, load_owned_schedule
from notedigest.core.types.status import ExecutionStatus

logger = get_logger('manager')


@dataclass
class SweepReport:
    """
    Aggregate of one sweep.

    Fields:
        checked: schedules inspected for due-ness
        executed: executions started by this sweep
        errors: users whose schedules could not be listed, due schedules
            that could not be reloaded, plus executions that raised or
            finished failed
        skipped: due schedules left alone because they were already running
            or were no longer due once reloaded
        pending: ids still running when the sweep stopped waiting
    """

    checked: int = 0
    executed: int = 0
    errors: int = 0
    skipped: int = 0
    pending: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            'checked': self.checked,
            'executed': self.executed,
            'errors': self.errors,
        }


class ScheduleManager:
    """
    Control loop over users' schedules.

    Responsibilities:
    1. Detect due schedules for the watched users and execute them
    2. Guarantee a schedule never runs twice at once (ExecutionTracker)
    3. Run schedules on demand (execute_now)
    4. Notify subscribers when executions start and complete

    Different schedules execute concurrently; a sweep waits for them up to
    sweep_timeout_seconds and leaves any stragglers running; the background
    loop waits for them before it exits.
    """

    def __init__(
        self,
        store: ScheduleStore,
        executor: ScheduleExecutor,
        config: Optional[ManagerConfig] = None,
        *,
        tracker: Optional[ExecutionTracker] = None,
        events: Optional[ScheduleEventBus] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.executor = executor
        self.config = config or ManagerConfig()
        self.tracker = tracker if tracker is not None else ExecutionTracker()
        self.events = events if events is not None else ScheduleEventBus()
        self.clock = clock

        self._watched_users: list[str] = list(self.config.user_ids)
        self._stop = asyncio.Event()
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._running = False
        # Executions a timed-out sweep stopped waiting for
        self._orphans: set[asyncio.Task[Optional[ScheduleExecution]]] = set()
        self.last_sweep: Optional[SweepReport] = None

        logger.info(
            f'ScheduleManager initialized watching {len(self._watched_users)} user(s), '
            f'check_interval={self.config.check_interval_seconds}s'
        )

    # ----------------- Watched users -----------------

    @property
    def watched_users(self) -> list[str]:
        return list(self._watched_users)

    def watch_user(self, user_id: str) -> None:
        if user_id not in self._watched_users:
            self._watched_users.append(user_id)
            logger.debug(f"Watching schedules of user '{user_id}'")

    def unwatch_user(self, user_id: str) -> None:
        if user_id in self._watched_users:
            self._watched_users.remove(user_id)
            logger.debug(f"Stopped watching schedules of user '{user_id}'")

    # ----------------- Background loop -----------------

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the background loop on the running event loop."""
        if self._loop_task is not None and not self._loop_task.done():
            logger.debug('Schedule manager already running')
            return
        self._stop = asyncio.Event()
        self._loop_task = asyncio.create_task(self.run_forever())

    def request_stop(self) -> None:
        """Request the background loop to stop after the current sweep."""
        self._stop.set()

    async def stop(self) -> None:
        """Stop the background loop once executions it started have finished."""
        self._stop.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        logger.info('Schedule manager stopped')

    async def run_forever(self) -> None:
        """Main sweep loop."""
        logger.info(
            f'Starting schedule loop (initial delay {self.config.initial_delay_seconds}s)'
        )
        self._running = True
        try:
            if await self._wait_for_stop(self.config.initial_delay_seconds):
                return

            while not self._stop.is_set():
                try:
                    await self.force_check()
                except SweepTimeoutError as e:
                    logger.warning(f'{e.message}; pending: {e.report.pending}')
                except Exception as e:
                    logger.error(f'Error in schedule loop: {e}', exc_info=True)

                if await self._wait_for_stop(self.config.check_interval_seconds):
                    break
        finally:
            await self._drain_orphans()
            self._running = False

    async def _drain_orphans(self) -> None:
        """Wait for executions a timed-out sweep left running."""
        if not self._orphans:
            return
        logger.info(
            f'Waiting for {len(self._orphans)} execution(s) left by timed-out sweeps'
        )
        await asyncio.gather(*list(self._orphans), return_exceptions=True)

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Wait up to timeout seconds. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # ----------------- Sweep -----------------

    async def force_check(self) -> SweepReport:
        """
        Execute every due schedule of the watched users once.

        A user whose schedules cannot be listed is skipped for this sweep.
        Their schedules stay due and are picked up by the next one.

        Raises:
            SweepTimeoutError: executions were still running after
                sweep_timeout_seconds; the error carries the partial report
                and the executions continue in the background
        """
        now = self.clock()
        report = SweepReport()
        tasks: dict[asyncio.Task[Optional[ScheduleExecution]], str] = {}

        for user_id in list(self._watched_users):
            try:
                schedules = await self.store.list_schedules_for_user(user_id)
            except StoreUnavailableError as e:
                logger.warning(
                    f"Store not ready while listing schedules of '{user_id}', "
                    f'skipping until next sweep: {e.message}'
                )
                report.errors += 1
                continue
            except Exception as e:
                logger.error(
                    f"Failed to list schedules of '{user_id}': {e}", exc_info=True
                )
                report.errors += 1
                continue

            for schedule in schedules:
                report.checked += 1
                if not is_schedule_due(schedule, now):
                    continue
                if not self.tracker.try_acquire(schedule.id):
                    logger.debug(f"Schedule '{schedule.id}' already running, skipped")
                    report.skipped += 1
                    continue
                try:
                    current = await self.store.get_schedule_config(schedule.id)
                except Exception as e:
                    self.tracker.release(schedule.id)
                    logger.warning(
                        f"Could not reload schedule '{schedule.id}', "
                        f'skipping until next sweep: {e}'
                    )
                    report.errors += 1
                    continue
                # The listing may predate a run that finished before we acquired
                if current is None or not is_schedule_due(current, now):
                    self.tracker.release(schedule.id)
                    logger.debug(f"Schedule '{schedule.id}' no longer due, skipped")
                    report.skipped += 1
                    continue
                report.executed += 1
                task = asyncio.create_task(self._sweep_execution(current))
                tasks[task] = schedule.id

        if tasks:
            done, pending = await asyncio.wait(
                tasks.keys(), timeout=self.config.sweep_timeout_seconds
            )
            for task in done:
                execution = task.result()
                if execution is None or execution.status.is_error:
                    report.errors += 1
            if pending:
                report.pending = sorted(tasks[task] for task in pending)
                for task in pending:
                    self._orphans.add(task)
                    task.add_done_callback(self._orphans.discard)

        self.last_sweep = report
        if report.executed or report.errors:
            logger.info(
                f'Sweep finished: checked={report.checked}, executed={report.executed}, '
                f'errors={report.errors}, skipped={report.skipped}'
            )
        if report.pending:
            raise SweepTimeoutError(
                f'sweep timed out after {self.config.sweep_timeout_seconds}s '
                f'with {len(report.pending)} execution(s) still running',
                report=report,
            )
        return report

    async def _sweep_execution(
        self, schedule: ScheduleConfig
    ) -> Optional[ScheduleExecution]:
        """Run a tracked schedule for the sweep. Returns None if the executor raised."""
        try:
            return await self._run_tracked(schedule, manual=False)
        except StoreUnavailableError as e:
            logger.warning(
                f"Store not ready while executing '{schedule.id}', "
                f'will retry next sweep: {e.message}'
            )
        except Exception as e:
            logger.error(
                f"Failed to execute schedule '{schedule.id}': {e}", exc_info=True
            )
        return None

    async def _run_tracked(
        self, schedule: ScheduleConfig, *, manual: bool
    ) -> ScheduleExecution:
        """
        Execute a schedule whose tracking entry is already held.

        The entry is released before the completed event is published, so
        listeners observe is_executing() == False.
        """
        name = schedule.name or schedule.id
        self.events.publish(
            ScheduleExecutionStarted(
                schedule_id=schedule.id,
                schedule_name=name,
                user_id=schedule.user_id,
                manual=manual,
            )
        )

        execution: Optional[ScheduleExecution] = None
        failure: Optional[BaseException] = None
        try:
            execution = await self.executor.execute(schedule.id, schedule.user_id)
            return execution
        except BaseException as e:
            failure = e
            raise
        finally:
            self.tracker.release(schedule.id)
            if execution is not None:
                completed = ScheduleExecutionCompleted(
                    schedule_id=schedule.id,
                    schedule_name=name,
                    user_id=schedule.user_id,
                    success=execution.status != ExecutionStatus.FAILED,
                    status=execution.status,
                    error=execution.error,
                    manual=manual,
                )
            else:
                completed = ScheduleExecutionCompleted(
                    schedule_id=schedule.id,
                    schedule_name=name,
                    user_id=schedule.user_id,
                    success=False,
                    error=str(failure) if failure is not None else None,
                    manual=manual,
                )
            self.events.publish(completed)

    # ----------------- Manual execution -----------------

    async def execute_now(self, schedule_id: str, user_id: str) -> ScheduleExecution:
        """
        Run a schedule immediately, regardless of whether it is due.

        Raises:
            ScheduleAlreadyRunningError: the schedule is mid-execution
            ScheduleNotFoundError / ScheduleDeniedError: missing or not owned
            StoreUnavailableError: store not ready
        """
        if not self.tracker.try_acquire(schedule_id):
            raise ScheduleAlreadyRunningError(
                f"schedule '{schedule_id}' is already running",
                schedule_id=schedule_id,
            )
        try:
            schedule = await load_owned_schedule(self.store, schedule_id, user_id)
        except BaseException:
            self.tracker.release(schedule_id)
            raise

        logger.info(f"Manual execution of schedule '{schedule_id}' requested")
        return await self._run_tracked(schedule, manual=True)

    def is_executing(self, schedule_id: str) -> bool:
        return self.tracker.is_tracked(schedule_id)

    def clear_tracking(self, schedule_id: str) -> None:
        """
        Drop a tracking entry by hand, e.g. for an execution known to be lost.
        A still-running execution is not affected and releases nothing twice.
        """
        if self.tracker.release(schedule_id):
            logger.warning(f"Tracking for schedule '{schedule_id}' cleared manually")

    # ----------------- Schedule state -----------------

    async def set_active(
        self, schedule_id: str, user_id: str, is_active: bool
    ) -> ScheduleConfig:
        """
        Pause or resume a schedule. Resuming recomputes next_run from now so
        runs missed while paused are not replayed.
        """
        schedule = await load_owned_schedule(self.store, schedule_id, user_id)
        fields: dict[str, Any] = {'is_active': is_active}
        if is_active and not schedule.is_active:
            fields['next_run'] = compute_next_run(
                schedule, self.clock(), self.executor.custom_rule
            )

        if not await self.store.update_schedule_fields(schedule_id, fields):
            raise ScheduleNotFoundError(
                f"schedule '{schedule_id}' not found", schedule_id=schedule_id
            )
        logger.info(
            f"Schedule '{schedule_id}' {'resumed' if is_active else 'paused'}"
        )
        return schedule.model_copy(update=fields)

    # ----------------- Introspection -----------------

    def get_status(self) -> dict[str, Any]:
        return {
            'running': self._running,
            'watched_users': len(self._watched_users),
            'check_interval_seconds': self.config.check_interval_seconds,
            'executing': sorted(self.tracker.snapshot()),
        }

    def get_debug_info(self) -> dict[str, Any]:
        in_flight = self.tracker.snapshot()
        return {
            **self.get_status(),
            'watched_user_ids': self.watched_users,
            'sweep_timeout_seconds': self.config.sweep_timeout_seconds,
            'in_flight': {
                schedule_id: started.isoformat()
                for schedule_id, started in sorted(in_flight.items())
            },
            'orphaned_executions': len(self._orphans),
            'event_listeners': self.events.listener_count,
            'last_sweep': (
                self.last_sweep.as_dict() if self.last_sweep is not None else None
            ),
        }
