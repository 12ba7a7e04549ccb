"""
Task execution engine.

Executing a task means counting down its declared duration one tick at a
time. The bounded executor runs a selection in waves of at most
``max_concurrency`` threads; every thread of a wave is joined before the
next wave is launched. The sequential and single-task executors are the
same engine with a concurrency of one.

Cancellation is cooperative: the orchestrator sets a shared RunControl and
each unit checks it once per tick. Ctrl+C anywhere in the wave loop sets it.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from taskrunner.domain.entities import ExecutionHandle, Task
from taskrunner.domain.errors import AlreadyCompleted, EmptySelection, NotFound
from taskrunner.domain.selection import Selection, resolve_selection

from .task_store import SnapshotGateway, TaskStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 10

Sleep = Callable[[float], None]
Clock = Callable[[], float]


class RunControl:
    """Run-wide cancellation flag. Only the orchestrator calls ``cancel``."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class UnitOutcome(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ExecutionListener:
    """No-op hooks; subclass and override the ones you need.

    Unit hooks are called from worker threads.
    """

    def on_run_start(self, tasks: Sequence[Task], concurrency: int) -> None:
        pass

    def on_wave_start(self, wave: int, handles: Sequence[ExecutionHandle]) -> None:
        pass

    def on_unit_start(self, handle: ExecutionHandle) -> None:
        pass

    def on_tick(self, handle: ExecutionHandle, remaining: int) -> None:
        pass

    def on_unit_finish(self, handle: ExecutionHandle, outcome: UnitOutcome) -> None:
        pass

    def on_wave_end(self, wave: int) -> None:
        pass

    def on_run_end(self, report: RunReport) -> None:
        pass


@dataclass
class RunReport:
    selected: list[int]
    concurrency: int
    completed_ids: list[int] = field(default_factory=list)
    cancelled_ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)
    not_started_ids: list[int] = field(default_factory=list)
    waves: int = 0
    elapsed: float = 0.0
    cancelled: bool = False

    @property
    def completed(self) -> int:
        return len(self.completed_ids)

    def record(self, task_id: int, outcome: UnitOutcome) -> None:
        if outcome == UnitOutcome.COMPLETED:
            self.completed_ids.append(task_id)
        elif outcome == UnitOutcome.CANCELLED:
            self.cancelled_ids.append(task_id)
        else:
            self.failed_ids.append(task_id)


def run_countdown(
    handle: ExecutionHandle,
    control: RunControl,
    *,
    sleep: Sleep = time.sleep,
    tick_seconds: float = 1.0,
    listener: ExecutionListener | None = None,
) -> UnitOutcome:
    """Count the task's duration down to zero, then mark it completed.

    The flag is checked before every step; a cancelled unit returns without
    touching the task.
    """
    listener = listener or ExecutionListener()
    task = handle.task
    for remaining in range(task.duration, 0, -1):
        if control.cancelled:
            return UnitOutcome.CANCELLED
        listener.on_tick(handle, remaining)
        sleep(tick_seconds)
    task.completed = True
    return UnitOutcome.COMPLETED


class BoundedExecutor:
    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        *,
        sleep: Sleep = time.sleep,
        clock: Clock = time.monotonic,
        tick_seconds: float = 1.0,
        listener: ExecutionListener | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._max_concurrency = max_concurrency
        self._sleep = sleep
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._listener = listener or ExecutionListener()

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def concurrency_for(self, count: int) -> int:
        return min(count, self._max_concurrency)

    def run(self, selection: Selection | Sequence[Task], control: RunControl | None = None) -> RunReport:
        tasks = list(selection.tasks if isinstance(selection, Selection) else selection)
        if not tasks:
            raise EmptySelection()
        ids = [task.id for task in tasks]
        if len(set(ids)) != len(ids):
            raise ValueError("A task may appear only once in a run")

        control = control or RunControl()
        concurrency = self.concurrency_for(len(tasks))
        report = RunReport(selected=ids, concurrency=concurrency)

        logger.info("Run started tasks=%s concurrency=%s", len(tasks), concurrency)
        self._listener.on_run_start(tasks, concurrency)

        started = self._clock()
        try:
            for wave_no, start in enumerate(range(0, len(tasks), concurrency), start=1):
                if control.cancelled:
                    break
                report.waves = wave_no
                self._run_wave(wave_no, tasks[start : start + concurrency], control, report)
        except KeyboardInterrupt:
            # Already-finished waves keep their results; the caller still saves.
            if not control.cancelled:
                logger.warning("Interrupted between waves; cancelling run")
            control.cancel()

        report.elapsed = self._clock() - started
        report.cancelled = control.cancelled
        attempted = set(report.completed_ids) | set(report.cancelled_ids) | set(report.failed_ids)
        report.not_started_ids = [task_id for task_id in ids if task_id not in attempted]

        logger.info(
            "Run finished completed=%s cancelled=%s failed=%s not_started=%s waves=%s elapsed=%.1fs",
            report.completed,
            len(report.cancelled_ids),
            len(report.failed_ids),
            len(report.not_started_ids),
            report.waves,
            report.elapsed,
        )
        self._listener.on_run_end(report)
        return report

    def _run_wave(self, wave_no: int, wave: Sequence[Task], control: RunControl, report: RunReport) -> None:
        handles = [ExecutionHandle(task=task, slot=slot) for slot, task in enumerate(wave, start=1)]
        outcomes: dict[int, UnitOutcome] = {}
        lock = threading.Lock()

        def unit(handle: ExecutionHandle) -> None:
            try:
                self._listener.on_unit_start(handle)
                outcome = run_countdown(
                    handle,
                    control,
                    sleep=self._sleep,
                    tick_seconds=self._tick_seconds,
                    listener=self._listener,
                )
            except Exception:
                logger.exception("Unit failed task_id=%s slot=%s", handle.task_id, handle.slot)
                outcome = UnitOutcome.FAILED
            with lock:
                outcomes[handle.task_id] = outcome
            logger.debug("Unit finished task_id=%s slot=%s outcome=%s", handle.task_id, handle.slot, outcome.value)
            self._listener.on_unit_finish(handle, outcome)

        logger.debug("Wave %s starting tasks=%s", wave_no, [h.task_id for h in handles])
        threads: list[threading.Thread] = []
        try:
            self._listener.on_wave_start(wave_no, handles)
            for handle in handles:
                thread = threading.Thread(
                    target=unit, args=(handle,), name=f"task-unit-{handle.task_id}", daemon=True
                )
                thread.start()
                threads.append(thread)
            self._join_all(threads, control)
            self._listener.on_wave_end(wave_no)
        except KeyboardInterrupt:
            if not control.cancelled:
                logger.warning("Interrupted; cancelling running tasks")
            control.cancel()
            raise
        finally:
            # Every started unit is joined and recorded, even when interrupted.
            self._join_all(threads, control)
            for handle in handles:
                outcome = outcomes.get(handle.task_id)
                if outcome is not None:
                    report.record(handle.task_id, outcome)

    @staticmethod
    def _join_all(threads: Sequence[threading.Thread], control: RunControl) -> None:
        # Barrier: nothing of the next wave starts until every thread here is done.
        for thread in threads:
            while True:
                try:
                    thread.join()
                    break
                except KeyboardInterrupt:
                    if not control.cancelled:
                        logger.warning("Interrupted; cancelling running tasks")
                    control.cancel()


class SequentialExecutor:
    """Runs every pending task one at a time, most urgent and shortest first."""

    def __init__(self, store: TaskStore, engine: BoundedExecutor) -> None:
        self._store = store
        self._engine = engine

    def plan(self) -> list[Task]:
        self._store.reorder(key=lambda task: (task.priority, task.duration))
        return self._store.pending()

    def run(self, tasks: Sequence[Task] | None = None, control: RunControl | None = None) -> RunReport:
        planned = list(tasks) if tasks is not None else self.plan()
        if not planned:
            raise EmptySelection("No pending tasks to execute.")
        return self._engine.run(planned, control)


class SingleTaskExecutor:
    def __init__(self, store: TaskStore, engine: BoundedExecutor) -> None:
        self._store = store
        self._engine = engine

    def resolve(self, task_id: int) -> Task:
        task = self._store.find(task_id)
        if task is None:
            raise NotFound(task_id)
        if task.completed:
            raise AlreadyCompleted(task_id)
        return task

    def run(self, task_id: int, control: RunControl | None = None) -> RunReport:
        return self._engine.run([self.resolve(task_id)], control)


Confirm = Callable[[Sequence[Task]], bool]


class ExecutionService:
    """
    Entry point for the three execution modes.

    Each mode validates its input before any unit is launched, asks the
    optional ``confirm`` gate, runs, and then writes exactly one snapshot.
    Nothing is saved when validation fails or the gate declines.
    """

    def __init__(
        self,
        store: TaskStore,
        gateway: SnapshotGateway,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        sleep: Sleep = time.sleep,
        clock: Clock = time.monotonic,
        tick_seconds: float = 1.0,
        listener: ExecutionListener | None = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._bounded = BoundedExecutor(
            max_concurrency, sleep=sleep, clock=clock, tick_seconds=tick_seconds, listener=listener
        )
        serial = BoundedExecutor(1, sleep=sleep, clock=clock, tick_seconds=tick_seconds, listener=listener)
        self._sequential = SequentialExecutor(store, serial)
        self._single = SingleTaskExecutor(store, serial)

    def concurrency_for(self, count: int) -> int:
        return self._bounded.concurrency_for(count)

    def pending(self) -> list[Task]:
        return self._store.pending()

    def select(self, raw: str) -> Selection:
        return resolve_selection(self._store.pending(), raw).require()

    def run_selected(
        self, raw: str, confirm: Confirm | None = None, control: RunControl | None = None
    ) -> RunReport | None:
        selection = self.select(raw)
        if confirm is not None and not confirm(selection.tasks):
            logger.info("Run declined before start")
            return None
        return self._finish(self._bounded.run(selection, control))

    def plan_sequential(self) -> list[Task]:
        tasks = self._sequential.plan()
        if not tasks:
            raise EmptySelection("No pending tasks to execute.")
        return tasks

    def run_sequential(self, confirm: Confirm | None = None, control: RunControl | None = None) -> RunReport | None:
        tasks = self.plan_sequential()
        if confirm is not None and not confirm(tasks):
            logger.info("Run declined before start")
            return None
        return self._finish(self._sequential.run(tasks, control))

    def run_single(
        self, task_id: int, confirm: Confirm | None = None, control: RunControl | None = None
    ) -> RunReport | None:
        task = self._single.resolve(task_id)
        if confirm is not None and not confirm([task]):
            logger.info("Run declined before start")
            return None
        return self._finish(self._single.run(task_id, control))

    def _finish(self, report: RunReport) -> RunReport:
        tasks, next_id = self._store.snapshot()
        self._gateway.save(tasks, next_id)
        return report
