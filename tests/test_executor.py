from __future__ import annotations

import threading
import time
from collections.abc import Sequence

import pytest

from taskrunner.domain.entities import ExecutionHandle, Task
from taskrunner.domain.enums import Priority
from taskrunner.domain.errors import AlreadyCompleted, EmptySelection, NotFound
from taskrunner.services.executor import (
    BoundedExecutor,
    ExecutionListener,
    ExecutionService,
    RunControl,
    UnitOutcome,
)
from taskrunner.services.task_store import TaskStore

from .fakes import FakeRepo, make_task, no_sleep


class RecordingListener(ExecutionListener):
    """Records start/finish events in the order the engine emits them."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.events: list[tuple[str, int]] = []
        self.waves: list[list[int]] = []
        self.active = 0
        self.max_active = 0

    def on_wave_start(self, wave: int, handles: Sequence[ExecutionHandle]) -> None:
        self.waves.append([h.task_id for h in handles])

    def on_unit_start(self, handle: ExecutionHandle) -> None:
        with self.lock:
            self.events.append(("start", handle.task_id))
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def on_unit_finish(self, handle: ExecutionHandle, outcome: UnitOutcome) -> None:
        with self.lock:
            self.events.append(("finish", handle.task_id))
            self.active -= 1

    def started(self) -> list[int]:
        return [task_id for kind, task_id in self.events if kind == "start"]


def tiny_sleep(_seconds: float) -> None:
    time.sleep(0.001)


def store_with(tasks: list[Task]) -> TaskStore:
    return TaskStore(capacity=100, tasks=tasks, next_id=len(tasks) + 1)


def test_bounded_run_completes_every_selected_task() -> None:
    tasks = [make_task(i, duration=2) for i in range(1, 6)]
    listener = RecordingListener()
    engine = BoundedExecutor(2, sleep=tiny_sleep, listener=listener)

    report = engine.run(tasks)

    assert all(t.completed for t in tasks)
    assert sorted(report.completed_ids) == [1, 2, 3, 4, 5]
    assert report.concurrency == 2
    assert report.waves == 3
    assert report.not_started_ids == []
    assert not report.cancelled
    assert listener.waves == [[1, 2], [3, 4], [5]]


def test_next_wave_starts_only_after_previous_wave_finished() -> None:
    tasks = [make_task(i, duration=(i % 3) + 1) for i in range(1, 8)]
    listener = RecordingListener()
    engine = BoundedExecutor(3, sleep=tiny_sleep, listener=listener)

    engine.run(tasks)

    position = {event: index for index, event in enumerate(listener.events)}
    for earlier, later in zip(listener.waves, listener.waves[1:]):
        last_finish = max(position[("finish", task_id)] for task_id in earlier)
        first_start = min(position[("start", task_id)] for task_id in later)
        assert last_finish < first_start
    assert listener.max_active <= 3


def test_units_in_a_wave_never_share_a_task() -> None:
    tasks = [make_task(i) for i in range(1, 13)]
    listener = RecordingListener()

    BoundedExecutor(10, sleep=no_sleep, listener=listener).run(tasks)

    assert [len(w) for w in listener.waves] == [10, 2]
    for wave in listener.waves:
        assert len(set(wave)) == len(wave)
    assert sorted(listener.started()) == list(range(1, 13))


def test_same_task_twice_is_rejected() -> None:
    task = make_task(1)

    with pytest.raises(ValueError):
        BoundedExecutor(2, sleep=no_sleep).run([task, task])


def test_empty_run_raises() -> None:
    with pytest.raises(EmptySelection):
        BoundedExecutor(2, sleep=no_sleep).run([])


def test_elapsed_spans_first_wave_start_to_last_wave_end() -> None:
    ticks = iter([100.0, 107.5])
    engine = BoundedExecutor(2, sleep=no_sleep, clock=lambda: next(ticks))

    report = engine.run([make_task(1), make_task(2), make_task(3)])

    assert report.elapsed == 7.5


def test_cancellation_stops_units_and_later_waves() -> None:
    tasks = [make_task(i, duration=3) for i in range(1, 5)]
    control = RunControl()

    def cancelling_sleep(_seconds: float) -> None:
        control.cancel()

    report = BoundedExecutor(2, sleep=cancelling_sleep).run(tasks, control)

    assert report.cancelled
    assert report.completed == 0
    assert sorted(report.cancelled_ids) == [1, 2]
    assert report.not_started_ids == [3, 4]
    assert report.waves == 1
    assert not any(t.completed for t in tasks)


def test_completed_tasks_stay_completed_after_cancellation() -> None:
    tasks = [make_task(1, duration=1), make_task(2, duration=1), make_task(3, duration=2)]
    control = RunControl()
    calls = {"n": 0}

    def sleep(_seconds: float) -> None:
        calls["n"] += 1
        if calls["n"] == 3:
            control.cancel()

    report = BoundedExecutor(1, sleep=sleep).run(tasks, control)

    assert report.completed_ids == [1, 2]
    assert report.cancelled_ids == [3]
    assert [t.completed for t in tasks] == [True, True, False]


def test_interrupt_while_joining_sets_the_flag() -> None:
    class InterruptedThread:
        def __init__(self) -> None:
            self.calls = 0

        def join(self) -> None:
            self.calls += 1
            if self.calls == 1:
                raise KeyboardInterrupt

    control = RunControl()
    thread = InterruptedThread()

    BoundedExecutor._join_all([thread], control)

    assert control.cancelled
    assert thread.calls == 2


def test_failing_unit_is_reported_and_others_finish() -> None:
    class Exploding(ExecutionListener):
        def on_tick(self, handle: ExecutionHandle, remaining: int) -> None:
            if handle.task_id == 2:
                raise RuntimeError("boom")

    tasks = [make_task(1), make_task(2), make_task(3)]

    report = BoundedExecutor(3, sleep=no_sleep, listener=Exploding()).run(tasks)

    assert report.failed_ids == [2]
    assert sorted(report.completed_ids) == [1, 3]
    assert not tasks[1].completed


def test_sequential_orders_by_priority_then_duration() -> None:
    store = store_with(
        [
            make_task(1, Priority.HIGH, 10),
            make_task(2, Priority.LOW, 5),
            make_task(3, Priority.HIGH, 2),
        ]
    )
    repo = FakeRepo()
    listener = RecordingListener()
    service = ExecutionService(store, repo, sleep=no_sleep, listener=listener)

    report = service.run_sequential()

    assert listener.started() == [3, 1, 2]
    assert [t.id for t in store.all()] == [3, 1, 2]
    assert all(t.completed for t in store.all())
    assert report.completed == 3
    assert listener.max_active == 1
    assert len(repo.saves) == 1


def test_sequential_with_nothing_pending_raises() -> None:
    store = store_with([make_task(1, completed=True)])
    repo = FakeRepo()

    with pytest.raises(EmptySelection):
        ExecutionService(store, repo, sleep=no_sleep).run_sequential()
    assert repo.saves == []


def test_single_task_run_marks_completed_and_saves() -> None:
    store = store_with([make_task(1), make_task(2, duration=3)])
    repo = FakeRepo()

    report = ExecutionService(store, repo, sleep=no_sleep).run_single(2)

    assert report.completed_ids == [2]
    assert store.find(2).completed
    assert not store.find(1).completed
    assert len(repo.saves) == 1


def test_single_task_already_completed_is_a_no_op() -> None:
    store = store_with([make_task(1, completed=True)])
    repo = FakeRepo()
    before = store.snapshot()

    with pytest.raises(AlreadyCompleted):
        ExecutionService(store, repo, sleep=no_sleep).run_single(1)

    assert store.snapshot() == before
    assert repo.saves == []


def test_single_task_unknown_id() -> None:
    store = store_with([make_task(1)])

    with pytest.raises(NotFound):
        ExecutionService(store, FakeRepo(), sleep=no_sleep).run_single(7)


def test_run_selected_saves_exactly_once() -> None:
    store = store_with([make_task(i) for i in range(1, 4)])
    repo = FakeRepo()

    report = ExecutionService(store, repo, max_concurrency=10, sleep=no_sleep).run_selected("1, 3")

    assert sorted(report.completed_ids) == [1, 3]
    assert report.concurrency == 2
    assert len(repo.saves) == 1
    saved, next_id = repo.saves[0]
    assert [t.completed for t in saved] == [True, False, True]
    assert next_id == 4


def test_empty_selection_launches_nothing_and_does_not_save() -> None:
    store = store_with([make_task(1), make_task(2, completed=True)])
    repo = FakeRepo()
    listener = RecordingListener()
    service = ExecutionService(store, repo, sleep=no_sleep, listener=listener)

    for raw in ("", "2", "abc, 0"):
        with pytest.raises(EmptySelection):
            service.run_selected(raw)

    assert listener.events == []
    assert repo.saves == []


def test_declined_gate_runs_nothing() -> None:
    store = store_with([make_task(1)])
    repo = FakeRepo()
    seen: list[list[int]] = []

    def gate(tasks: Sequence[Task]) -> bool:
        seen.append([t.id for t in tasks])
        return False

    result = ExecutionService(store, repo, sleep=no_sleep).run_selected("all", confirm=gate)

    assert result is None
    assert seen == [[1]]
    assert not store.find(1).completed
    assert repo.saves == []


class InterruptOnWave(ExecutionListener):
    def __init__(self, hook: str, wave: int) -> None:
        self.hook = hook
        self.wave = wave

    def on_wave_start(self, wave: int, handles: Sequence[ExecutionHandle]) -> None:
        if self.hook == "start" and wave == self.wave:
            raise KeyboardInterrupt

    def on_wave_end(self, wave: int) -> None:
        if self.hook == "end" and wave == self.wave:
            raise KeyboardInterrupt


def test_interrupt_between_waves_keeps_results_and_saves_once() -> None:
    store = store_with([make_task(i) for i in range(1, 4)])
    repo = FakeRepo()
    service = ExecutionService(store, repo, max_concurrency=2, sleep=no_sleep, listener=InterruptOnWave("end", 1))

    report = service.run_selected("all")

    assert report.cancelled
    assert report.completed_ids == [1, 2]
    assert report.not_started_ids == [3]
    assert report.waves == 1
    assert len(repo.saves) == 1
    saved, _ = repo.saves[0]
    assert [t.completed for t in saved] == [True, True, False]


def test_interrupt_before_launch_still_saves_once() -> None:
    store = store_with([make_task(i) for i in range(1, 4)])
    repo = FakeRepo()
    service = ExecutionService(store, repo, max_concurrency=2, sleep=no_sleep, listener=InterruptOnWave("start", 1))

    report = service.run_selected("all")

    assert report.cancelled
    assert report.completed == 0
    assert report.not_started_ids == [1, 2, 3]
    assert not any(t.completed for t in store.all())
    assert len(repo.saves) == 1


def test_cancelled_sequential_run_leaves_the_rest_unstarted() -> None:
    store = store_with(
        [
            make_task(1, Priority.HIGH, 2),
            make_task(2, Priority.MEDIUM, 2),
            make_task(3, Priority.LOW, 2),
        ]
    )
    repo = FakeRepo()
    control = RunControl()

    def cancelling_sleep(_seconds: float) -> None:
        control.cancel()

    report = ExecutionService(store, repo, sleep=cancelling_sleep).run_sequential(control=control)

    assert report.cancelled
    assert report.cancelled_ids == [1]
    assert report.not_started_ids == [2, 3]
    assert report.waves == 1
    assert not any(t.completed for t in store.all())
    assert len(repo.saves) == 1
