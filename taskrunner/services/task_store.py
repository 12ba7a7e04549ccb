from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any, Protocol

from taskrunner.domain.entities import Task, utcnow
from taskrunner.domain.enums import Priority
from taskrunner.domain.errors import CapacityExceeded, NotFound

logger = logging.getLogger(__name__)


class SnapshotGateway(Protocol):
    def save(self, tasks: list[Task], next_id: int) -> None: ...

    def load(self) -> tuple[list[Task], int] | None: ...


class TaskStore:
    """
    Ordered in-memory collection of tasks.

    Owns id assignment and completion state. Order is insertion order until
    an explicit reorder. Lookups go through an id -> position index that is
    rebuilt whenever positions shift.

    Not safe for arbitrary concurrent mutation: during a run only the
    executor writes, and only the ``completed`` flag of tasks it owns.
    """

    def __init__(self, capacity: int, tasks: Iterable[Task] = (), next_id: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._tasks: list[Task] = []
        self._index: dict[int, int] = {}

        loaded = list(tasks)
        if len(loaded) > capacity:
            logger.warning(
                "Snapshot holds %s tasks, more than capacity %s; keeping the first %s",
                len(loaded),
                capacity,
                capacity,
            )
            loaded = loaded[:capacity]
        for task in loaded:
            if task.id in self._index:
                raise ValueError(f"Duplicate task id {task.id}")
            self._index[task.id] = len(self._tasks)
            self._tasks.append(task)

        highest = max(self._index, default=0)
        self._next_id = max(int(next_id), highest + 1)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def next_id(self) -> int:
        return self._next_id

    @property
    def is_full(self) -> bool:
        return len(self._tasks) >= self._capacity

    def __len__(self) -> int:
        return len(self._tasks)

    def add(
        self,
        description: str,
        priority: Priority,
        duration: int,
        created_at: datetime | None = None,
    ) -> Task:
        if self.is_full:
            raise CapacityExceeded(self._capacity)
        task = Task(
            id=self._next_id,
            description=description,
            priority=Priority(priority),
            duration=int(duration),
            created_at=created_at or utcnow(),
        )
        self._next_id += 1
        self._index[task.id] = len(self._tasks)
        self._tasks.append(task)
        logger.debug("Task added id=%s priority=%s duration=%s", task.id, task.priority.label, task.duration)
        return task

    def find(self, task_id: int) -> Task | None:
        position = self._index.get(task_id)
        return self._tasks[position] if position is not None else None

    def get(self, task_id: int) -> Task:
        task = self.find(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def remove(self, task_id: int) -> bool:
        position = self._index.pop(task_id, None)
        if position is None:
            return False
        del self._tasks[position]
        self._reindex(start=position)
        logger.debug("Task removed id=%s", task_id)
        return True

    def all(self) -> list[Task]:
        return list(self._tasks)

    def pending(self) -> list[Task]:
        return [task for task in self._tasks if not task.completed]

    def mark_completed(self, task_id: int) -> Task:
        task = self.get(task_id)
        task.completed = True
        return task

    def reorder(self, key: Callable[[Task], Any], reverse: bool = False) -> None:
        # list.sort is stable, so ties keep their current relative order.
        self._tasks.sort(key=key, reverse=reverse)
        self._reindex()

    def snapshot(self) -> tuple[list[Task], int]:
        return [replace(task) for task in self._tasks], self._next_id

    def _reindex(self, start: int = 0) -> None:
        for position in range(start, len(self._tasks)):
            self._index[self._tasks[position].id] = position
