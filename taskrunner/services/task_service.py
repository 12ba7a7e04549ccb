from __future__ import annotations

import logging

from taskrunner.domain.entities import Task
from taskrunner.domain.enums import Priority, SortKey
from taskrunner.domain.errors import InvalidInput, NotFound
from taskrunner.domain.filters import TaskFilters

from .task_store import SnapshotGateway, TaskStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_DESCRIPTION = 256
DEFAULT_MAX_DURATION = 3600


class TaskService:
    def __init__(
        self,
        store: TaskStore,
        repo: SnapshotGateway,
        *,
        max_description: int = DEFAULT_MAX_DESCRIPTION,
        max_duration: int = DEFAULT_MAX_DURATION,
    ) -> None:
        self._store = store
        self._repo = repo
        self._max_description = max_description
        self._max_duration = max_duration

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def max_duration(self) -> int:
        return self._max_duration

    def list_tasks(self, filters: TaskFilters | None = None) -> list[Task]:
        tasks = self._store.all()
        if filters is None:
            return tasks
        return [task for task in tasks if filters.matches(task)]

    def search(self, filters: TaskFilters) -> list[Task]:
        return self.list_tasks(filters)

    def get_task(self, task_id: int) -> Task | None:
        return self._store.find(task_id)

    def find_duplicate(self, description: str) -> Task | None:
        text = description.strip()
        return next((t for t in self._store.all() if t.description == text), None)

    def create_task(self, description: str, priority: Priority | int, duration: int) -> Task:
        task = self._store.add(
            self.validate_description(description),
            self.validate_priority(priority),
            self.validate_duration(duration),
        )
        logger.info("Task created id=%s", task.id)
        self._save()
        return task

    def update_task(
        self,
        task_id: int,
        *,
        description: str | None = None,
        priority: Priority | int | None = None,
        duration: int | None = None,
    ) -> Task:
        task = self._store.get(task_id)
        # Validate everything before touching the task.
        new_description = self.validate_description(description) if description is not None else None
        new_priority = self.validate_priority(priority) if priority is not None else None
        new_duration = self.validate_duration(duration) if duration is not None else None

        if new_description is not None:
            task.description = new_description
        if new_priority is not None:
            task.priority = new_priority
        if new_duration is not None:
            task.duration = new_duration
        logger.info("Task updated id=%s", task.id)
        self._save()
        return task

    def toggle_completed(self, task_id: int) -> Task:
        task = self._store.get(task_id)
        task.completed = not task.completed
        logger.info("Task id=%s status -> %s", task.id, task.status_label)
        self._save()
        return task

    def delete_task(self, task_id: int) -> None:
        if not self._store.remove(task_id):
            raise NotFound(task_id)
        logger.info("Task deleted id=%s", task_id)
        self._save()

    def sort_tasks(self, key: SortKey | str) -> list[Task]:
        sort_key = SortKey(key)
        if sort_key == SortKey.PRIORITY:
            self._store.reorder(key=lambda t: (t.priority, t.duration))
        elif sort_key == SortKey.DURATION:
            self._store.reorder(key=lambda t: (t.duration, t.priority))
        else:
            self._store.reorder(key=lambda t: t.created_at, reverse=True)
        logger.info("Tasks sorted by %s", sort_key.value)
        self._save()
        return self._store.all()

    def get_stats(self) -> dict[str, int]:
        tasks = self._store.all()
        completed = sum(1 for t in tasks if t.completed)
        return {
            "total": len(tasks),
            "pending": len(tasks) - completed,
            "completed": completed,
        }

    def validate_description(self, description: str) -> str:
        text = (description or "").strip()
        if not text:
            raise InvalidInput("Description is required.")
        if len(text) > self._max_description:
            raise InvalidInput(f"Description is longer than {self._max_description} characters.")
        return text

    def validate_duration(self, duration: int | str) -> int:
        try:
            value = int(duration)
        except (TypeError, ValueError):
            raise InvalidInput(f"Duration must be a whole number of seconds, got {duration!r}.") from None
        if value < 1 or value > self._max_duration:
            raise InvalidInput(
                f"Invalid duration. Please enter a value between 1 and {self._max_duration} seconds."
            )
        return value

    @staticmethod
    def validate_priority(priority: Priority | int) -> Priority:
        try:
            return Priority(priority)
        except ValueError:
            raise InvalidInput(f"Unknown priority {priority!r}.") from None

    def _save(self) -> None:
        tasks, next_id = self._store.snapshot()
        self._repo.save(tasks, next_id)
