from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .enums import Priority


def utcnow() -> datetime:
    return datetime.utcnow()


@dataclass
class Task:
    id: int
    description: str
    priority: Priority
    duration: int
    created_at: datetime = field(default_factory=utcnow)
    completed: bool = False

    @property
    def status_label(self) -> str:
        return "Completed" if self.completed else "Pending"


@dataclass(frozen=True)
class ExecutionHandle:
    """One task bound to a slot for the lifetime of a single unit of a run."""

    task: Task
    slot: int

    @property
    def task_id(self) -> int:
        return self.task.id
