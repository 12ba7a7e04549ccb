from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entities import Task
from .enums import Priority


@dataclass(frozen=True)
class TaskFilters:
    search: str | None = None
    priority: Optional[Priority] = None

    def matches(self, task: Task) -> bool:
        # Keyword match is a plain, case-sensitive substring test.
        if self.search and self.search not in task.description:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        return True
