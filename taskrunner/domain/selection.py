from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .entities import Task
from .errors import EmptySelection

ALL_TOKEN = "all"

_SEPARATORS = re.compile(r"[,\s]+")
_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Selection:
    tasks: tuple[Task, ...]

    @property
    def count(self) -> int:
        return len(self.tasks)

    @property
    def ids(self) -> list[int]:
        return [task.id for task in self.tasks]

    def __bool__(self) -> bool:
        return bool(self.tasks)

    def require(self) -> Selection:
        if not self.tasks:
            raise EmptySelection()
        return self


def parse_ids(raw: str) -> list[int]:
    """Positive integer ids from a comma/whitespace separated string.

    Tokens that are not integers, or are zero or negative, are skipped.
    Order of first appearance is kept and duplicates are dropped.
    """
    ids: list[int] = []
    seen: set[int] = set()
    for token in _SEPARATORS.split(raw):
        # Plain ASCII digits only.
        if not _DIGITS.fullmatch(token):
            continue
        task_id = int(token)
        if task_id <= 0 or task_id in seen:
            continue
        seen.add(task_id)
        ids.append(task_id)
    return ids


def resolve_selection(pending: Iterable[Task], raw: str) -> Selection:
    """Turn user selection text into the pending tasks it names, in store order."""
    candidates = [task for task in pending if not task.completed]
    text = raw.rstrip("\r\n")

    if text == ALL_TOKEN:
        return Selection(tuple(candidates))

    wanted = set(parse_ids(text))
    return Selection(tuple(task for task in candidates if task.id in wanted))
