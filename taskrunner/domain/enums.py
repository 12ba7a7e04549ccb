from __future__ import annotations

from enum import IntEnum, StrEnum


class Priority(IntEnum):
    # Lower value is more urgent, so an ascending sort puts HIGH first.
    HIGH = 1
    MEDIUM = 3
    LOW = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_choice(cls, choice: int) -> Priority:
        """Map a 1/2/3 menu choice to High/Medium/Low."""
        mapping = {1: cls.HIGH, 2: cls.MEDIUM, 3: cls.LOW}
        try:
            return mapping[choice]
        except KeyError:
            raise ValueError(f"Unknown priority choice: {choice}") from None


class SortKey(StrEnum):
    PRIORITY = "priority"
    DURATION = "duration"
    CREATED = "created"
