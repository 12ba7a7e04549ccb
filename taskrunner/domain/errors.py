from __future__ import annotations


class TaskRunnerError(Exception):
    """Base class for recoverable task tracker errors."""


class CapacityExceeded(TaskRunnerError):
    def __init__(self, capacity: int) -> None:
        super().__init__(f"Task limit reached ({capacity} tasks).")
        self.capacity = capacity


class NotFound(TaskRunnerError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task with ID {task_id} not found.")
        self.task_id = task_id


class AlreadyCompleted(TaskRunnerError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} is already marked as completed.")
        self.task_id = task_id


class EmptySelection(TaskRunnerError):
    def __init__(self, message: str = "No valid tasks selected.") -> None:
        super().__init__(message)


class InvalidInput(TaskRunnerError):
    pass


class PersistenceError(TaskRunnerError):
    pass
