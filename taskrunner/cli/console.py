from __future__ import annotations

import re
import sys
import threading
from collections.abc import Callable, Sequence

from taskrunner.domain.entities import ExecutionHandle, Task
from taskrunner.services.executor import ExecutionListener, RunReport, UnitOutcome

InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_INTEGER = re.compile(r"-?[0-9]+")


class Console:
    """Prompt helpers; numeric prompts repeat until the answer is valid."""

    def __init__(self, input_fn: InputFn = input, output_fn: OutputFn = print) -> None:
        self._input = input_fn
        self._output = output_fn

    def say(self, text: str = "") -> None:
        self._output(text)

    def ask(self, prompt: str) -> str:
        return self._input(prompt)

    def ask_int(
        self,
        prompt: str,
        *,
        minimum: int | None = None,
        maximum: int | None = None,
        error: str | None = None,
    ) -> int:
        while True:
            raw = self._input(prompt).strip()
            if not _INTEGER.fullmatch(raw):
                self._output(error or "Please enter a number.")
                continue
            value = int(raw)
            if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
                self._output(error or f"Please enter a value between {minimum} and {maximum}.")
                continue
            return value

    def ask_choice(self, prompt: str, options: Sequence[str]) -> int:
        for number, label in enumerate(options, start=1):
            self._output(f"{number}. {label}")
        return self.ask_int(prompt, minimum=1, maximum=len(options), error="Invalid choice. Try again.")

    def confirm(self, prompt: str) -> bool:
        return self.ask_int(f"{prompt} (1=Yes, 0=No): ", minimum=0, maximum=1) == 1

    def wait_for_enter(self, prompt: str = "Press Enter to start execution or Ctrl+C to cancel...") -> bool:
        try:
            self._input(prompt)
        except (KeyboardInterrupt, EOFError):
            self._output("")
            return False
        return True


def format_task_row(task: Task) -> str:
    description = task.description if len(task.description) <= 25 else task.description[:25] + "..."
    status = "Done" if task.completed else "Pending"
    return f"{task.id:<4} {description:<28} {task.priority.label:<8} {task.duration:<8} {status}"


def format_task_details(task: Task) -> str:
    return "\n".join(
        [
            f"Task ID:     {task.id}",
            f"Description: {task.description}",
            f"Priority:    {task.priority.label}",
            f"Duration:    {task.duration} seconds",
            f"Created:     {task.created_at.strftime(DATE_FORMAT)}",
            f"Status:      {task.status_label}",
        ]
    )


def format_task_line(task: Task) -> str:
    return f"{task.id}: {task.description} ({task.priority.label}, {task.duration} sec)"


def format_report(report: RunReport) -> str:
    lines = [
        "=== Execution Summary ===",
        f"Tasks completed: {report.completed}",
        f"Total wall clock time: {int(report.elapsed)} seconds",
    ]
    if report.cancelled:
        lines.append(
            f"Cancelled: {len(report.cancelled_ids)} interrupted, {len(report.not_started_ids)} not started"
        )
    if report.failed_ids:
        lines.append(f"Failed: {', '.join(str(i) for i in report.failed_ids)}")
    return "\n".join(lines)


class ConsoleProgress(ExecutionListener):
    """Prints per-unit countdown progress; safe to call from worker threads."""

    def __init__(self, stream=None) -> None:
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()
        self._total = 0
        self._started = 0

    def _write(self, text: str) -> None:
        with self._lock:
            self._stream.write(text)
            self._stream.flush()

    def on_run_start(self, tasks: Sequence[Task], concurrency: int) -> None:
        self._total = len(tasks)
        self._started = 0

    def on_unit_start(self, handle: ExecutionHandle) -> None:
        task = handle.task
        with self._lock:
            self._started += 1
            started = self._started
        self._write(
            f"\n[{started}/{self._total}] [Slot {handle.slot}] Executing: {task.description} "
            f"(ID: {task.id}) | Priority: {task.priority.label} | Duration: {task.duration} sec\n"
        )

    def on_tick(self, handle: ExecutionHandle, remaining: int) -> None:
        self._write(f"\r[Slot {handle.slot}] Time remaining: {remaining} seconds...   ")

    def on_unit_finish(self, handle: ExecutionHandle, outcome: UnitOutcome) -> None:
        if outcome == UnitOutcome.COMPLETED:
            self._write(f"\r[Slot {handle.slot}] Task {handle.task_id} completed!                  \n")
        elif outcome == UnitOutcome.CANCELLED:
            self._write(f"\n[Slot {handle.slot}] Task {handle.task_id} execution cancelled.\n")
        else:
            self._write(f"\n[Slot {handle.slot}] Task {handle.task_id} failed.\n")
