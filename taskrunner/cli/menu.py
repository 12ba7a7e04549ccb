from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from taskrunner.domain.entities import Task
from taskrunner.domain.enums import Priority, SortKey
from taskrunner.domain.errors import TaskRunnerError
from taskrunner.domain.filters import TaskFilters
from taskrunner.services.executor import ExecutionService, RunReport
from taskrunner.services.task_service import TaskService

from .console import Console, format_report, format_task_details, format_task_line, format_task_row

logger = logging.getLogger(__name__)

PRIORITY_OPTIONS = ("High", "Medium", "Low")

MENU_TEXT = """
==== TASK MANAGER SYSTEM ====
1. Add New Task
2. View All Tasks
3. Search Tasks
4. Delete Task
5. Modify Task
6. Sort Tasks
7. Execute Tasks
8. Exit"""

EXIT_CHOICE = 8


class Menu:
    def __init__(self, console: Console, tasks: TaskService, execution: ExecutionService) -> None:
        self._console = console
        self._tasks = tasks
        self._execution = execution
        self._actions: dict[int, Callable[[], None]] = {
            1: self.add_task,
            2: self.view_tasks,
            3: self.search_tasks,
            4: self.delete_task,
            5: self.modify_task,
            6: self.sort_tasks,
            7: self.execute_tasks,
        }

    def run(self) -> None:
        while True:
            self._console.say(MENU_TEXT)
            try:
                choice = self._console.ask_int(f"Enter your choice (1-{EXIT_CHOICE}): ")
            except (EOFError, KeyboardInterrupt):
                choice = EXIT_CHOICE
            if choice == EXIT_CHOICE:
                self._console.say("\nExiting Task Manager. Goodbye!")
                return
            action = self._actions.get(choice)
            if action is None:
                self._console.say("\nInvalid choice. Please try again.")
                continue
            try:
                self.dispatch(action)
            except KeyboardInterrupt:
                self._console.say("\nCancelled.")
            except EOFError:
                self._console.say("\nExiting Task Manager. Goodbye!")
                return

    def dispatch(self, action: Callable[[], None]) -> None:
        try:
            action()
        except TaskRunnerError as exc:
            logger.info("%s: %s", type(exc).__name__, exc)
            self._console.say(str(exc))

    # ---- CRUD ----

    def add_task(self) -> None:
        store = self._tasks.store
        if store.is_full:
            self._console.say("Task limit reached.")
            return
        self._console.say("\n=== Adding New Task ===")
        self._console.say(f"Task ID: {store.next_id} (auto-assigned)")
        description = self._console.ask("Enter description: ")
        priority = self._ask_priority("Select priority:")
        duration = self._ask_duration("Enter duration (in seconds, 1-{max}): ")

        duplicate = self._tasks.find_duplicate(description)
        if duplicate is not None:
            self._console.say("\nSimilar task already exists!")
            self._console.say(format_task_details(duplicate))
            if not self._console.confirm("Do you still want to add this task?"):
                return

        self._tasks.create_task(description, priority, duration)
        self._console.say("\nTask added successfully!")

    def view_tasks(self) -> None:
        tasks = self._tasks.list_tasks()
        if not tasks:
            self._console.say("\nNo tasks available.")
            return
        self._console.say(f"\n=== Task List ({len(tasks)} tasks) ===")
        self._console.say(f"{'ID':<4} {'Description':<28} {'Priority':<8} {'Duration':<8} Status")
        for task in tasks:
            self._console.say(format_task_row(task))

        task_id = self._console.ask_int("\nEnter task ID for details or 0 to return: ", minimum=0)
        if task_id == 0:
            return
        task = self._tasks.get_task(task_id)
        self._console.say(format_task_details(task) if task else "Task not found.")

    def search_tasks(self) -> None:
        if not self._tasks.list_tasks():
            self._console.say("\nNo tasks available to search.")
            return
        self._console.say("\n=== Search Tasks ===")
        choice = self._console.ask_choice("Choice: ", ("Search by keyword", "Search by priority", "Return to main menu"))
        if choice == 3:
            return
        if choice == 1:
            keyword = self._console.ask("Enter keyword: ").strip()
            filters = TaskFilters(search=keyword)
            empty = f"No tasks found matching '{keyword}'"
        else:
            priority = self._ask_priority("Select priority to search for:")
            filters = TaskFilters(priority=priority)
            empty = f"No tasks found with {priority.label} priority"

        found = self._tasks.search(filters)
        self._console.say("\n=== Search Results ===")
        for task in found:
            self._console.say(format_task_details(task))
            self._console.say()
        self._console.say(f"{len(found)} task(s) found." if found else empty)

    def delete_task(self) -> None:
        task = self._pick_task("Delete Task", "delete")
        if task is None:
            return
        self._console.say(f"Deleting task: {task.description}")
        if not self._console.confirm("Are you sure?"):
            self._console.say("Deletion cancelled.")
            return
        self._tasks.delete_task(task.id)
        self._console.say("Task deleted successfully.")

    def modify_task(self) -> None:
        task = self._pick_task("Modify Task", "modify")
        if task is None:
            return
        while True:
            self._console.say(f"\n=== Modifying Task ID: {task.id} ===")
            choice = self._console.ask_choice(
                "\nSelect what to modify (1-5): ",
                (
                    f"Description: {task.description}",
                    f"Priority: {task.priority.label}",
                    f"Duration: {task.duration} seconds",
                    f"Status: {task.status_label}",
                    "Save and return",
                ),
            )
            if choice == 1:
                self._tasks.update_task(task.id, description=self._console.ask("New description: "))
            elif choice == 2:
                self._tasks.update_task(task.id, priority=self._ask_priority("Select new priority:"))
            elif choice == 3:
                self._tasks.update_task(task.id, duration=self._ask_duration("New duration (1-{max} seconds): "))
            elif choice == 4:
                self._tasks.toggle_completed(task.id)
                self._console.say(f"Status changed to: {task.status_label}")
            else:
                self._console.say("Changes saved.")
                return

    def sort_tasks(self) -> None:
        if len(self._tasks.list_tasks()) <= 1:
            self._console.say("\nNothing to sort.")
            return
        self._console.say("\n=== Sort Tasks ===")
        choice = self._console.ask_choice(
            "Choice: ",
            (
                "Sort by priority (highest first)",
                "Sort by duration (shortest first)",
                "Sort by creation time (newest first)",
            ),
        )
        key = (SortKey.PRIORITY, SortKey.DURATION, SortKey.CREATED)[choice - 1]
        self._tasks.sort_tasks(key)
        self._console.say("Tasks sorted successfully.")
        self.view_tasks()

    # ---- execution ----

    def execute_tasks(self) -> None:
        self._console.say("\n=== Execute Tasks ===")
        choice = self._console.ask_choice(
            "Choice: ",
            (
                "Execute all tasks in sequence",
                "Execute multiple tasks simultaneously",
                "Execute a specific task",
                "Return to main menu",
            ),
        )
        if choice == 1:
            self.execute_sequence()
        elif choice == 2:
            self.execute_multiple()
        elif choice == 3:
            self.execute_specific()

    def execute_sequence(self) -> None:
        def gate(tasks: Sequence[Task]) -> bool:
            self._console.say(f"\n=== Executing {len(tasks)} Pending Tasks in Sequence ===")
            self._console.say("Tasks will be executed in priority order (highest first).")
            total = sum(task.duration for task in tasks)
            self._console.say(f"Total estimated time: {total} seconds\n")
            return self._console.wait_for_enter()

        self._show_report(self._execution.run_sequential(confirm=gate))

    def execute_multiple(self) -> None:
        if not self._show_pending():
            return
        raw = self._console.ask(
            "\nSelect tasks to execute (enter IDs separated by commas, or 'all' for all tasks): "
        )

        def gate(tasks: Sequence[Task]) -> bool:
            concurrency = self._execution.concurrency_for(len(tasks))
            self._console.say(
                f"\nExecuting {len(tasks)} tasks with up to {concurrency} running simultaneously."
            )
            return self._console.wait_for_enter()

        self._show_report(self._execution.run_selected(raw, confirm=gate))

    def execute_specific(self) -> None:
        if not self._show_pending():
            return
        task_id = self._console.ask_int("\nEnter task ID to execute (or 0 to cancel): ", minimum=0)
        if task_id == 0:
            return

        def gate(tasks: Sequence[Task]) -> bool:
            task = tasks[0]
            self._console.say(
                f"\nExecuting: {task.description} (ID: {task.id}) | Priority: {task.priority.label} "
                f"| Duration: {task.duration} sec"
            )
            return self._console.wait_for_enter("Press Enter to start execution...")

        self._show_report(self._execution.run_single(task_id, confirm=gate))

    # ---- helpers ----

    def _show_report(self, report: RunReport | None) -> None:
        if report is None:
            self._console.say("Execution cancelled.")
            return
        self._console.say()
        self._console.say(format_report(report))

    def _show_pending(self) -> bool:
        pending = self._execution.pending()
        self._console.say("\n=== Pending Tasks ===")
        if not pending:
            self._console.say("No pending tasks to execute.")
            return False
        for task in pending:
            self._console.say(format_task_line(task))
        return True

    def _pick_task(self, title: str, verb: str) -> Task | None:
        tasks = self._tasks.list_tasks()
        if not tasks:
            self._console.say(f"\nNo tasks available to {verb}.")
            return None
        self._console.say(f"\n=== {title} ===")
        self._console.say("Current tasks:")
        for task in tasks:
            self._console.say(f"{task.id}: {task.description} ({task.priority.label})")
        task_id = self._console.ask_int(f"\nEnter task ID to {verb} (or 0 to cancel): ", minimum=0)
        if task_id == 0:
            return None
        task = self._tasks.get_task(task_id)
        if task is None:
            self._console.say(f"Task with ID {task_id} not found.")
        return task

    def _ask_priority(self, title: str) -> Priority:
        self._console.say(title)
        return Priority.from_choice(self._console.ask_choice("Choice: ", PRIORITY_OPTIONS))

    def _ask_duration(self, prompt: str) -> int:
        limit = self._tasks.max_duration
        return self._console.ask_int(
            prompt.format(max=limit),
            minimum=1,
            maximum=limit,
            error=f"Invalid duration. Please enter a value between 1 and {limit} seconds.",
        )
