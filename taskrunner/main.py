from __future__ import annotations

import logging
import sys

from taskrunner.cli.console import Console, ConsoleProgress
from taskrunner.cli.menu import Menu
from taskrunner.config import SETTINGS
from taskrunner.infra.db import init_db
from taskrunner.infra.logging import setup_logging
from taskrunner.infra.repository import TaskSnapshotRepository
from taskrunner.services.executor import ExecutionService
from taskrunner.services.task_service import TaskService
from taskrunner.services.task_store import SnapshotGateway, TaskStore

logger = logging.getLogger(__name__)


def load_store(repo: SnapshotGateway, console: Console) -> TaskStore:
    snapshot = repo.load()
    if snapshot is None:
        console.say("No saved tasks found. Starting with empty task list.")
        return TaskStore(SETTINGS.max_tasks)
    tasks, next_id = snapshot
    if len(tasks) > SETTINGS.max_tasks:
        console.say(
            f"Warning: saved data contains more tasks than maximum allowed. "
            f"Loading only {SETTINGS.max_tasks} tasks."
        )
    store = TaskStore(SETTINGS.max_tasks, tasks, next_id)
    console.say(f"Loaded {len(store)} tasks.")
    return store


def build_menu(console: Console, repo: SnapshotGateway, store: TaskStore) -> Menu:
    tasks = TaskService(
        store,
        repo,
        max_description=SETTINGS.max_description,
        max_duration=SETTINGS.max_duration,
    )
    execution = ExecutionService(
        store,
        repo,
        max_concurrency=SETTINGS.max_concurrency,
        tick_seconds=SETTINGS.tick_seconds,
        listener=ConsoleProgress(),
    )
    return Menu(console, tasks, execution)


def main() -> None:
    setup_logging()
    console = Console()
    console.say("Task Manager System")
    console.say("===================")
    try:
        init_db()
        repo = TaskSnapshotRepository()
        store = load_store(repo, console)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Startup failed")
        console.say(f"DB error: {exc}")
        sys.exit(1)

    build_menu(console, repo, store).run()
    logger.info("Exited normally")


if __name__ == "__main__":
    main()
