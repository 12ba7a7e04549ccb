from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from taskrunner.domain.entities import Task
from taskrunner.domain.enums import Priority
from taskrunner.domain.errors import PersistenceError

from .db import SessionLocal
from .models import StoreMetaModel, TaskModel

logger = logging.getLogger(__name__)

NEXT_ID_KEY = "next_task_id"


def _to_entity(model: TaskModel) -> Task:
    return Task(
        id=model.id,
        description=model.description,
        priority=Priority(model.priority),
        duration=model.duration,
        created_at=model.created_at,
        completed=bool(model.completed),
    )


def _to_model(task: Task, position: int) -> TaskModel:
    return TaskModel(
        id=task.id,
        position=position,
        description=task.description,
        priority=int(task.priority),
        duration=task.duration,
        created_at=task.created_at,
        completed=task.completed,
    )


class TaskSnapshotRepository:
    """Persists the whole task list as one snapshot.

    ``save`` replaces every row inside a single transaction, so a failed
    write leaves the previous snapshot untouched.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def save(self, tasks: list[Task], next_id: int) -> None:
        try:
            with self._session_factory() as session, session.begin():
                session.execute(delete(TaskModel))
                session.add_all(_to_model(task, position) for position, task in enumerate(tasks))
                meta = session.get(StoreMetaModel, NEXT_ID_KEY)
                if meta is None:
                    session.add(StoreMetaModel(key=NEXT_ID_KEY, value=int(next_id)))
                else:
                    meta.value = int(next_id)
        except SQLAlchemyError as exc:
            logger.exception("Snapshot save failed")
            raise PersistenceError(f"Could not save tasks: {exc}") from exc
        logger.info("Snapshot saved tasks=%s next_id=%s", len(tasks), next_id)

    def load(self) -> Optional[tuple[list[Task], int]]:
        try:
            with self._session_factory() as session:
                meta = session.get(StoreMetaModel, NEXT_ID_KEY)
                if meta is None:
                    return None
                stmt = select(TaskModel).order_by(TaskModel.position.asc())
                tasks = [_to_entity(model) for model in session.scalars(stmt)]
                next_id = int(meta.value)
        except SQLAlchemyError as exc:
            logger.exception("Snapshot load failed")
            raise PersistenceError(f"Could not load tasks: {exc}") from exc
        logger.info("Snapshot loaded tasks=%s next_id=%s", len(tasks), next_id)
        return tasks, next_id
