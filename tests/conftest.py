from __future__ import annotations

import pytest

from taskrunner.services.task_store import TaskStore

from .fakes import FakeRepo


@pytest.fixture()
def repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture()
def store() -> TaskStore:
    return TaskStore(capacity=100)
