from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from .db import Base


def utcnow() -> datetime:
    return datetime.utcnow()


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=False)
    position = Column(Integer, nullable=False, index=True)
    description = Column(String(256), nullable=False)
    priority = Column(Integer, nullable=False, default=3)
    duration = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed = Column(Boolean, nullable=False, default=False)


class StoreMetaModel(Base):
    __tablename__ = "store_meta"

    key = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
