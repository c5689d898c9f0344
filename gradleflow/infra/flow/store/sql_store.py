"""
SQLHistoryStore implementation using SQLModel for execution history persistence.

This module provides a persistent storage backend using SQLModel/SQLAlchemy
for storing the summaries of finished runs, newest first, bounded in size.
"""
from typing import List, Optional

from sqlalchemy import Engine, desc as sqlalchemy_desc, func
from sqlmodel import Session, SQLModel, col, create_engine, select

from gradleflow.infra.flow.history import (
    MAX_HISTORY_ENTRIES,
    MAX_LOGS_PER_ENTRY,
    ExecutionHistoryEntry,
    HistoryStore,
)
from gradleflow.infra.flow.store.sql_models import (
    ExecutionHistoryModel,
    HistoryTaskResultModel,
    copy_model_fields,
    history_entry_to_model,
    model_to_history_entry,
    model_to_task_result,
    task_result_to_model,
)


class SQLHistoryStore(HistoryStore):

    def __init__(
        self,
        connection_string: str = "sqlite:///gradleflow.db",
        echo: bool = False,
        max_entries: int = MAX_HISTORY_ENTRIES,
        max_logs_per_entry: int = MAX_LOGS_PER_ENTRY,
    ):
        self.connection_string = connection_string
        self.echo = echo
        self.max_entries = max_entries
        self.max_logs_per_entry = max_logs_per_entry
        self.engine: Optional[Engine] = None

    # ---------- Lifecycle ----------

    def open(self):
        self.engine = create_engine(
            self.connection_string,
            echo=self.echo,
            connect_args={"check_same_thread": False} if "sqlite" in self.connection_string else {}
        )
        SQLModel.metadata.create_all(self.engine)

    def close(self):
        """Close the database engine and release resources."""
        if self.engine:
            self.engine.dispose()
            self.engine = None

    # ---------- Entry CRUD ----------

    def add(self, entry: ExecutionHistoryEntry) -> None:
        """
        Store an entry as the newest one, then drop entries beyond ``max_entries``.

        Adding an entry whose ID already exists replaces it.
        """
        if not self.engine:
            raise RuntimeError("open() must be called before add()")

        with Session(self.engine) as session:
            latest = session.exec(select(func.max(ExecutionHistoryModel.sequence))).one()
            entry_model = history_entry_to_model(entry, (latest or 0) + 1, self.max_logs_per_entry)
            existing = session.get(ExecutionHistoryModel, entry.id)

            if existing:
                copy_model_fields(existing, entry_model, exclude_keys={'id'})
            else:
                session.add(entry_model)

            self._delete_task_results(session, entry.id)
            for position, result in enumerate(entry.task_results):
                session.add(task_result_to_model(result, entry.id, position))
            session.commit()

            self._trim(session)
            session.commit()

    def _delete_task_results(self, session: Session, entry_id: str) -> None:
        statement = select(HistoryTaskResultModel).where(HistoryTaskResultModel.entry_id == entry_id)
        for result in session.exec(statement).all():
            session.delete(result)

    def _trim(self, session: Session) -> None:
        statement = (
            select(ExecutionHistoryModel)
            .order_by(sqlalchemy_desc(col(ExecutionHistoryModel.sequence)))
            .offset(self.max_entries)
        )
        for stale in session.exec(statement).all():
            self._delete_task_results(session, stale.id)
            session.delete(stale)

    def _task_results(self, session: Session, entry_id: str):
        statement = (
            select(HistoryTaskResultModel)
            .where(HistoryTaskResultModel.entry_id == entry_id)
            .order_by(col(HistoryTaskResultModel.position))
        )
        return [model_to_task_result(model) for model in session.exec(statement).all()]

    def load(self, entry_id: str) -> ExecutionHistoryEntry:
        if not self.engine:
            raise RuntimeError("open() must be called before load()")

        with Session(self.engine) as session:
            entry_model = session.get(ExecutionHistoryModel, entry_id)
            if not entry_model:
                raise KeyError(f"History entry not found: {entry_id}")
            return model_to_history_entry(entry_model, self._task_results(session, entry_id))

    def exists(self, entry_id: str) -> bool:
        """
        Check if a history entry exists.

        Args:
            entry_id: The entry ID to check

        Returns:
            True if the entry exists
        """
        if not self.engine:
            raise RuntimeError("open() must be called before exists()")

        with Session(self.engine) as session:
            return session.get(ExecutionHistoryModel, entry_id) is not None

    def list_entries(self) -> List[ExecutionHistoryEntry]:
        """
        Get all history entries, newest first.
        """
        if not self.engine:
            raise RuntimeError("open() must be called before list_entries()")

        with Session(self.engine) as session:
            statement = select(ExecutionHistoryModel).order_by(
                sqlalchemy_desc(col(ExecutionHistoryModel.sequence))
            )
            return [
                model_to_history_entry(model, self._task_results(session, model.id))
                for model in session.exec(statement).all()
            ]

    def delete(self, entry_id: str) -> bool:
        """
        Delete one entry.

        Returns:
            True if an entry was deleted
        """
        if not self.engine:
            raise RuntimeError("open() must be called before delete()")

        with Session(self.engine) as session:
            entry_model = session.get(ExecutionHistoryModel, entry_id)
            if not entry_model:
                return False
            self._delete_task_results(session, entry_id)
            session.delete(entry_model)
            session.commit()
            return True

    def clear(self) -> None:
        if not self.engine:
            raise RuntimeError("open() must be called before clear()")

        with Session(self.engine) as session:
            for result in session.exec(select(HistoryTaskResultModel)).all():
                session.delete(result)
            for entry_model in session.exec(select(ExecutionHistoryModel)).all():
                session.delete(entry_model)
            session.commit()

    def update_label(self, entry_id: str, label: Optional[str]) -> ExecutionHistoryEntry:
        """
        Set or clear (empty string or None) the label of an entry.

        Raises:
            KeyError: If the entry does not exist
        """
        if not self.engine:
            raise RuntimeError("open() must be called before update_label()")

        with Session(self.engine) as session:
            entry_model = session.get(ExecutionHistoryModel, entry_id)
            if not entry_model:
                raise KeyError(f"History entry not found: {entry_id}")
            entry_model.label = label or None
            session.add(entry_model)
            session.commit()
            session.refresh(entry_model)
            return model_to_history_entry(entry_model, self._task_results(session, entry_id))
