"""
Record store backed by SQLAlchemy.

Every call on a plain ``RecordStore`` runs in its own short-lived session and
commits before returning, so each write is immediately visible to other
readers.  ``transaction()`` yields a store bound to a single session: its
writes are flushed but only committed when the ``with`` block exits cleanly,
and rolled back otherwise.

Returned instances are detached with their column attributes loaded
(``expire_on_commit=False``); relationships are only available when named in
``include``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, TypeVar, Union

from sqlalchemy import create_engine, select, update as sa_update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import NotFound
from .models import ActivityLog, AutomationRun, Base, Invoice, PurchaseOrder
from .utils import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)

Where = Union[Dict[str, Any], Sequence[Any], None]
OrderBy = Union[str, Sequence[str], None]

# Bulk reset deletes in dependency order.
_RESET_ORDER = (AutomationRun, ActivityLog, Invoice, PurchaseOrder)


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url)


def create_store(database_url: str) -> "RecordStore":
    engine = create_db_engine(database_url)
    Base.metadata.create_all(engine)
    return RecordStore(sessionmaker(bind=engine, expire_on_commit=False))


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _plain(value) for key, value in data.items()}


class RecordStore:
    """Create/read/update access to the four entity tables."""

    def __init__(self, session_factory: sessionmaker, session: Optional[Session] = None) -> None:
        self._session_factory = session_factory
        self._session = session

    @property
    def in_transaction(self) -> bool:
        return self._session is not None

    @contextmanager
    def _scope(self) -> Iterator[Session]:
        if self._session is not None:
            yield self._session
            self._session.flush()
            return
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """Run several operations in one transaction.

        Nested calls reuse the outer transaction.
        """
        if self._session is not None:
            yield self
            return
        session = self._session_factory()
        try:
            yield RecordStore(self._session_factory, session=session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- writes ---------------------------------------------------------

    def create(self, model: Type[T], **data: Any) -> T:
        instance = model(**_clean(data))
        with self._scope() as session:
            session.add(instance)
            session.flush()
        return instance

    def update(self, model: Type[T], id: str, **patch: Any) -> T:
        with self._scope() as session:
            instance = session.get(model, id)
            if instance is None:
                raise NotFound(f"{model.__name__} {id} not found")
            for key, value in _clean(patch).items():
                setattr(instance, key, value)
            session.flush()
        return instance

    def update_where(self, model: Type[T], id: str, expected: Dict[str, Any], **patch: Any) -> Optional[T]:
        """Apply ``patch`` only if the row still matches ``expected``.

        Returns the updated instance, or ``None`` when no row matched (the row
        is missing or another writer changed it first).
        """
        values = _clean(patch)
        if "updated_at" in model.__table__.c and "updated_at" not in values:
            values["updated_at"] = utcnow()
        stmt = sa_update(model).where(model.id == id)
        for key, value in _clean(expected).items():
            stmt = stmt.where(getattr(model, key) == value)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        with self._scope() as session:
            result = session.execute(stmt)
            if result.rowcount != 1:
                return None
            instance = session.get(model, id, populate_existing=True)
        return instance

    def reset(self) -> None:
        """Delete every record.  Used by seeding only."""
        with self._scope() as session:
            for model in _RESET_ORDER:
                session.query(model).delete()
        logger.info("Record store reset")

    # --- reads ----------------------------------------------------------

    def find_by_id(self, model: Type[T], id: str, include: Sequence[str] = ()) -> Optional[T]:
        options = [selectinload(getattr(model, name)) for name in include]
        with self._scope() as session:
            return session.get(model, id, options=options)

    def find_many(
        self,
        model: Type[T],
        where: Where = None,
        order_by: OrderBy = None,
        take: Optional[int] = None,
        include: Sequence[str] = (),
    ) -> List[T]:
        """Query ``model``.

        ``where`` is either a mapping of column name to value (equality) or a
        sequence of SQLAlchemy criteria.  ``order_by`` names columns; a
        leading ``-`` sorts descending.
        """
        stmt = select(model)
        if isinstance(where, dict):
            for key, value in where.items():
                stmt = stmt.where(getattr(model, key) == _plain(value))
        elif where:
            stmt = stmt.where(*where)
        if order_by:
            for name in [order_by] if isinstance(order_by, str) else order_by:
                column = getattr(model, name.lstrip("-"))
                stmt = stmt.order_by(column.desc() if name.startswith("-") else column.asc())
        if take is not None:
            stmt = stmt.limit(take)
        for name in include:
            stmt = stmt.options(selectinload(getattr(model, name)))
        with self._scope() as session:
            return list(session.scalars(stmt).all())
