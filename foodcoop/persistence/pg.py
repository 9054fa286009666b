from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from foodcoop.core.config import get_settings
from foodcoop.core.errors import ConcurrencyConflictError
from foodcoop.persistence.models import Base

logger = logging.getLogger(__name__)

_AFTER_COMMIT_KEY = "foodcoop.after_commit"


def create_engine_from_url(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)


settings = get_settings()
engine = create_engine_from_url(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def run_after_commit(session: Session, callback: Callable[[], None]) -> None:
    """Queue ``callback`` to run once the session's current transaction commits.

    Callbacks are dropped when the outermost transaction rolls back.
    """
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


@event.listens_for(Session, "after_commit")
def _run_after_commit_callbacks(session: Session) -> None:
    callbacks = session.info.pop(_AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        try:
            callback()
        except Exception:
            logger.exception("post-commit callback %r failed", callback)


@event.listens_for(Session, "after_soft_rollback")
def _discard_after_commit_callbacks(session: Session, previous_transaction) -> None:
    # Savepoint rollbacks keep the outer transaction and its callbacks alive.
    if previous_transaction.parent is not None:
        return
    dropped = session.info.pop(_AFTER_COMMIT_KEY, [])
    if dropped:
        logger.debug("discarded %d post-commit callbacks after rollback", len(dropped))


def flush_or_conflict(session: Session, order_id: int | None = None) -> None:
    try:
        session.flush()
    except StaleDataError as exc:
        raise ConcurrencyConflictError(order_id) from exc


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise ConcurrencyConflictError(None) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session
