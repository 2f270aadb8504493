from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gradchat.config.config import DB_TIMEOUT_SECONDS
from gradchat.core.exceptions import PersistenceError
from gradchat.db.session import SessionLocal

T = TypeVar("T")


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def run_db(fn: Callable[..., T], *args: Any, timeout: Optional[float] = DB_TIMEOUT_SECONDS) -> T:
    """Run a blocking DB call in a worker thread with a timeout.

    SQLAlchemy errors and timeouts surface as PersistenceError; errors that are
    already PersistenceError pass through untouched.

    A timeout only stops the wait. The worker thread is not interrupted and may
    still finish, commit included, after the caller has seen the error; a
    message can therefore be stored without being marked persisted locally.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise PersistenceError(f"{getattr(fn, '__name__', 'db call')} timed out after {timeout}s") from exc
    except SQLAlchemyError as exc:
        raise PersistenceError(str(exc)) from exc
