# Overview: Transaction boundary and locking helpers shared by every write path.

from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError, StorageError

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it there.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    On SQLite, take the database write lock before the first read.

    pysqlite defers BEGIN until the first DML, so a check-then-act sequence
    would read outside any lock. BEGIN IMMEDIATE serializes writers: a
    concurrent sale blocks here until the other commits, then re-reads.
    Other dialects rely on lock_for_update().
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func: Callable[[], T]) -> T:
    """
    Run one unit of work and commit it, or roll ALL of it back.

    - IntegrityError / StaleDataError -> ConflictError (lost a race or hit a
      unique constraint; the caller may re-submit)
    - other driver errors -> StorageError
    - domain errors propagate unchanged

    Nothing is retried here.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Conflicting write rejected by the database; retry the request") from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified concurrently; retry the request") from exc
    except DBAPIError as exc:
        db.session.rollback()
        raise StorageError("Storage unavailable") from exc
    except BaseException:
        db.session.rollback()
        raise
