"""
Atomic create-if-absent and upsert helpers.

Uniqueness is enforced by the database. PostgreSQL and SQLite get a native
INSERT ... ON CONFLICT statement; other dialects fall back to a savepoint
insert that re-reads the row when the unique constraint fires.
"""

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from pickem import db
from pickem.utils.errors import Conflict

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _native_insert(model):
    insert = _DIALECT_INSERTS.get(db.engine.dialect.name)
    return insert(model) if insert else None


def _lookup(model, values, key_columns):
    return model.query.filter_by(**{col: values[col] for col in key_columns}).first()


def insert_or_ignore(model, values, key_columns):
    """
    Insert a row unless one already exists for ``key_columns``.

    Returns the persisted row (new or pre-existing). Safe under concurrent
    callers: exactly one row exists for the key afterwards.
    """
    stmt = _native_insert(model)
    if stmt is not None:
        stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=key_columns)
        db.session.execute(stmt)
        db.session.commit()
        return _lookup(model, values, key_columns)

    existing = _lookup(model, values, key_columns)
    if existing:
        return existing

    try:
        with db.session.begin_nested():
            db.session.add(model(**values))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.debug(f"Concurrent insert for {model.__tablename__}, re-reading row")

    row = _lookup(model, values, key_columns)
    if row is None:
        raise Conflict(f"Could not create {model.__tablename__} row", **{
            col: values[col] for col in key_columns
        })
    return row


def upsert(model, values, key_columns, update_columns):
    """
    Insert a row or overwrite ``update_columns`` of the existing row for
    ``key_columns`` in a single statement. Last write wins.
    """
    stmt = _native_insert(model)
    if stmt is not None:
        stmt = stmt.values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=key_columns,
            set_={col: stmt.excluded[col] for col in update_columns},
        )
        db.session.execute(stmt)
        db.session.commit()
        return _lookup(model, values, key_columns)

    for attempt in range(2):
        existing = _lookup(model, values, key_columns)
        if existing:
            for col in update_columns:
                setattr(existing, col, values[col])
            db.session.commit()
            return existing

        try:
            with db.session.begin_nested():
                db.session.add(model(**values))
            db.session.commit()
            return _lookup(model, values, key_columns)
        except IntegrityError:
            db.session.rollback()
            logger.debug(
                f"Upsert race on {model.__tablename__}, retrying ({attempt + 1}/2)"
            )

    raise Conflict(f"Could not upsert {model.__tablename__} row", **{
        col: values[col] for col in key_columns
    })
