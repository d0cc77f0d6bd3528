# Overview: Service-layer helper for concurrent writes; single-statement guarded updates.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db


def guarded_update(model, row_id, *, where=(), values: dict) -> bool:
    """
    Single-statement compare-and-set: UPDATE model SET values WHERE id AND where.

    Returns True when exactly one row changed. The check and the write happen
    in one statement, so two concurrent requests cannot both pass the guard.
    Runs inside the caller's transaction; nothing is committed here.
    """
    stmt = (
        update(model)
        .where(model.id == row_id, *where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1
