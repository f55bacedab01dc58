"""
Generic CRUD handlers shared by the tour, review and user routes.

Each factory returns a handler bound to one table and its allow-lists. The
route function hands the handler a session plus request data and returns
the envelope it gets back.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Sequence
import json
import logging

from sqlalchemy import Text, delete, insert, select, type_coerce, update
from sqlalchemy.orm import Session

from natours.core.errors import AppError
from natours.db.api_features import APIFeatures
from natours.db.models import TABLES
from natours.db.repositories import ReviewRepository

logger = logging.getLogger(__name__)

ALLOWED_TABLES = ("tours", "reviews", "users")

# Called with (db, row) after a successful write
AfterHook = Callable[[Session, Dict[str, Any]], None]


def _get_table(name: str):
    if name not in ALLOWED_TABLES:
        raise AppError("Invalid table name", 400)
    return TABLES[name]


def _singular(table: str) -> str:
    return table[:-1]  # tours -> tour


def _not_found(table: str) -> AppError:
    return AppError(f"No {_singular(table)} found with that ID", 404)


def filter_fields(payload: Mapping[str, Any], allowed_fields: Sequence[str]) -> Dict[str, Any]:
    """Keep only allow-listed keys; anything else is dropped silently."""
    return {field: payload[field] for field in allowed_fields if field in payload}


def get_all(
    table: str,
    columns: Optional[Sequence[str]] = None,
    virtuals: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
):
    def handler(
        db: Session,
        query_string: Mapping[str, Any],
        where: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        _get_table(table)

        features = (
            APIFeatures(table, query_string, select_columns=columns, where=where)
            .filter()
            .sort()
            .limit_fields()
            .paginate()
        )
        rows = [dict(row) for row in db.execute(features.statement).mappings()]

        if not rows and features.page > 1:
            raise AppError("This page does not exist", 404)

        if virtuals is not None:
            rows = [virtuals(row) for row in rows]

        return {
            "status": "success",
            "results": len(rows),
            "data": {table: rows},
        }

    return handler


def get_one(
    table: str,
    populate: Optional[str] = None,
    columns: Optional[Sequence[str]] = None,
):
    def handler(db: Session, id: int) -> Dict[str, Any]:
        t = _get_table(table)

        projection = [t.c[name] for name in columns] if columns else [t]
        row = db.execute(select(*projection).where(t.c.id == id)).mappings().first()
        if row is None:
            raise _not_found(table)

        doc = dict(row)
        if populate == "reviews" and table == "tours":
            doc["reviews"] = ReviewRepository(db).list_with_authors(tour_id=id)

        return {"status": "success", "data": {_singular(table): doc}}

    return handler


def create_one(
    table: str,
    allowed_fields: Sequence[str],
    json_columns: Sequence[str] = (),
    after: Optional[AfterHook] = None,
):
    def handler(db: Session, payload: Mapping[str, Any]) -> Dict[str, Any]:
        t = _get_table(table)

        data = filter_fields(payload, allowed_fields)
        if not data:
            raise AppError("No valid fields provided", 400)

        values = {}
        for field, value in data.items():
            if field in json_columns:
                # bound as JSON text; the column type casts it on the way in
                values[field] = type_coerce(json.dumps(value), Text)
            else:
                values[field] = value

        row = db.execute(insert(t).values(**values).returning(*t.c)).mappings().one()
        db.commit()
        doc = dict(row)
        logger.info(f"Created {_singular(table)} {doc['id']}")

        if after is not None:
            after(db, doc)

        return {"status": "success", "data": {_singular(table): doc}}

    return handler


def update_one(
    table: str,
    allowed_fields: Sequence[str],
    columns: Optional[Sequence[str]] = None,
    after: Optional[AfterHook] = None,
):
    def handler(db: Session, id: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
        t = _get_table(table)

        data = filter_fields(payload, allowed_fields)
        if not data:
            raise AppError("No valid fields provided to update", 400)

        returning = [t.c[name] for name in columns] if columns else list(t.c)
        row = db.execute(
            update(t).where(t.c.id == id).values(**data).returning(*returning)
        ).mappings().first()

        if row is None:
            db.rollback()
            raise _not_found(table)

        db.commit()
        doc = dict(row)

        if after is not None:
            after(db, doc)

        return {"status": "success", "data": {_singular(table): doc}}

    return handler


def delete_one(table: str, after: Optional[AfterHook] = None):
    def handler(db: Session, id: int) -> None:
        t = _get_table(table)

        row = db.execute(delete(t).where(t.c.id == id).returning(*t.c)).mappings().first()
        if row is None:
            db.rollback()
            raise _not_found(table)

        db.commit()
        logger.info(f"Deleted {_singular(table)} {id}")

        if after is not None:
            after(db, dict(row))

    return handler
