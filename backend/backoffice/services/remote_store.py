# Overview: Row-level CRUD collaborator the registries persist through.

"""
Remote store adapter.

The registries only need four calls against a table: select rows (optionally
filtered), insert a row and get its id back, patch a row by id, delete a row
by id. Any failure of the underlying service (connection loss, constraint
violation, missing row) surfaces as RemoteStoreError so callers can apply
one uniform degrade policy.

Rows cross this boundary as plain dicts. Conversion into typed records is
done by backoffice.services.schemas, never here.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db


class RemoteStoreError(Exception):
    """Raised when a store call fails or cannot be confirmed."""
    pass


class TableStore:
    """Interface for one remote table."""

    def select(self, **filters: Any) -> list[dict]:
        raise NotImplementedError

    def insert(self, row: dict) -> str:
        raise NotImplementedError

    def update(self, row_id: str, patch: dict) -> None:
        raise NotImplementedError

    def delete(self, row_id: str) -> None:
        raise NotImplementedError


class SqlTableStore(TableStore):
    """
    TableStore over a Flask-SQLAlchemy model.

    Each call commits on its own; a failed call is rolled back so the session
    stays usable for the next operation.
    """

    def __init__(self, model, order_by=None):
        self.model = model
        mapper = model.__mapper__
        self._columns = {c.key: c for c in mapper.columns}
        self._primary_key = mapper.primary_key[0].key
        self._order_by = order_by if order_by is not None else self._default_order()

    def _default_order(self):
        cols = []
        if "created_at" in self._columns:
            cols.append(getattr(self.model, "created_at").asc())
        cols.append(getattr(self.model, self._primary_key).asc())
        return cols

    def _to_row(self, obj) -> dict:
        return {key: getattr(obj, key) for key in self._columns}

    def _writable(self, values: dict) -> dict:
        return {
            k: v for k, v in values.items()
            if k in self._columns and not (k == self._primary_key and v is None)
        }

    def _fail(self, message: str) -> RemoteStoreError:
        db.session.rollback()
        return RemoteStoreError(f"{self.model.__tablename__}: {message}")

    def select(self, **filters: Any) -> list[dict]:
        try:
            query = db.session.query(self.model)
            if filters:
                query = query.filter_by(**filters)
            return [self._to_row(obj) for obj in query.order_by(*self._order_by).all()]
        except SQLAlchemyError as exc:
            raise self._fail(f"select failed ({exc.__class__.__name__})") from exc

    def insert(self, row: dict) -> str:
        try:
            obj = self.model(**self._writable(row))
            db.session.add(obj)
            db.session.commit()
            return str(getattr(obj, self._primary_key))
        except SQLAlchemyError as exc:
            raise self._fail(f"insert failed ({exc.__class__.__name__})") from exc

    def update(self, row_id: str, patch: dict) -> None:
        try:
            obj = db.session.get(self.model, row_id)
            if obj is None:
                raise self._fail(f"row {row_id} not found")
            for key, value in self._writable(patch).items():
                if key == self._primary_key:
                    continue
                setattr(obj, key, value)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(f"update failed ({exc.__class__.__name__})") from exc

    def delete(self, row_id: str) -> None:
        try:
            obj = db.session.get(self.model, row_id)
            if obj is None:
                raise self._fail(f"row {row_id} not found")
            db.session.delete(obj)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(f"delete failed ({exc.__class__.__name__})") from exc
