"""
Row store: table scoped select/insert/update/delete against the backing database.

Two backends share one contract: SqlRowStore talks to any SQLAlchemy URL,
RestRowStore talks to the hosted provider's PostgREST endpoint. Both return
plain dict rows and raise RemoteStoreError on any failure.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

import requests
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from . import config
from .database import Base, SessionLocal, init_db
from .errors import RemoteStoreError

logger = logging.getLogger(__name__)

OPERATORS = ("eq", "neq", "lt", "lte", "gt", "gte", "in")


class Filter(NamedTuple):
    """A single column predicate, e.g. Filter("stock", "lt", 5)."""
    column: str
    op: str
    value: Any


Row = Dict[str, Any]


class RowStore:
    """Contract shared by the row store backends."""

    def select(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
    ) -> List[Row]:
        raise NotImplementedError

    def insert(self, table: str, rows: List[Row]) -> List[Row]:
        raise NotImplementedError

    def update(self, table: str, values: Row, filters: Iterable[Filter]) -> List[Row]:
        raise NotImplementedError

    def delete(self, table: str, filters: Iterable[Filter]) -> List[Row]:
        raise NotImplementedError


# --- SQLAlchemy backend ---

class SqlRowStore(RowStore):
    def __init__(self, session_factory=SessionLocal, metadata=Base.metadata):
        self.session_factory = session_factory
        self.metadata = metadata

    def _table(self, name: str) -> sa.Table:
        table = self.metadata.tables.get(name)
        if table is None:
            raise RemoteStoreError(f"Unknown table '{name}'", table=name)
        return table

    def _where(self, table: sa.Table, stmt, filters: Iterable[Filter]):
        for column, op, value in filters:
            if column not in table.c:
                raise RemoteStoreError(f"Unknown column '{column}'", table=table.name)
            col = table.c[column]
            if op == "eq":
                clause = col == value
            elif op == "neq":
                clause = col != value
            elif op == "lt":
                clause = col < value
            elif op == "lte":
                clause = col <= value
            elif op == "gt":
                clause = col > value
            elif op == "gte":
                clause = col >= value
            elif op == "in":
                clause = col.in_(list(value))
            else:
                raise RemoteStoreError(f"Unsupported operator '{op}'", table=table.name)
            stmt = stmt.where(clause)
        return stmt

    def _run(self, table_name: str, statements, commit: bool) -> List[Row]:
        db = self.session_factory()
        try:
            rows: List[Row] = []
            for stmt in statements:
                rows.extend(dict(r) for r in db.execute(stmt).mappings().all())
            if commit:
                db.commit()
            return rows
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Row store call on '%s' failed: %s", table_name, e)
            raise RemoteStoreError(str(e), table=table_name) from e
        finally:
            # Ensure the session is always closed after the call is finished.
            db.close()

    def select(self, table, filters=(), order_by=None, descending=False, limit=None, columns=None):
        t = self._table(table)
        stmt = sa.select(*[t.c[c] for c in columns]) if columns else sa.select(t)
        stmt = self._where(t, stmt, filters)
        if order_by:
            stmt = stmt.order_by(t.c[order_by].desc() if descending else t.c[order_by].asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._run(table, [stmt], commit=False)

    def insert(self, table, rows):
        t = self._table(table)
        statements = [sa.insert(t).values(**row).returning(*t.c) for row in rows]
        return self._run(table, statements, commit=True)

    def update(self, table, values, filters):
        t = self._table(table)
        stmt = self._where(t, sa.update(t), filters).values(**values).returning(*t.c)
        return self._run(table, [stmt], commit=True)

    def delete(self, table, filters):
        t = self._table(table)
        stmt = self._where(t, sa.delete(t), filters).returning(*t.c)
        return self._run(table, [stmt], commit=True)


# --- Hosted REST backend (PostgREST dialect) ---

def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class RestRowStore(RowStore):
    def __init__(self, base_url: str, api_key: str, session=None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        })

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _params(self, filters: Iterable[Filter]) -> List[tuple]:
        params = []
        for column, op, value in filters:
            if op not in OPERATORS:
                raise RemoteStoreError(f"Unsupported operator '{op}'")
            if op == "in":
                joined = ",".join(_format_value(v) for v in value)
                params.append((column, f"in.({joined})"))
            elif value is None and op in ("eq", "neq"):
                params.append((column, "is.null" if op == "eq" else "not.is.null"))
            else:
                params.append((column, f"{op}.{_format_value(value)}"))
        return params

    def _request(self, method: str, table: str, params=None, body=None) -> List[Row]:
        data = json.dumps(body, default=_json_default) if body is not None else None
        try:
            response = self.session.request(
                method, self._url(table), params=params, data=data, timeout=self.timeout
            )
            response.raise_for_status()  # Raises an exception for 4xx/5xx status codes
            if not response.content:
                return []
            payload = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("%s %s failed: %s", method, table, e)
            raise RemoteStoreError(str(e), table=table) from e
        except ValueError as e:
            raise RemoteStoreError(f"Invalid response body: {e}", table=table) from e
        return payload if isinstance(payload, list) else [payload]

    def select(self, table, filters=(), order_by=None, descending=False, limit=None, columns=None):
        params = [("select", ",".join(columns) if columns else "*")]
        params.extend(self._params(filters))
        if order_by:
            params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        return self._request("GET", table, params=params)

    def insert(self, table, rows):
        if not rows:
            return []
        return self._request("POST", table, body=rows)

    def update(self, table, values, filters):
        return self._request("PATCH", table, params=self._params(filters), body=values)

    def delete(self, table, filters):
        return self._request("DELETE", table, params=self._params(filters))


def create_store() -> RowStore:
    """Build the row store selected by STORE_BACKEND."""
    if config.STORE_BACKEND == "rest":
        logger.info("Using hosted REST row store at %s", config.SUPABASE_URL)
        return RestRowStore(config.SUPABASE_URL, config.SUPABASE_KEY, timeout=config.REST_TIMEOUT_SECONDS)
    logger.info("Using SQL row store")
    init_db()
    return SqlRowStore()
