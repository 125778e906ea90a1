"""SQLite database client wrapper with CRUD operations and a unit of work."""

import asyncio
import json
import logging
import re
import threading
import uuid
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from evv.core import clock
from evv.core.config import settings
from evv.core.errors import NotFoundError, StorageError


logger = logging.getLogger(__name__)


class DatabaseError(StorageError):
    """A database operation failed."""


class RecordNotFoundError(NotFoundError):
    """No row matched the requested identifier."""


class DuplicateRecordError(DatabaseError):
    """A write violated a uniqueness constraint."""


SqlParam = str | int | float | None


@dataclass
class _ConnectionEntry:
    conn: aiosqlite.Connection
    # Reads outside a unit of work go here so they only ever see committed rows (WAL)
    read_conn: aiosqlite.Connection
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(frozen=True)
class _Transaction:
    conn: aiosqlite.Connection
    owner: asyncio.Task[Any] | None


_db_connections: dict[tuple[int, int, str], _ConnectionEntry] = {}
_creation_locks: dict[int, asyncio.Lock] = {}

_active_transaction: ContextVar[_Transaction | None] = ContextVar("evv_active_transaction", default=None)


def _current_transaction() -> aiosqlite.Connection | None:
    """Connection of the unit of work opened by the running task, if any.

    Tasks spawned inside a unit of work inherit the context but not the transaction.
    """
    active = _active_transaction.get()
    if active is None or active.owner is not asyncio.current_task():
        return None
    return active.conn


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def new_record_id() -> str:
    """Generate an opaque unique record ID."""
    return uuid.uuid4().hex


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _serialize_value(value: Any) -> SqlParam:
    """Convert a Python value into something SQLite can bind."""
    if isinstance(value, datetime):
        return clock.to_db_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, SqlParam]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.fullmatch(r'(\w+)\s*(>=|<=|!=|=|>|<|~)\s*"((?:[^"\\]|\\.)*)"', comparison.strip())
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field_name, op, raw_value = match.group(1), match.group(2), match.group(3)
    value = json.loads(f'"{raw_value}"')

    sql_op = _get_sql_operator(op)
    if sql_op == "LIKE":
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"{field_name} LIKE ? ESCAPE '\\'", f"%{escaped}%"

    return f"{field_name} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[SqlParam]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_conditions = []
    or_params = []

    for part in _split_outside_quotes(inner, "||"):
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_outside_quotes(filter_query: str, separator: str = "&&") -> list[str]:
    """Split on separator while preserving parenthesized groups and quoted values."""
    parts = []
    current = ""
    paren_depth = 0
    in_quotes = False
    escaped = False

    for char in filter_query:
        if in_quotes:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
        elif char == '"':
            in_quotes = True
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if not in_quotes and paren_depth == 0 and current.endswith(separator):
            parts.append(current[: -len(separator)].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[SqlParam]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Syntax: ``field = "value" && (a ~ "x" || b ~ "x")``. ``~`` is a
    case-insensitive substring match. Values must be double-quoted and
    escaped with sanitize_param.
    """
    if not filter_query:
        return "", []

    conditions = []
    params: list[SqlParam] = []

    for part in _split_outside_quotes(filter_query):
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def parse_sort(sort: str) -> str:
    """Translate ``-created_at,+shift_time`` into an ORDER BY clause.

    The first key's direction is repeated on rowid so rows written within the
    same timestamp keep insertion order.
    """
    if not sort:
        return "rowid ASC"

    clauses = []
    for raw_key in sort.split(","):
        key = raw_key.strip()
        direction = "DESC" if key.startswith("-") else "ASC"
        column = key.lstrip("+-")
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", column):
            msg = f"Invalid sort key: {raw_key}"
            raise ValueError(msg)
        clauses.append(f"{column} {direction}")

    first_direction = clauses[0].rsplit(" ", 1)[1]
    clauses.append(f"rowid {first_direction}")
    return ", ".join(clauses)


def _rows_to_records(cursor: aiosqlite.Cursor, rows: Sequence[Sequence[Any]]) -> list[dict[str, Any]]:
    columns = [description[0] for description in cursor.description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


@contextmanager
def _translate_errors(action: str, **context: object) -> Iterator[None]:
    """Turn driver exceptions into DatabaseError, leaving typed errors untouched."""
    try:
        yield
    except (DatabaseError, RecordNotFoundError, ValueError):
        raise
    except aiosqlite.IntegrityError as e:
        logger.warning(f"{action}_constraint_violation", extra={**context, "error": str(e)})
        if "UNIQUE" in str(e):
            msg = f"Duplicate record during {action}: {e}"
            raise DuplicateRecordError(msg) from e
        msg = f"Constraint violated during {action}: {e}"
        raise DatabaseError(msg) from e
    except Exception as e:
        logger.error(f"{action}_failed", extra={**context, "error": str(e)})
        msg = f"Failed to {action.replace('_', ' ')}: {e}"
        raise DatabaseError(msg) from e


async def _get_entry(*, db_path: str | None = None) -> _ConnectionEntry:
    """Get or create the cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    creation_lock = _creation_locks.setdefault(loop_id, asyncio.Lock())
    async with creation_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        with _translate_errors("open_connection", db_path=str(path)):
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(path), timeout=settings.db_timeout_seconds)
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.execute("PRAGMA journal_mode = WAL")
            read_conn = await aiosqlite.connect(str(path), timeout=settings.db_timeout_seconds)
            await read_conn.execute("PRAGMA query_only = ON")

        entry = _ConnectionEntry(conn=conn, read_conn=read_conn)
        _db_connections[cache_key] = entry

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return entry


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Return the connection reads should use.

    That is the connection of the task's own unit of work when one is open,
    otherwise the cached read connection, which never sees uncommitted writes.
    """
    active = _current_transaction()
    if active is not None:
        return active
    entry = await _get_entry(db_path=db_path)
    return entry.read_conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connections for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    entry = _db_connections.pop(cache_key, None)
    if entry is None:
        return

    try:
        await entry.read_conn.close()
        await entry.conn.close()
        logger.info(
            "Closed SQLite connection",
            extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": str(path)},
        )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


@asynccontextmanager
async def transaction(*, db_path: str | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Run the enclosed writes as one unit of work.

    Commits when the block exits normally and rolls back on any exception,
    cancellation included. Nested blocks in the same task join the outer unit
    of work; other tasks wait for it to finish before writing.
    """
    active = _current_transaction()
    if active is not None:
        yield active
        return

    entry = await _get_entry(db_path=db_path)
    async with entry.write_lock:
        with _translate_errors("begin_transaction"):
            await entry.conn.execute("BEGIN IMMEDIATE")
        token = _active_transaction.set(_Transaction(conn=entry.conn, owner=asyncio.current_task()))
        try:
            yield entry.conn
            with _translate_errors("commit_transaction"):
                await entry.conn.commit()
        except BaseException:
            await entry.conn.rollback()
            logger.warning("Rolled back transaction")
            raise
        finally:
            _active_transaction.reset(token)


async def execute(query: str, params: Sequence[Any] = ()) -> int:
    """Run a single write statement and return the number of affected rows.

    Inside a unit of work the statement joins it; otherwise it commits immediately.
    """
    values = [_serialize_value(p) for p in params]
    active = _current_transaction()
    with _translate_errors("execute", query=query.split("(")[0].strip()):
        if active is not None:
            cursor = await active.execute(query, values)
            return cursor.rowcount

        entry = await _get_entry()
        async with entry.write_lock:
            cursor = await entry.conn.execute(query, values)
            await entry.conn.commit()
            return cursor.rowcount


async def fetch_all(query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
    """Run a read query and return every row as a dict."""
    values = [_serialize_value(p) for p in params]
    with _translate_errors("fetch_all"):
        conn = await get_connection()
        async with conn.execute(query, values) as cursor:
            rows = await cursor.fetchall()
            return _rows_to_records(cursor, rows)


async def fetch_one(query: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
    """Run a read query and return the first row as a dict, or None."""
    values = [_serialize_value(p) for p in params]
    with _translate_errors("fetch_one"):
        conn = await get_connection()
        async with conn.execute(query, values) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return _rows_to_records(cursor, [row])[0]


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its id and timestamps."""
    _validate_collection_name(collection)

    now = clock.utc_now()
    record = {"id": new_record_id(), "created_at": now, "updated_at": now, **data}

    columns_str = ", ".join(record)
    placeholders_str = ", ".join("?" for _ in record)
    query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608

    await execute(query, list(record.values()))
    logger.info("Created record", extra={"collection": collection, "record_id": record["id"]})
    return await get_record(collection=collection, record_id=record["id"])


async def get_record(*, collection: str, record_id: str, columns: str = "*") -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)

    query = f"SELECT {columns} FROM {collection} WHERE id = ?"  # noqa: S608
    record = await fetch_one(query, [record_id])

    if record is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return record


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)
    _validate_collection_name(collection)

    changes = {**data, "updated_at": clock.utc_now()}
    set_clause = ", ".join(f"{key} = ?" for key in changes)
    query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608

    affected = await execute(query, [*changes.values(), record_id])
    if affected == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)

    query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608
    affected = await execute(query, [record_id])

    if affected == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int | None = 50,
    filter_query: str = "",
    sort: str = "",
    columns: str = "*",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination.

    per_page=None returns every matching record.
    """
    _validate_collection_name(collection)

    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    order_sql = parse_sort(sort)
    query = f"SELECT {columns} FROM {collection} {where_sql} ORDER BY {order_sql}"  # noqa: S608
    if per_page is not None:
        query += " LIMIT ? OFFSET ?"
        params = [*params, per_page, (page - 1) * per_page]

    records = await fetch_all(query, params)

    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    _validate_collection_name(collection)

    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    query = f"SELECT COUNT(*) AS total FROM {collection} {where_sql}"  # noqa: S608

    row = await fetch_one(query, params)
    return int(row["total"]) if row else 0


async def count_by(*, collection: str, column: str, filter_query: str = "") -> dict[str, int]:
    """Count records grouped by one column."""
    _validate_collection_name(collection)
    _validate_collection_name(column)

    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    query = (
        f"SELECT {column} AS bucket, COUNT(*) AS total FROM {collection} {where_sql} GROUP BY {column}"  # noqa: S608
    )

    rows = await fetch_all(query, params)
    return {row["bucket"]: int(row["total"]) for row in rows}


async def get_first_record(
    *,
    collection: str,
    filter_query: str,
    sort: str = "",
    columns: str = "*",
) -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(
        collection=collection,
        page=1,
        per_page=1,
        filter_query=filter_query,
        sort=sort,
        columns=columns,
    )
    return records[0] if records else None


async def record_exists(*, collection: str, filter_query: str) -> bool:
    """Return True if at least one record matches the filter."""
    _validate_collection_name(collection)

    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    query = f"SELECT EXISTS(SELECT 1 FROM {collection} {where_sql}) AS found"  # noqa: S608

    row = await fetch_one(query, params)
    return bool(row and row["found"])
