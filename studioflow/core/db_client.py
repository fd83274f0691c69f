"""SQLite document store client with filter queries and atomic updates.

Every collection is a table of JSON documents keyed by ``id``. Filters use a
PocketBase-style expression language::

    organization_id = "org1" && (assigned_designer = "u1" || design_lead = "u1")
    assigned_designer = null && task_name ~ "banner" && tags ?= "social"

Atomic updates take Mongo-style operators through :class:`AtomicUpdate` and are
applied inside an immediate transaction, so concurrent writers never overwrite
each other's array appends or counter increments.
"""

import asyncio
import copy
import json
import logging
import re
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from studioflow.core.config import settings


logger = logging.getLogger(__name__)

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_TOKEN_PATTERN = re.compile(
    r"""
    \s*(?:
        (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<and>&&)
      | (?P<or>\|\|)
      | (?P<field>[A-Za-z_][A-Za-z0-9_.]*)\s*
        (?P<op>\?=|!=|!~|>=|<=|=|>|<|~)\s*
        (?P<value>"(?:[^"\\]|\\.)*"|'[^']*'|-?\d+(?:\.\d+)?|true|false|null)
    )
    """,
    re.VERBOSE,
)

FilterParam = str | int | float | None


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _json_field(field_name: str) -> str:
    """Return the SQL expression extracting a (validated) document field."""
    if not _FIELD_PATTERN.match(field_name):
        msg = f"Invalid field name: {field_name}"
        raise ValueError(msg)
    return f"json_extract(data, '$.{field_name}')"


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding inside a double-quoted filter literal."""
    return json.dumps(str(value))[1:-1]


def format_timestamp(moment: datetime) -> str:
    """Render an aware datetime as fixed-width UTC ISO-8601 with a Z suffix.

    Fixed width keeps stored timestamps comparable as strings in filters.
    """
    return moment.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with a Z suffix."""
    return format_timestamp(datetime.now(UTC))


def _json_default(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, datetime | date):
        return value.isoformat()
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _dumps(document: dict[str, Any]) -> str:
    return json.dumps(document, default=_json_default)


def _normalize(document: dict[str, Any]) -> dict[str, Any]:
    """Round-trip through JSON so callers always see stored representations."""
    return json.loads(_dumps(document))


# Filter parsing


def _tokenize(filter_query: str) -> list[tuple[str, re.Match[str]]]:
    tokens: list[tuple[str, re.Match[str]]] = []
    position = 0
    while position < len(filter_query):
        if not filter_query[position:].strip():
            break
        match = _TOKEN_PATTERN.match(filter_query, position)
        if not match or match.end() == position:
            msg = f"Invalid filter syntax near: {filter_query[position:]!r}"
            raise ValueError(msg)
        kind = next(name for name in ("lparen", "rparen", "and", "or", "field") if match.group(name))
        tokens.append((kind, match))
        position = match.end()
    return tokens


def _parse_literal(raw: str) -> FilterParam:
    """Parse a filter literal into the parameter bound to SQLite."""
    if raw.startswith('"'):
        return json.loads(raw)
    if raw.startswith("'"):
        return raw[1:-1]
    if raw == "null":
        return None
    if raw == "true":
        return 1
    if raw == "false":
        return 0
    if "." in raw:
        return float(raw)
    return int(raw)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_single_comparison(match: re.Match[str]) -> tuple[str, list[FilterParam]]:
    """Translate one ``field op value`` comparison into SQL and parameters."""
    field_name = match.group("field")
    op = match.group("op")
    value = _parse_literal(match.group("value"))
    column = _json_field(field_name)

    if op == "?=":
        path = f"$.{field_name}"
        return f"EXISTS (SELECT 1 FROM json_each(data, '{path}') WHERE json_each.value = ?)", [value]

    if value is None:
        if op == "=":
            return f"{column} IS NULL", []
        if op == "!=":
            return f"{column} IS NOT NULL", []
        msg = f"Operator {op} cannot compare against null"
        raise ValueError(msg)

    if op in {"~", "!~"}:
        negate = "NOT " if op == "!~" else ""
        return f"{column} {negate}LIKE ? ESCAPE '\\'", [f"%{_escape_like(str(value))}%"]

    if op == "!=":
        # Missing fields count as "not equal"
        return f"({column} IS NULL OR {column} != ?)", [value]

    return f"{column} {op} ?", [value]


class _FilterParser:
    """Recursive descent parser: ``||`` binds looser than ``&&``."""

    def __init__(self, tokens: list[tuple[str, re.Match[str]]]) -> None:
        self._tokens = tokens
        self._index = 0

    def _peek(self) -> str | None:
        return self._tokens[self._index][0] if self._index < len(self._tokens) else None

    def parse(self) -> tuple[str, list[FilterParam]]:
        sql, params = self._parse_or()
        if self._peek() is not None:
            msg = "Invalid filter syntax: unexpected trailing tokens"
            raise ValueError(msg)
        return sql, params

    def _parse_or(self) -> tuple[str, list[FilterParam]]:
        parts = [self._parse_and()]
        while self._peek() == "or":
            self._index += 1
            parts.append(self._parse_and())
        if len(parts) == 1:
            return parts[0]
        return f"({' OR '.join(sql for sql, _ in parts)})", [p for _, params in parts for p in params]

    def _parse_and(self) -> tuple[str, list[FilterParam]]:
        parts = [self._parse_factor()]
        while self._peek() == "and":
            self._index += 1
            parts.append(self._parse_factor())
        if len(parts) == 1:
            return parts[0]
        return " AND ".join(sql for sql, _ in parts), [p for _, params in parts for p in params]

    def _parse_factor(self) -> tuple[str, list[FilterParam]]:
        kind = self._peek()
        if kind == "lparen":
            self._index += 1
            sql, params = self._parse_or()
            if self._peek() != "rparen":
                msg = "Invalid filter syntax: unbalanced parentheses"
                raise ValueError(msg)
            self._index += 1
            return f"({sql})", params
        if kind == "field":
            _, match = self._tokens[self._index]
            self._index += 1
            return _parse_single_comparison(match)
        msg = "Invalid filter syntax: expected a comparison"
        raise ValueError(msg)


def parse_filter(filter_query: str) -> tuple[str, list[FilterParam]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query or not filter_query.strip():
        return "", []
    return _FilterParser(_tokenize(filter_query)).parse()


def join_filters(*clauses: str) -> str:
    """AND together non-empty filter clauses, parenthesizing each."""
    present = [clause for clause in clauses if clause]
    if len(present) == 1:
        return present[0]
    return " && ".join(f"({clause})" for clause in present)


def _build_order_clause(sort: str) -> str:
    """Translate ``-created,+due_date`` or ``due_date DESC`` into ORDER BY terms."""
    if not sort:
        return "rowid ASC"

    terms = []
    for raw_term in sort.split(","):
        term = raw_term.strip()
        direction = "ASC"
        if term.startswith("-"):
            direction, term = "DESC", term[1:]
        elif term.startswith("+"):
            term = term[1:]
        else:
            parts = term.split()
            if len(parts) == 2 and parts[1].upper() in {"ASC", "DESC"}:  # noqa: PLR2004
                term, direction = parts[0], parts[1].upper()
        try:
            terms.append(f"{_json_field(term)} {direction}")
        except ValueError:
            logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
            return "rowid ASC"
    return ", ".join(terms)


# Atomic update operators


@dataclass
class AtomicUpdate:
    """Update operators applied to one document in a single transaction.

    ``pull`` runs first, so pulling and pushing the same array replaces an entry.
    A ``pull`` matcher that is a dict removes elements containing all of its
    key/value pairs; any other matcher removes equal elements.
    """

    set_fields: dict[str, Any] = field(default_factory=dict)
    unset_fields: list[str] = field(default_factory=list)
    increments: dict[str, int | float] = field(default_factory=dict)
    push: dict[str, list[Any]] = field(default_factory=dict)
    add_to_set: dict[str, list[Any]] = field(default_factory=dict)
    pull: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.set_fields or self.unset_fields or self.increments or self.push or self.add_to_set or self.pull
        )


def _matches(element: Any, matcher: Any) -> bool:  # noqa: ANN401
    if isinstance(matcher, dict):
        return isinstance(element, dict) and all(element.get(k) == v for k, v in matcher.items())
    return element == matcher


def _array_field(document: dict[str, Any], key: str) -> list[Any]:
    current = document.get(key)
    if current is None:
        current = []
        document[key] = current
    if not isinstance(current, list):
        msg = f"Field {key} is not an array"
        raise ValueError(msg)
    return current


def apply_update(document: dict[str, Any], update: AtomicUpdate) -> dict[str, Any]:
    """Return a copy of ``document`` with the update operators applied."""
    result = copy.deepcopy(document)
    plain_update = json.loads(_dumps(update.__dict__))

    for key, matcher in plain_update["pull"].items():
        result[key] = [item for item in _array_field(result, key) if not _matches(item, matcher)]

    for key, value in plain_update["set_fields"].items():
        result[key] = value

    for key in plain_update["unset_fields"]:
        result.pop(key, None)

    for key, amount in plain_update["increments"].items():
        current = result.get(key) or 0
        if not isinstance(current, int | float) or isinstance(current, bool):
            msg = f"Cannot increment non-numeric field {key}"
            raise ValueError(msg)
        result[key] = current + amount

    for key, items in plain_update["push"].items():
        _array_field(result, key).extend(items)

    for key, items in plain_update["add_to_set"].items():
        target = _array_field(result, key)
        for item in items:
            if item not in target:
                target.append(item)

    return result


# Connections


@dataclass
class _ConnectionEntry:
    connection: aiosqlite.Connection
    write_lock: asyncio.Lock


_db_connections: dict[tuple[int, int, str], _ConnectionEntry] = {}


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _cache_key(db_path: str | None) -> tuple[int, int, str]:
    loop = asyncio.get_running_loop()
    return (threading.get_ident(), id(loop), str(get_db_path(db_path)))


async def _get_entry(*, db_path: str | None = None) -> _ConnectionEntry:
    cache_key = _cache_key(db_path)
    cached = _db_connections.get(cache_key)
    if cached is not None:
        return cached

    path = get_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(str(path), isolation_level=None)
    await conn.execute("PRAGMA journal_mode = WAL")
    await conn.execute("PRAGMA busy_timeout = 5000")

    # Another coroutine may have connected while we awaited
    cached = _db_connections.get(cache_key)
    if cached is not None:
        await conn.close()
        return cached

    entry = _ConnectionEntry(connection=conn, write_lock=asyncio.Lock())
    _db_connections[cache_key] = entry
    logger.info("Created new SQLite connection", extra={"db_path": str(path), "thread_id": cache_key[0]})
    return entry


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    entry = await _get_entry(db_path=db_path)
    return entry.connection


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    entry = _db_connections.pop(cache_key, None)
    if entry is None:
        return

    try:
        await entry.connection.close()
        logger.info("Closed SQLite connection", extra={"db_path": cache_key[2]})
    except aiosqlite.Error as e:
        logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": cache_key[2]})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the document store schema."""
    from studioflow.core import schema  # noqa: PLC0415

    await schema.init_db(db_path=db_path)


def _storage_error(operation: str, collection: str, error: Exception) -> RuntimeError:
    if isinstance(error, aiosqlite.OperationalError) and "no such table" in str(error):
        logger.error("Table not found", extra={"collection": collection})
        return RuntimeError(f"Table '{collection}' does not exist. Call init_db() first.")
    logger.error(f"{operation}_failed", extra={"collection": collection, "error": str(error)})
    return RuntimeError(f"Failed to {operation.replace('_', ' ')} in {collection}: {error}")


# Record operations


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new document and return it with its id and timestamps."""
    _validate_collection_name(collection)
    now = utc_now()
    document = _normalize({**data, "id": data.get("id") or uuid.uuid4().hex, "created": now, "updated": now})

    try:
        entry = await _get_entry()
        async with entry.write_lock:
            query = f"INSERT INTO {collection} (id, data) VALUES (?, ?)"  # noqa: S608 - collection is validated
            await entry.connection.execute(query, (document["id"], _dumps(document)))
    except aiosqlite.Error as e:
        raise _storage_error("create_record", collection, e) from e

    logger.info("Created record", extra={"collection": collection, "record_id": document["id"]})
    return document


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single document by ID, raising KeyError if not found."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()
        query = f"SELECT data FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id,))
        row = await cursor.fetchone()
    except aiosqlite.Error as e:
        raise _storage_error("get_record", collection, e) from e

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return json.loads(row[0])


async def modify_record(
    *,
    collection: str,
    record_id: str,
    mutate: Callable[[dict[str, Any]], AtomicUpdate | None],
) -> dict[str, Any]:
    """Atomically read, update and write one document.

    ``mutate`` receives a copy of the current document inside the transaction and
    returns the operators to apply, or ``None`` to leave the document untouched.
    The ``updated`` timestamp is bumped on every applied update.

    Raises:
        KeyError: If the document does not exist
        RuntimeError: If the store fails
    """
    _validate_collection_name(collection)
    try:
        entry = await _get_entry()
    except aiosqlite.Error as e:
        raise _storage_error("modify_record", collection, e) from e

    conn = entry.connection
    async with entry.write_lock:
        try:
            await conn.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            raise _storage_error("modify_record", collection, e) from e

        try:
            query = f"SELECT data FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (record_id,))
            row = await cursor.fetchone()
            if row is None:
                msg = f"Record not found in {collection}: {record_id}"
                raise KeyError(msg)

            current = json.loads(row[0])
            update = mutate(copy.deepcopy(current))
            if update is None or update.is_empty():
                await conn.execute("ROLLBACK")
                return current

            updated = apply_update(current, update)
            updated["id"] = current["id"]
            updated["updated"] = utc_now()

            query = f"UPDATE {collection} SET data = ? WHERE id = ?"  # noqa: S608 - collection is validated
            await conn.execute(query, (_dumps(updated), record_id))
            await conn.execute("COMMIT")
        except aiosqlite.Error as e:
            await conn.execute("ROLLBACK")
            raise _storage_error("modify_record", collection, e) from e
        except BaseException:
            await conn.execute("ROLLBACK")
            raise

    logger.info("Modified record", extra={"collection": collection, "record_id": record_id})
    return updated


async def atomic_update(*, collection: str, record_id: str, update: AtomicUpdate) -> dict[str, Any]:
    """Apply a fixed set of operators to one document atomically."""
    return await modify_record(collection=collection, record_id=record_id, mutate=lambda _doc: update)


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Merge ``data`` into a document and return the updated document."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)
    return await atomic_update(collection=collection, record_id=record_id, update=AtomicUpdate(set_fields=data))


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a document by ID, raising KeyError if not found."""
    _validate_collection_name(collection)
    try:
        entry = await _get_entry()
        async with entry.write_lock:
            query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await entry.connection.execute(query, (record_id,))
    except aiosqlite.Error as e:
        raise _storage_error("delete_record", collection, e) from e

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def _select(
    *,
    collection: str,
    filter_query: str,
    sort: str,
    limit: int | None,
    offset: int = 0,
) -> list[dict[str, Any]]:
    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    query = f"SELECT data FROM {collection} {where_sql} ORDER BY {_build_order_clause(sort)}"  # noqa: S608 - validated
    bound: list[FilterParam] = list(params)
    if limit is not None:
        query += " LIMIT ? OFFSET ?"
        bound.extend([limit, offset])

    try:
        conn = await get_connection()
        cursor = await conn.execute(query, bound)
        rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        raise _storage_error("list_records", collection, e) from e

    return [json.loads(row[0]) for row in rows]


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List documents with optional filtering, sorting, and pagination."""
    records = await _select(
        collection=collection,
        filter_query=filter_query,
        sort=sort,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def list_all_records(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """List every document matching the filter, without pagination."""
    records = await _select(collection=collection, filter_query=filter_query, sort=sort, limit=None)
    logger.debug("Listed all records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first document matching the filter, or None."""
    records = await _select(collection=collection, filter_query=filter_query, sort="", limit=1)
    return records[0] if records else None


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count documents matching the filter."""
    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    query = f"SELECT COUNT(*) FROM {collection} {where_sql}"  # noqa: S608 - collection is validated

    try:
        conn = await get_connection()
        cursor = await conn.execute(query, params)
        row = await cursor.fetchone()
    except aiosqlite.Error as e:
        raise _storage_error("count_records", collection, e) from e

    return int(row[0]) if row else 0


async def update_records(*, collection: str, filter_query: str, data: dict[str, Any]) -> int:
    """Merge ``data`` into every document matching the filter. Returns the count."""
    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    now = utc_now()

    entry = await _get_entry()
    conn = entry.connection
    async with entry.write_lock:
        try:
            await conn.execute("BEGIN IMMEDIATE")
            cursor = await conn.execute(f"SELECT data FROM {collection} {where_sql}", params)  # noqa: S608
            rows = await cursor.fetchall()
            for row in rows:
                document = apply_update(json.loads(row[0]), AtomicUpdate(set_fields=data))
                document["updated"] = now
                await conn.execute(
                    f"UPDATE {collection} SET data = ? WHERE id = ?",  # noqa: S608 - collection is validated
                    (_dumps(document), document["id"]),
                )
            await conn.execute("COMMIT")
        except aiosqlite.Error as e:
            await conn.execute("ROLLBACK")
            raise _storage_error("update_records", collection, e) from e

    logger.info("Updated records", extra={"collection": collection, "count": len(rows)})
    return len(rows)


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every document matching the filter. Returns the count."""
    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    if not where_clause:
        msg = "Refusing to delete without a filter"
        raise ValueError(msg)

    try:
        entry = await _get_entry()
        async with entry.write_lock:
            query = f"DELETE FROM {collection} WHERE {where_clause}"  # noqa: S608 - collection is validated
            cursor = await entry.connection.execute(query, params)
    except aiosqlite.Error as e:
        raise _storage_error("delete_records", collection, e) from e

    logger.info("Deleted records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount
