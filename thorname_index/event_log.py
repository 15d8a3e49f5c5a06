"""Read access to the append-only THORName change-event log."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Iterator, Optional

from thorname_index.context import QueryCancelled, QueryContext, ensure_context
from thorname_index.model import ChangeEvent

logger = logging.getLogger(__name__)

# Newest first; event_id breaks block_timestamp ties in favour of the later insert.
NEWEST_FIRST = "block_timestamp DESC, event_id DESC"

_EVENT_COLUMNS = "event_id, name, chain, address, owner, expire_height, block_timestamp"
_DISTINCT_KEYS = {"chain", "name"}
_PROGRESS_OPCODES = 1000


class DataSourceError(RuntimeError):
    """Raised when the event log cannot be queried."""


@dataclass(frozen=True)
class EventQuery:
    """Filter, projection and ordering for :meth:`EventLog.query_events`.

    ``min_expire_height`` is a strict lower bound. ``distinct_on`` keeps only
    the newest row per ``chain`` or ``name`` and orders the result by that key;
    otherwise rows come back newest first.
    """

    name: Optional[str] = None
    chain: Optional[str] = None
    address: Optional[str] = None
    owner: Optional[str] = None
    min_expire_height: Optional[int] = None
    address_nocase: bool = False
    distinct_on: Optional[str] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.distinct_on is not None and self.distinct_on not in _DISTINCT_KEYS:
            raise ValueError(f"distinct_on must be one of {sorted(_DISTINCT_KEYS)}, got {self.distinct_on!r}")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")


class EventLog:
    """Interface for querying name-change events and the indexed height."""

    def query_events(self, query: EventQuery, ctx: QueryContext | None = None) -> list[ChangeEvent]:
        raise NotImplementedError

    def current_height(self, ctx: QueryContext | None = None) -> int:
        raise NotImplementedError


class SQLiteEventLog(EventLog):
    """Event log backed by a local SQLite database.

    Every query runs on its own connection so the log can be shared by the
    worker threads of a reverse lookup. A progress handler watches the
    caller's :class:`QueryContext` and interrupts long statements once the
    query is cancelled.

    By default the database must already exist and is opened read-only, so
    a wrong path surfaces as :class:`DataSourceError` instead of an empty
    log. Pass ``create=True`` to create the file and schema for loading rows.
    """

    DEFAULT_DB_PATH = Path.home() / ".thorname-index" / "events.sqlite"

    def __init__(self, db_path: str | Path | None = None, timeout: float = 5.0, *, create: bool = False) -> None:
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.timeout = timeout
        self.read_only = not create
        if create:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        elif not self.db_path.is_file():
            raise DataSourceError(f"Event log not found: {self.db_path}")

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS thorname_change_events (
                    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    chain TEXT NOT NULL,
                    address TEXT NOT NULL,
                    owner TEXT NOT NULL,
                    expire_height INTEGER NOT NULL,
                    block_timestamp INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS block_log (
                    height INTEGER PRIMARY KEY,
                    block_timestamp INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_thorname_name ON thorname_change_events(name, chain, block_timestamp)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_thorname_address ON thorname_change_events(address)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_thorname_owner ON thorname_change_events(owner)")

    @contextmanager
    def _connect(self, ctx: QueryContext | None = None) -> Iterator[sqlite3.Connection]:
        try:
            if self.read_only:
                conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", timeout=self.timeout, uri=True)
            else:
                conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise DataSourceError(f"Unable to open event log {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        if ctx is not None:
            conn.set_progress_handler(lambda: 1 if ctx.cancelled else 0, _PROGRESS_OPCODES)
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            if ctx is not None and ctx.cancelled:
                raise QueryCancelled("Event log query interrupted") from exc
            raise DataSourceError(f"Event log query failed: {exc}") from exc
        finally:
            conn.close()

    def append(self, event: ChangeEvent) -> ChangeEvent:
        """Store ``event`` and return it with its assigned ``event_id``.

        No validation is performed; rows are expected to come from an
        ingestion pipeline that already checked them.
        """

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO thorname_change_events (name, chain, address, owner, expire_height, block_timestamp)
                VALUES (:name, :chain, :address, :owner, :expire_height, :block_timestamp)
                """,
                {
                    "name": event.name,
                    "chain": event.chain,
                    "address": event.address,
                    "owner": event.owner,
                    "expire_height": event.expire_height,
                    "block_timestamp": event.block_timestamp,
                },
            )
            return replace(event, event_id=cursor.lastrowid)

    def extend(self, events: Iterable[ChangeEvent]) -> list[ChangeEvent]:
        return [self.append(event) for event in events]

    def record_height(self, height: int, block_timestamp: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO block_log (height, block_timestamp) VALUES (?, ?)",
                (height, block_timestamp),
            )

    def current_height(self, ctx: QueryContext | None = None) -> int:
        ctx = ensure_context(ctx)
        ctx.check()
        with self._connect(ctx) as conn:
            row = conn.execute("SELECT MAX(height) AS height FROM block_log").fetchone()
        height = row["height"] if row is not None else None
        return int(height) if height is not None else 0

    def query_events(self, query: EventQuery, ctx: QueryContext | None = None) -> list[ChangeEvent]:
        ctx = ensure_context(ctx)
        ctx.check()
        sql, params = self._build_sql(query)
        logger.debug("Event log query %s params=%s", sql, params)
        with self._connect(ctx) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _build_sql(query: EventQuery) -> tuple[str, list[object]]:
        clauses: list[str] = []
        params: list[object] = []
        if query.name is not None:
            clauses.append("name = ?")
            params.append(query.name)
        if query.chain is not None:
            clauses.append("chain = ?")
            params.append(query.chain)
        if query.address is not None:
            clauses.append("address = ? COLLATE NOCASE" if query.address_nocase else "address = ?")
            params.append(query.address)
        if query.owner is not None:
            clauses.append("owner = ?")
            params.append(query.owner)
        if query.min_expire_height is not None:
            clauses.append("expire_height > ?")
            params.append(query.min_expire_height)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        if query.distinct_on is not None:
            key = query.distinct_on
            sql = (
                f"SELECT {_EVENT_COLUMNS} FROM ("
                f"SELECT {_EVENT_COLUMNS}, ROW_NUMBER() OVER (PARTITION BY {key} ORDER BY {NEWEST_FIRST}) AS rn "
                f"FROM thorname_change_events{where}"
                f") WHERE rn = 1 ORDER BY {key}"
            )
        else:
            sql = f"SELECT {_EVENT_COLUMNS} FROM thorname_change_events{where} ORDER BY {NEWEST_FIRST}"

        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)
        return sql, params

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> ChangeEvent:
        return ChangeEvent(
            name=row["name"],
            chain=row["chain"],
            address=row["address"],
            owner=row["owner"],
            expire_height=int(row["expire_height"]),
            block_timestamp=int(row["block_timestamp"]),
            event_id=int(row["event_id"]),
        )


__all__ = ["DataSourceError", "EventLog", "EventQuery", "NEWEST_FIRST", "SQLiteEventLog"]
