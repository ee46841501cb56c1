"""
SQLite database connection manager.

Implementation notes:
- This adapter uses `aiosqlite` on a dedicated event-loop thread; callers on any
  loop await `aexecute` / `aquery` which are marshalled onto that thread.
- Writes are serialized through a single asyncio lock and retried with
  exponential backoff while SQLite reports `database is locked`.
- A `REGEXP` SQL function backed by Python `re` is registered on every connection.

Critical guarantee:
- The adapter never raises to callers; it returns `Result(...)`.
  A UNIQUE constraint violation is reported as `ErrorCode.CONFLICT`, every other
  storage failure as `ErrorCode.DB_ERROR` (or `ErrorCode.TIMEOUT`).
"""

from __future__ import annotations

import asyncio
import random
import re
import sqlite3
import threading
from functools import lru_cache
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Dict, List, Optional

import aiosqlite

from ...config import DB_MAX_CONNECTIONS, DB_QUERY_TIMEOUT, DB_TIMEOUT
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_MS = max(1000, int(float(DB_TIMEOUT) * 1000))
# Negative cache_size is in KiB. -16000 ~= 16 MiB cache.
SQLITE_CACHE_SIZE_KIB = -16000


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def _sqlite_regexp(pattern: Any, value: Any) -> int:
    """SQLite calls `value REGEXP pattern` as regexp(pattern, value)."""
    if pattern is None or value is None:
        return 0
    compiled = _compile_pattern(str(pattern))
    if compiled is None:
        return 0
    return 1 if compiled.search(str(value)) else 0


def _is_unique_violation(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "unique constraint failed" in msg or "primary key" in msg


class _AsyncLoopThread:
    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._thread_ident: Optional[int] = None
        self._ready = threading.Event()

    def start(self) -> asyncio.AbstractEventLoop:
        if self._loop and self._thread and self._thread.is_alive():
            return self._loop

        self._ready.clear()

        def _run():
            self._thread_ident = threading.get_ident()
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            self._ready.set()
            try:
                loop.run_forever()
            finally:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                loop.close()

        self._thread = threading.Thread(target=_run, name="medialib-db", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=10.0)
        if not self._loop:
            raise RuntimeError("Failed to start DB async loop thread")
        return self._loop

    def run(self, coro):
        loop = self.start()
        # Calling run() from the loop thread deadlocks on fut.result().
        if self._thread_ident == threading.get_ident():
            raise RuntimeError(
                "Synchronous DB API called from DB loop thread; use async DB methods to avoid deadlock"
            )
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        return fut.result()

    def submit(self, coro):
        loop = self.start()
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def stop(self):
        loop = self._loop
        if not loop or loop.is_closed():
            return
        loop.call_soon_threadsafe(loop.stop)
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
        self._thread_ident = None


class Sqlite:
    """
    Connection pool manager for SQLite (aiosqlite-backed).

    Async API, execution on a dedicated loop thread.
    """

    def __init__(
        self,
        db_path: str,
        max_connections: Optional[int] = None,
        timeout: float = DB_TIMEOUT,
        query_timeout: Optional[float] = None,
    ):
        self.db_path = Path(db_path)
        max_conn = int(max_connections) if max_connections is not None else int(DB_MAX_CONNECTIONS or 4)
        max_conn = max(1, max_conn)
        self._max_conn_limit = max_conn
        self._pool: "Queue[aiosqlite.Connection]" = Queue(maxsize=max_conn)
        self._initialized = False
        self._closed = False
        self._lock = threading.Lock()
        self._async_sem: Optional[asyncio.Semaphore] = None
        self._active_conns: set[aiosqlite.Connection] = set()

        self._timeout = float(timeout)
        self._query_timeout = float(DB_QUERY_TIMEOUT if query_timeout is None else query_timeout)
        self._lock_retry_attempts = 6
        self._lock_retry_base_seconds = 0.05
        self._lock_retry_max_seconds = 0.75

        self._loop_thread = _AsyncLoopThread()
        self._write_lock: Optional[asyncio.Lock] = None

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @staticmethod
    def _is_locked_error(exc: Exception) -> bool:
        msg = str(exc).lower()
        return (
            "database is locked" in msg
            or "database table is locked" in msg
            or "database schema is locked" in msg
            or "busy" in msg
        )

    async def _sleep_backoff(self, attempt: int):
        base = float(self._lock_retry_base_seconds)
        max_s = float(self._lock_retry_max_seconds)
        delay = min(max_s, base * (2 ** max(0, attempt)))
        delay = delay + (random.random() * 0.03)
        logger.debug("DB lock backoff: attempt=%d delay=%.3fs", int(attempt), float(delay))
        await asyncio.sleep(delay)

    def get_runtime_status(self) -> Dict[str, Any]:
        """Return lightweight runtime counters for diagnostics."""
        return {
            "active_connections": len(self._active_conns),
            "pooled_connections": int(self._pool.qsize()),
            "max_connections": int(self._max_conn_limit),
            "query_timeout_s": float(self._query_timeout),
            "busy_timeout_ms": int(SQLITE_BUSY_TIMEOUT_MS),
        }

    async def _apply_connection_pragmas(self, conn: aiosqlite.Connection):
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute(f"PRAGMA cache_size={SQLITE_CACHE_SIZE_KIB}")
        await conn.execute("PRAGMA temp_store=MEMORY")
        await conn.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        await conn.execute("PRAGMA foreign_keys=ON")

    async def _create_connection(self) -> aiosqlite.Connection:
        # Autocommit mode; every statement commits on its own.
        conn = await aiosqlite.connect(str(self.db_path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        await self._apply_connection_pragmas(conn)
        await conn.create_function("REGEXP", 2, _sqlite_regexp, deterministic=True)
        return conn

    async def _acquire_connection_async(self) -> aiosqlite.Connection:
        if self._async_sem is None:
            self._async_sem = asyncio.Semaphore(self._max_conn_limit)
        if self._closed:
            raise RuntimeError("Database is closed - connection rejected")

        sem = self._async_sem
        await sem.acquire()
        try:
            try:
                conn = self._pool.get_nowait()
            except Empty:
                conn = await self._create_connection()
            self._active_conns.add(conn)
            return conn
        except Exception:
            sem.release()
            raise

    async def _release_connection_async(self, conn: aiosqlite.Connection):
        try:
            self._active_conns.discard(conn)
            if self._closed or self._pool.full():
                await conn.close()
            else:
                self._pool.put(conn)
        finally:
            if self._async_sem:
                self._async_sem.release()

    async def _ensure_initialized_async(self):
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
        conn = await self._acquire_connection_async()
        try:
            await conn.commit()
        finally:
            await self._release_connection_async(conn)
        with self._lock:
            self._initialized = True
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()

    def _init_db(self):
        try:
            self._loop_thread.run(self._ensure_initialized_async())
            logger.info("Database initialized: %s", self.db_path)
        except Exception as exc:
            logger.error("Failed to initialize database: %s", exc)
            self._loop_thread.stop()
            raise

    @staticmethod
    def _error_result(exc: Exception, label: str) -> Result[Any]:
        if isinstance(exc, sqlite3.IntegrityError):
            if _is_unique_violation(exc):
                logger.info("Unique constraint rejected %s: %s", label, exc)
                return Result.Err(ErrorCode.CONFLICT, f"Integrity error: {exc}")
            logger.warning("Integrity error during %s: %s", label, exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Integrity error: {exc}")
        if isinstance(exc, sqlite3.OperationalError) and "interrupted" in str(exc).lower():
            return Result.Err(ErrorCode.TIMEOUT, "Database operation interrupted (query timeout)")
        logger.error("Database error during %s: %s", label, exc)
        return Result.Err(ErrorCode.DB_ERROR, str(exc))

    @staticmethod
    def _is_write_sql(query: str) -> bool:
        head = str(query or "").lstrip().split(None, 1)
        if not head:
            return False
        return head[0].upper() not in ("SELECT", "PRAGMA", "WITH", "EXPLAIN")

    async def _retry_locked(self, op):
        """Run `op()` again while SQLite reports a lock, up to the retry budget."""
        attempt = 0
        while True:
            try:
                return await op()
            except sqlite3.OperationalError as exc:
                if not self._is_locked_error(exc) or attempt >= self._lock_retry_attempts:
                    raise
                await self._sleep_backoff(attempt)
                attempt += 1

    async def _run_pooled(self, work, *, write: bool, label: str) -> Result[Any]:
        """
        Borrow a pooled connection and run `work(conn)` on it.

        Writes hold the write lock. Lock errors are retried, the whole call is bounded
        by the query timeout and any sqlite exception is mapped to a `Result`.
        """
        try:
            await self._ensure_initialized_async()
            conn = await self._acquire_connection_async()
        except Exception as exc:
            logger.error("Failed to acquire database connection: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Failed to acquire connection: {exc}")

        async def _inner() -> Result[Any]:
            try:
                lock = self._write_lock
                if write and lock is not None:
                    async with lock:
                        return await self._retry_locked(lambda: work(conn))
                return await self._retry_locked(lambda: work(conn))
            except Exception as exc:
                return self._error_result(exc, label)

        try:
            return await self._with_query_timeout(_inner())
        finally:
            await self._release_connection_async(conn)

    async def _with_query_timeout(self, coro):
        timeout = float(self._query_timeout or 0)
        if timeout <= 0:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            return Result.Err(ErrorCode.TIMEOUT, "Database operation timed out")

    async def _submit(self, coro) -> Result[Any]:
        if self._closed:
            coro.close()
            return Result.Err(ErrorCode.DB_ERROR, "Database is closed")
        return await asyncio.wrap_future(self._loop_thread.submit(coro))

    async def aexecute(self, query: str, params: Optional[tuple] = None, fetch: bool = False) -> Result[Any]:
        """
        Execute SQL on the DB loop thread (async).

        Returns:
            fetch=True: Ok(list of row dicts)
            INSERT: Ok(lastrowid)
            other writes: Ok(rowcount)
        """

        async def _work(conn: aiosqlite.Connection) -> Result[Any]:
            cursor = await conn.execute(query, params or ())
            try:
                if fetch:
                    rows = await cursor.fetchall()
                    return Result.Ok([dict(r) for r in rows or ()])
                await conn.commit()
                is_insert = str(query).lstrip()[:6].upper() == "INSERT"
                if is_insert and cursor.lastrowid:
                    return Result.Ok(cursor.lastrowid)
                return Result.Ok(cursor.rowcount if cursor.rowcount is not None else 0)
            finally:
                await cursor.close()

        write = self._is_write_sql(query)
        return await self._submit(self._run_pooled(_work, write=write, label="query"))

    async def aquery(self, sql: str, params: Optional[tuple] = None) -> Result[List[Dict[str, Any]]]:
        """Execute a SELECT query and return rows (async)."""
        return await self.aexecute(sql, params, fetch=True)

    async def aquery_one(self, sql: str, params: Optional[tuple] = None) -> Result[Optional[Dict[str, Any]]]:
        """Execute a SELECT query and return the first row or None (async)."""
        res = await self.aquery(sql, params)
        if not res.ok:
            return res
        rows = res.data or []
        return Result.Ok(rows[0] if rows else None)

    async def aexecutescript(self, script: str) -> Result[bool]:
        """Execute a multi-statement SQL script (async)."""

        async def _work(conn: aiosqlite.Connection) -> Result[bool]:
            await conn.executescript(script)
            await conn.commit()
            return Result.Ok(True)

        return await self._submit(self._run_pooled(_work, write=True, label="script"))

    async def ahas_table(self, table_name: str) -> bool:
        """Return True if `table_name` exists in sqlite_master (async)."""
        result = await self.aexecute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
            fetch=True,
        )
        return bool(result.ok and result.data and len(result.data) > 0)

    async def aget_schema_version(self) -> int:
        """Get the schema version from the `metadata` table (0 if missing) (async)."""
        if not await self.ahas_table("metadata"):
            return 0

        result = await self.aexecute(
            "SELECT value FROM metadata WHERE key = 'schema_version'",
            fetch=True,
        )
        if result.ok and result.data and len(result.data) > 0:
            try:
                return int(result.data[0]["value"])
            except (ValueError, KeyError, TypeError):
                logger.warning("Invalid schema_version value in database")
                return 0
        return 0

    async def aset_schema_version(self, version: int) -> Result[bool]:
        """Set the schema version in the `metadata` table (async)."""
        return await self.aexecute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
            (str(version),),
        )

    async def _close_all_async(self):
        while True:
            try:
                conn = self._pool.get_nowait()
            except Empty:
                break
            try:
                await conn.close()
            except Exception as exc:
                logger.debug("Failed to close pooled connection: %s", exc)

        for conn in list(self._active_conns):
            try:
                await conn.close()
            except Exception as exc:
                logger.debug("Failed to close active connection: %s", exc)
        self._active_conns.clear()
        self._async_sem = None

    async def aclose(self):
        """Close connections and stop the DB loop thread (async)."""
        if self._closed:
            return
        self._closed = True
        fut = self._loop_thread.submit(self._close_all_async())
        try:
            await asyncio.wrap_future(fut)
        finally:
            self._loop_thread.stop()
