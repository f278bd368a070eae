"""Statement execution: parameter binding, deadlines, query logging and profiling."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

from .connection import Connection, Settings, Statement
from .exceptions import DriverError, QueryCancelledError, QueryExecutionError

logger = logging.getLogger("fluentql")


class QueryProfiler:
    """Records every executed statement with its duration and affected rows."""

    def __init__(self):
        self._lock = threading.Lock()
        self.entries: list[dict[str, Any]] = []
        self.total_time = 0.0

    def record(self, query: str, params: tuple[Any, ...], affected_rows: int, seconds: float) -> None:
        with self._lock:
            self.entries.append({
                "query": query,
                "params": params,
                "affected_rows": affected_rows,
                "time": seconds,
            })
            self.total_time += seconds

    def reset(self) -> None:
        with self._lock:
            self.entries = []
            self.total_time = 0.0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def queries(self) -> list[str]:
        return [entry["query"] for entry in self.entries]


class StatementExecutor:
    """Runs statements on a Connection, always through parameter binding."""

    def __init__(self, connection: Connection, settings: Settings, profiler: Optional[QueryProfiler] = None):
        self.connection = connection
        self.settings = settings
        self.profiler = profiler if profiler is not None else QueryProfiler()

    def interpolate(self, sql: str, parameters: tuple[Any, ...] | list[Any] = ()) -> str:
        """Substitute parameters into sql for diagnostics.

        The result is only ever logged or attached to errors; execution always
        binds parameters.
        """
        values = iter(parameters)
        rendered = []
        quote = None
        for char in sql:
            if quote:
                if char == quote:
                    quote = None
            elif char in ("'", '"'):
                quote = char
            elif char == "?":
                try:
                    char = self.connection.quote_literal(next(values))
                except StopIteration:
                    pass
            rendered.append(char)
        return "".join(rendered)

    def run(self, sql: str, parameters: tuple[Any, ...] | list[Any] = (), timeout: Optional[float] = None) -> Statement:
        """Prepare and execute sql with bound parameters.

        Rows are fetched before the deadline is disarmed, so a slow fetch is
        cancelled like a slow execute.

        Args:
            sql: Statement with ``?`` placeholders.
            parameters: Values bound to the placeholders, in order.
            timeout: Deadline in seconds; defaults to ``Settings.statement_timeout``.

        Returns:
            The executed Statement, its rows ready for Connection.fetch_rows().

        Raises:
            QueryCancelledError: The deadline expired and the statement was interrupted.
            QueryExecutionError: The driver failed to prepare or execute the statement.
        """
        parameters = tuple(parameters)
        if timeout is None:
            timeout = self.settings.statement_timeout
        rendered = ""
        if self.settings.log_queries:
            rendered = self.interpolate(sql, parameters)
            logger.info(rendered)
        logger.debug("%s %r", sql, parameters)

        expired = threading.Event()
        timer = None
        if timeout is not None:
            def expire():
                expired.set()
                try:
                    self.connection.interrupt()
                except NotImplementedError as error:
                    logger.warning("Statement deadline of %ss ignored: %s", timeout, error)
            timer = threading.Timer(timeout, expire)
            timer.daemon = True
            timer.start()

        started = time.perf_counter()
        try:
            statement = self.connection.prepare(sql)
            self.connection.execute(statement, parameters)
            statement.prefetched_rows = self.connection.fetch_rows(statement)
        except DriverError as error:
            rendered = rendered or self.interpolate(sql, parameters)
            if expired.is_set():
                logger.error("CANCELLED after %ss: %s", timeout, rendered)
                raise QueryCancelledError(sql, parameters, rendered, error.original, timeout=timeout) from error
            logger.error("FAILED: %s\nWITH ERROR:\n%s", rendered, error.message)
            raise QueryExecutionError(sql, parameters, rendered, error.original) from error
        finally:
            if timer is not None:
                timer.cancel()
        elapsed = time.perf_counter() - started

        self.profiler.record(sql, parameters, self.connection.row_count(statement), elapsed)
        if elapsed > self.settings.slow_query_seconds:
            logger.warning("SLOW QUERY - %.2fs:\n%s", elapsed, rendered or self.interpolate(sql, parameters))
        return statement
