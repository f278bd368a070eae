"""Transaction scopes with SAVEPOINT-based nesting.

The outermost scope issues BEGIN/COMMIT (or ROLLBACK when the block raises);
nested scopes use savepoints, so an inner failure only undoes the inner work.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .connection import Connection
from .exceptions import TransactionError
from .executor import StatementExecutor

logger = logging.getLogger("fluentql")


class TransactionManager:

    def __init__(self, connection: Connection, executor: Optional[StatementExecutor] = None):
        """
        Args:
            connection: The connection transactions are opened on.
            executor: Used by Transaction.execute(); statements bypass logging without it.
        """
        self._connection = connection
        self._executor = executor
        self._local = threading.local()

    # transaction level

    @property
    def level(self) -> int:
        """Current nesting level for the calling thread (0 outside any transaction)."""
        return getattr(self._local, "level", 0)

    def _increment_level(self) -> int:
        self._local.level = self.level + 1
        return self._local.level

    def _decrement_level(self) -> int:
        self._local.level = max(0, self.level - 1)
        return self._local.level

    # actual transaction itself

    @contextmanager
    def transaction(self) -> Iterator["Transaction"]:
        """Context manager opening a transaction, or a savepoint when nested.

        Yields:
            Transaction: handle for executing statements at this level.
        """
        level = self._increment_level()
        savepoint = f"savepoint_{level}" if level > 1 else None
        transaction = Transaction(self._connection, self, level)
        try:
            if savepoint:
                logger.debug("SAVEPOINT %s", savepoint)
                self._connection.raw_exec(f"SAVEPOINT {savepoint}")
            else:
                logger.debug("BEGIN")
                self._connection.begin()

            yield transaction

            if savepoint:
                logger.debug("RELEASE SAVEPOINT %s", savepoint)
                self._connection.raw_exec(f"RELEASE SAVEPOINT {savepoint}")
            else:
                logger.debug("COMMIT")
                self._connection.commit()
        except Exception:
            if savepoint:
                logger.debug("ROLLBACK TO SAVEPOINT %s", savepoint)
                self._connection.raw_exec(f"ROLLBACK TO SAVEPOINT {savepoint}")
            else:
                logger.debug("ROLLBACK")
                self._connection.rollback()
            raise
        finally:
            transaction._active = False
            self._decrement_level()


class Transaction:
    """Handle on one transaction level, usable only while that level is current."""

    def __init__(self, connection: Connection, manager: TransactionManager, level: int):
        self._connection = connection
        self._manager = manager
        self._level = level
        self._active = True

    @property
    def level(self) -> int:
        return self._level

    def execute(self, sql: str, parameters: tuple[Any, ...] | list[Any] = ()) -> list[dict[str, Any]]:
        """Execute a statement within this transaction and return its rows (if any).

        Raises:
            TransactionError: If the transaction has ended, or a nested
                transaction is currently open.
        """
        if not self._active:
            raise TransactionError("Transaction is no longer active")
        current_level = self._manager.level
        if current_level > self._level:
            raise TransactionError(
                f"Cannot use transaction level {self._level} from level {current_level}. "
                "Higher-level transactions cannot be accessed from nested transactions."
            )
        executor = self._manager._executor
        if executor is not None:
            statement = executor.run(sql, parameters)
        else:
            statement = self._connection.prepare(sql)
            self._connection.execute(statement, parameters)
        return self._connection.fetch_rows(statement)
