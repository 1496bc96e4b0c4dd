from __future__ import annotations

import logging
from asyncio import sleep
from dataclasses import replace
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from txkeeper.exception import RetriesExhaustedError
from txkeeper.interface.base import BaseInterface, Params, Row, WriteResult
from txkeeper.naming import NameGenerator
from txkeeper.sql.builder import QueryMixin

from .handle import Body, Tx, get_active_handle, run_in_frame
from .interfaces import TransactionOptions, classify_error, should_retry
from .queue import SerializationQueue
from .savepoint import SavepointFrame

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionRunner(QueryMixin):
    """Entry point for transactions on a single database interface.

    Every call to `transaction` waits for its turn in a FIFO queue, opens an
    outermost savepoint, runs the body and resolves the savepoint before the
    next caller is admitted. Contention failures are retried inside the same
    queue slot with linear backoff.

    Example:

    ```python
    runner = TransactionRunner(SQLiteInterface("app.db"))
    await runner.open()

    async def transfer(tx):
        await tx.execute("UPDATE accounts SET balance = balance - ? WHERE id = ?", (10, 1))
        await tx.execute("UPDATE accounts SET balance = balance + ? WHERE id = ?", (10, 2))

    await runner.transaction(transfer, tries=3, backoff_ms=20)
    ```
    """  # noqa

    def __init__(
        self,
        interface: BaseInterface,
        *,
        busy_timeout_ms: Optional[int] = None,
        names: Optional[NameGenerator] = None,
    ):
        """
        Args:
            interface (BaseInterface): The database handle to serialize
            busy_timeout_ms (int, optional): Issue ``PRAGMA busy_timeout``
                with this value when opening. Defaults to `None`.
            names (NameGenerator, optional): Source of savepoint names.
                Defaults to a new generator.
        """
        self._interface = interface
        self._busy_timeout_ms = busy_timeout_ms
        self._names = names or NameGenerator()
        self._queue = SerializationQueue()

    @property
    def interface(self) -> BaseInterface:
        return self._interface

    @property
    def names(self) -> NameGenerator:
        return self._names

    @property
    def queue(self) -> SerializationQueue:
        return self._queue

    async def open(self) -> None:
        await self._interface.open()
        if self._busy_timeout_ms is not None:
            try:
                await self._interface.exec_command(
                    f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}"
                )
            except Exception as e:
                logger.warning("Could not set busy_timeout: %s", e)

    async def close(self) -> None:
        await self._interface.close()

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def transaction(
        self,
        body: Body[T],
        options: Optional[TransactionOptions] = None,
        *,
        immediate: Optional[bool] = None,
        tries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
    ) -> T:
        """Run `body` inside a serialized, savepoint-backed transaction

        Called from inside a running transaction body, this opens a nested
        transaction on the active handle instead of queueing behind itself.
        Retry options do not apply in that case, and a body that already
        released its own handle gets `HandleFinalizedError`.

        Args:
            body (Callable[[Tx], Any]): Receives the transaction handle.
            options (TransactionOptions, optional): Defaults to
                `TransactionOptions()`.
            immediate (bool, optional): Overrides `options.immediate`.
            tries (int, optional): Overrides `options.tries`.
            backoff_ms (int, optional): Overrides `options.backoff_ms`.

        Raises:
            TxKeeperError: If the options are invalid
            ContentionError: If the database stayed busy on every attempt

        Returns:
            Any: Whatever `body` returns
        """
        overrides = {
            key: value
            for key, value in (
                ("immediate", immediate),
                ("tries", tries),
                ("backoff_ms", backoff_ms),
            )
            if value is not None
        }
        options = replace(options or TransactionOptions(), **overrides)

        active = get_active_handle(self)
        if active is not None:
            logger.debug(
                "transaction() called inside %s, running nested", active.name
            )
            return await active.nested(body)

        return await self._queue.run(lambda: self._attempt(body, options))

    async def _attempt(self, body: Body[T], options: TransactionOptions) -> T:
        logger.debug(
            "Admitted transaction (immediate=%s, tries=%d, backoff_ms=%d)",
            options.immediate,
            options.tries,
            options.backoff_ms,
        )
        for attempt in range(options.tries):
            frame = SavepointFrame(self._names.next(), self._interface)
            try:
                await frame.open()
                result = await run_in_frame(
                    Tx(self._interface, self._names, frame, scope=self), body
                )
            except Exception as e:
                # No-op when the body's own unwind already resolved it
                await frame.rollback()
                if should_retry(classify_error(e), attempt, options.tries):
                    delay = options.delay_for(attempt)
                    logger.warning(
                        "Transaction %s hit contention (attempt %d of %d), "
                        "retrying in %.3fs: %s",
                        frame.name,
                        attempt + 1,
                        options.tries,
                        delay,
                        e,
                    )
                    await sleep(delay)
                    continue
                raise

            logger.info(
                "Transaction %s %s after %d attempt(s)",
                frame.name,
                frame.state.value,
                attempt + 1,
            )
            return result

        raise RetriesExhaustedError(
            f"Transaction failed after {options.tries} attempt(s)"
        )

    async def _serialized(self, call: Callable[[], Awaitable[Any]]) -> Any:
        if get_active_handle(self) is not None:
            return await call()
        return await self._queue.run(call)

    async def execute(self, sql: str, params: Params = None) -> WriteResult:
        """Execute a statement outside of any transaction"""
        return await self._serialized(
            lambda: self._interface.execute(sql, params)
        )

    async def query_one(self, sql: str, params: Params = None) -> Optional[Row]:
        return await self._serialized(
            lambda: self._interface.query_one(sql, params)
        )

    async def query_all(self, sql: str, params: Params = None) -> List[Row]:
        return await self._serialized(
            lambda: self._interface.query_all(sql, params)
        )

    async def enable_foreign_keys(self) -> None:
        await self._serialized(
            lambda: self._interface.exec_command("PRAGMA foreign_keys = ON")
        )

    async def foreign_keys_enabled(self) -> bool:
        row = await self.query_one("PRAGMA foreign_keys")
        return bool(row) and row.get("foreign_keys") == 1

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self._interface}>"
