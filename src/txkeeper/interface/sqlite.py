from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from txkeeper.exception import ContentionError, InterfaceError
from txkeeper.interface.base import BaseInterface, Params, Row, WriteResult

logger = logging.getLogger(__name__)

SQLITE_BUSY = 5
SQLITE_LOCKED = 6
CONTENTION_CODES = (SQLITE_BUSY, SQLITE_LOCKED)
CONTENTION_MESSAGES = ("database is locked", "database table is locked")


def is_contention(exc: BaseException) -> bool:
    """Decide whether a driver error means another writer holds the lock"""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None:
        # Extended codes keep the primary code in the low byte
        return (code & 0xFF) in CONTENTION_CODES
    message = str(exc).lower()
    return "sqlite_busy" in message or any(
        signature in message for signature in CONTENTION_MESSAGES
    )


@contextmanager
def translate_errors(sql: str):
    try:
        yield
    except sqlite3.OperationalError as e:
        if is_contention(e):
            logger.debug(f"Contention while executing {sql!r}: {e}")
            raise ContentionError(str(e)) from e
        raise


class SQLiteInterface(BaseInterface):
    """Interface for one SQLite database over `aiosqlite`

    The connection runs in autocommit mode so that transaction boundaries
    are only ever created by `SAVEPOINT`, `RELEASE` and `ROLLBACK TO`.
    """

    scheme = "sqlite"

    def __init__(self, db_path: str = ":memory:", timeout: float = 5.0):
        self._db_path = db_path
        self._timeout = timeout
        self._db: Optional[aiosqlite.Connection] = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self):
        """Open the connection to the database"""
        if self._db is not None:
            return
        self._db = await aiosqlite.connect(
            self._db_path, timeout=self._timeout, isolation_level=None
        )
        self._db.row_factory = self._dict_factory
        logger.debug(f"Opened SQLite connection to {self._db_path}")

    async def close(self):
        """Close the connection to the database"""
        if self._db is None:
            return
        db, self._db = self._db, None
        await db.close()
        logger.debug(f"Closed SQLite connection to {self._db_path}")

    async def execute(self, sql: str, params: Params = None) -> WriteResult:
        db = self._get_db()
        with translate_errors(sql):
            async with db.execute(sql, list(params or ())) as cursor:
                return WriteResult(cursor.lastrowid, cursor.rowcount)

    async def query_one(self, sql: str, params: Params = None) -> Optional[Row]:
        db = self._get_db()
        with translate_errors(sql):
            async with db.execute(sql, list(params or ())) as cursor:
                return await cursor.fetchone()

    async def query_all(self, sql: str, params: Params = None) -> List[Row]:
        db = self._get_db()
        with translate_errors(sql):
            async with db.execute(sql, list(params or ())) as cursor:
                return list(await cursor.fetchall())

    async def exec_command(self, sql: str) -> None:
        db = self._get_db()
        with translate_errors(sql):
            async with db.execute(sql):
                pass

    def _get_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise InterfaceError(
                f"Connection to {self._db_path} is not open. "
                "Did you forget to call open()?"
            )
        return self._db

    @staticmethod
    def _dict_factory(
        cursor: sqlite3.Cursor, row: Tuple[Any, ...]
    ) -> Dict[str, Any]:
        return {val[0]: row[idx] for idx, val in enumerate(cursor.description)}

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self._db_path}>"
