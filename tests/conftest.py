from typing import Any, Dict, List, Optional

import pytest

from txkeeper import NameGenerator, TransactionRunner, connect
from txkeeper.interface.base import BaseInterface, WriteResult


class RecordingInterface(BaseInterface):
    """Fake database handle that records every statement it is given"""

    scheme = "recording"

    def __init__(self):
        self.log: List[str] = []
        self.params: List[Any] = []
        self.row: Optional[Dict[str, Any]] = None
        self.rows: List[Dict[str, Any]] = []
        self._failures: List[Dict[str, Any]] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self):
        self._open = True

    async def close(self):
        self._open = False

    def fail_on(self, prefix: str, exc: Exception, times: int = -1) -> None:
        """Raise `exc` for statements starting with `prefix`

        A negative `times` fails forever.
        """
        self._failures.append({"prefix": prefix, "exc": exc, "times": times})

    @property
    def commands(self) -> List[str]:
        return [
            sql
            for sql in self.log
            if sql.split(" ", 1)[0] in ("SAVEPOINT", "RELEASE", "ROLLBACK")
        ]

    def _record(self, sql: str, params=None) -> None:
        self.log.append(sql)
        self.params.append(list(params or ()))
        for failure in self._failures:
            if failure["times"] == 0 or not sql.startswith(failure["prefix"]):
                continue
            failure["times"] -= 1
            raise failure["exc"]

    async def execute(self, sql: str, params=None) -> WriteResult:
        self._record(sql, params)
        return WriteResult(1, 1)

    async def query_one(self, sql: str, params=None):
        self._record(sql, params)
        return self.row

    async def query_all(self, sql: str, params=None):
        self._record(sql, params)
        return list(self.rows)

    async def exec_command(self, sql: str) -> None:
        self._record(sql)


@pytest.fixture
def recording():
    return RecordingInterface()


@pytest.fixture
def names():
    return NameGenerator(prefix="sp")


@pytest.fixture
def runner(recording, names):
    return TransactionRunner(recording, names=names)


@pytest.fixture
async def db():
    runner = await connect(":memory:")
    await runner.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT UNIQUE, "
        "balance INTEGER DEFAULT 0)"
    )
    yield runner
    await runner.close()
