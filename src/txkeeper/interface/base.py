from __future__ import annotations

from abc import ABC, abstractmethod
from collections import namedtuple
from typing import Any, Dict, List, Optional, Sequence

WriteResult = namedtuple("WriteResult", ("last_row_id", "changes"))

Row = Dict[str, Any]
Params = Optional[Sequence[Any]]


class BaseInterface(ABC):
    """A single database handle.

    Interfaces do not serialize access on their own. Everything that
    changes savepoint state is expected to be called from inside a
    serialization queue slot.
    """

    scheme = "dummy"

    @abstractmethod
    async def open(self): ...

    @abstractmethod
    async def close(self): ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def execute(self, sql: str, params: Params = None) -> WriteResult:
        """Execute a statement that does not return rows

        Args:
            sql (str): Statement using positional `?` placeholders
            params (Sequence[Any], optional): Positional parameters.
                Defaults to `None`.

        Returns:
            WriteResult: The last inserted row id and the number of
                changed rows
        """

    @abstractmethod
    async def query_one(self, sql: str, params: Params = None) -> Optional[Row]:
        """Execute a query and return its first row, or `None`"""

    @abstractmethod
    async def query_all(self, sql: str, params: Params = None) -> List[Row]:
        """Execute a query and return every row"""

    @abstractmethod
    async def exec_command(self, sql: str) -> None:
        """Execute a parameterless command such as `SAVEPOINT` or `PRAGMA`"""

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.scheme}>"
