from __future__ import annotations

import re
from itertools import count
from uuid import uuid4

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class NameGenerator:
    """Produces savepoint names that are never repeated in this process.

    Each generator owns its counter. A random token per instance keeps two
    generators (for example one per runner) from ever colliding.

    Example:

    ```python
    names = NameGenerator()
    names.next()  # "txk_sp_1a2b3c4d_1"
    names.next()  # "txk_sp_1a2b3c4d_2"
    ```
    """

    def __init__(self, prefix: str = "txk_sp") -> None:
        if not IDENTIFIER_PATTERN.match(prefix):
            raise ValueError(
                f"prefix: {prefix!r} is not a valid SQL identifier"
            )
        self._prefix = f"{prefix}_{uuid4().hex[:8]}"
        self._counter = count(1)

    @property
    def prefix(self) -> str:
        return self._prefix

    def next(self) -> str:
        return f"{self._prefix}_{next(self._counter)}"

    def __next__(self) -> str:
        return self.next()

    def __iter__(self):
        return self

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} prefix={self._prefix}>"
