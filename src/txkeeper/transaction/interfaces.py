from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from txkeeper.exception import ContentionError, TxKeeperError


class FrameState(Enum):
    """Savepoint frame lifecycle"""

    OPEN = "open"  # SAVEPOINT issued
    COMMITTED = "committed"  # RELEASE issued
    ROLLED_BACK = "rolled_back"  # ROLLBACK TO and RELEASE issued


class ErrorKind(Enum):
    """How a failed transaction attempt should be treated"""

    CONTENTION = "contention"  # Another writer holds the lock, retryable
    STATEMENT = "statement"  # Anything else, fatal to the attempt


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ContentionError):
        return ErrorKind.CONTENTION
    return ErrorKind.STATEMENT


def should_retry(kind: ErrorKind, attempt: int, tries: int) -> bool:
    """Decide whether a failed attempt (0-based) gets another try"""
    return kind is ErrorKind.CONTENTION and attempt + 1 < tries


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class TransactionOptions:
    """Per-call transaction settings

    Attributes:
        immediate (bool): Reserved for engines that distinguish lock
            acquisition modes. Accepted but does not change the emitted
            SQL. Defaults to `True`.
        tries (int): Total attempts for contention failures. Defaults to
            `1`.
        backoff_ms (int): Backoff unit in milliseconds. Attempt ``n``
            (0-based) waits ``backoff_ms * (n + 1)`` before the next try.
            Defaults to `10`.
    """

    immediate: bool = True
    tries: int = 1
    backoff_ms: int = 10

    def __post_init__(self) -> None:
        if not _is_int(self.tries) or self.tries < 1:
            raise TxKeeperError("tries: must be an integer of at least 1")
        if not _is_int(self.backoff_ms) or self.backoff_ms < 0:
            raise TxKeeperError(
                "backoff_ms: must be a non-negative integer"
            )

    def delay_for(self, attempt: int) -> float:
        """Seconds to sleep after the failed attempt (0-based)"""
        return self.backoff_ms * (attempt + 1) / 1000
