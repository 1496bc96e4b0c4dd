from importlib.metadata import version

from .database import connect
from .exception import (
    ContentionError,
    HandleFinalizedError,
    InterfaceError,
    RetriesExhaustedError,
    TransactionError,
    TxKeeperError,
)
from .interface import BaseInterface, SQLiteInterface, WriteResult
from .naming import NameGenerator
from .transaction import (
    SerializationQueue,
    Snapshot,
    TransactionOptions,
    TransactionRunner,
    Tx,
)

__version__ = version("txkeeper")

__all__ = (
    "connect",
    "BaseInterface",
    "ContentionError",
    "HandleFinalizedError",
    "InterfaceError",
    "NameGenerator",
    "RetriesExhaustedError",
    "SQLiteInterface",
    "SerializationQueue",
    "Snapshot",
    "TransactionError",
    "TransactionOptions",
    "TransactionRunner",
    "Tx",
    "TxKeeperError",
    "WriteResult",
)
