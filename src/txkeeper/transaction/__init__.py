"""
Serialized, savepoint-based transactions over a single connection.
"""

from .handle import Snapshot, Tx, get_active_handle
from .interfaces import (
    ErrorKind,
    FrameState,
    TransactionOptions,
    classify_error,
)
from .queue import SerializationQueue
from .runner import TransactionRunner
from .savepoint import SavepointFrame

__all__ = [
    "ErrorKind",
    "FrameState",
    "SavepointFrame",
    "SerializationQueue",
    "Snapshot",
    "TransactionOptions",
    "TransactionRunner",
    "Tx",
    "classify_error",
    "get_active_handle",
]
