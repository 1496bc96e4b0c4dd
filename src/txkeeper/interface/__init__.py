from .base import BaseInterface, WriteResult
from .sqlite import SQLiteInterface

__all__ = ("BaseInterface", "SQLiteInterface", "WriteResult")
