class TxKeeperError(Exception):
    ...


class InterfaceError(TxKeeperError):
    """Raised when the database interface is misused"""


class TransactionError(TxKeeperError):
    """Base exception for transaction errors"""


class ContentionError(TransactionError):
    """Raised when the database is busy or locked by another writer

    This is the only error class the transaction runner will retry.
    """


class HandleFinalizedError(TransactionError):
    """Raised when a transaction handle is used after its savepoint
    was released or rolled back"""


class RetriesExhaustedError(TransactionError):
    """Raised when a transaction leaves its retry loop without a result"""
