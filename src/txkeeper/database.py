from typing import Optional

from txkeeper.interface.sqlite import SQLiteInterface
from txkeeper.transaction.runner import TransactionRunner


async def connect(
    db_path: str = ":memory:",
    *,
    busy_timeout_ms: Optional[int] = None,
    timeout: float = 5.0,
) -> TransactionRunner:
    """Open a SQLite database and wrap it in a transaction runner

    Example:

    ```python
    db = await connect("app.db", busy_timeout_ms=2000)
    await db.transaction(do_work, tries=3)
    await db.close()
    ```

    Args:
        db_path (str, optional): Path to the database file.
            Defaults to `":memory:"`.
        busy_timeout_ms (int, optional): Value for ``PRAGMA busy_timeout``.
            Defaults to `None`, leaving the driver's own timeout in place.
        timeout (float, optional): Driver lock timeout in seconds.
            Defaults to `5.0`.

    Returns:
        TransactionRunner: An opened runner
    """
    runner = TransactionRunner(
        SQLiteInterface(db_path, timeout=timeout),
        busy_timeout_ms=busy_timeout_ms,
    )
    await runner.open()
    return runner
