from __future__ import annotations

import logging
from contextvars import ContextVar
from inspect import isawaitable
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Awaitable,
    Callable,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from txkeeper.exception import HandleFinalizedError
from txkeeper.sql.builder import QueryMixin

from .interfaces import FrameState
from .queue import SerializationQueue
from .savepoint import SavepointFrame

if TYPE_CHECKING:
    from txkeeper.interface.base import BaseInterface, Params, Row, WriteResult
    from txkeeper.naming import NameGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T")
Body = Callable[["Tx"], Union[Awaitable[T], T]]

# Innermost running handle per scope (one scope per runner)
_active_handles: ContextVar[Mapping[object, "Tx"]] = ContextVar(
    "active_handles", default=MappingProxyType({})
)


def get_active_handle(scope: object) -> Optional[Tx]:
    """The handle of `scope` whose body is running in the current context

    A handle is returned while its body runs even if the body already
    resolved the frame, since the caller still holds the queue slot.
    Handles belonging to other scopes are never returned.
    """
    handle = _active_handles.get().get(scope)
    if handle is not None and handle._in_body:
        return handle
    return None


async def run_in_frame(tx: Tx, body: Body[T]) -> T:
    """Run a body against an opened handle and resolve the handle's frame

    On success the frame is released unless the body already resolved it.
    On any failure, including a failed release, the frame is rolled back
    and released with cleanup errors suppressed, and the original error
    is re-raised unchanged.
    """
    token = _active_handles.set(
        MappingProxyType({**_active_handles.get(), tx.scope: tx})
    )
    tx._in_body = True
    try:
        result = body(tx)
        if isawaitable(result):
            result = await result
        await tx._frame.commit()
    except BaseException:
        await tx._frame.rollback()
        raise
    finally:
        tx._in_body = False
        _active_handles.reset(token)
    return result


class Snapshot:
    """One-shot revert point inside a transaction.

    Awaiting the snapshot's call rolls back every change made after it was
    taken. Only the first call does anything.
    """

    def __init__(self, owner: Tx, name: str):
        self.owner = owner
        self.name = name
        self._used = False

    @property
    def used(self) -> bool:
        return self._used

    async def revert(self) -> None:
        if self._used:
            return
        self._used = True

        if not self.owner.is_active:
            logger.warning(
                f"Cannot revert snapshot {self.name}: transaction "
                f"{self.owner.name} is already {self.owner.state.value}"
            )
            return

        interface = self.owner._interface
        try:
            await interface.exec_command(f"ROLLBACK TO {self.name}")
            logger.debug(f"Reverted to snapshot {self.name}")
        finally:
            try:
                await interface.exec_command(f"RELEASE {self.name}")
            except Exception as e:
                logger.warning(f"Failed to release snapshot {self.name}: {e}")

    def __call__(self) -> Awaitable[None]:
        return self.revert()

    def __str__(self) -> str:
        status = "used" if self._used else "pending"
        return f"<Snapshot {self.name} ({status})>"


class Tx(QueryMixin):
    """Handle for one open savepoint frame.

    Statements run on the shared interface. `nested` opens a child frame
    whose changes can be rolled back without touching this one, and
    `snapshot` takes a revertible point without a callback.

    Nested transactions opened on the same handle run one at a time, so
    concurrent siblings never interleave their savepoints.

    A handle becomes unusable once its frame is released or rolled back;
    any further call raises `HandleFinalizedError`.
    """

    def __init__(
        self,
        interface: BaseInterface,
        names: NameGenerator,
        frame: SavepointFrame,
        parent_stack: Tuple[str, ...] = (),
        scope: object = None,
    ):
        self._interface = interface
        self._names = names
        self._frame = frame
        self._stack = (*parent_stack, frame.name)
        self._scope = scope
        self._queue = SerializationQueue()
        self._in_body = False

    @property
    def scope(self) -> object:
        """Owner of this handle tree, normally the runner that opened it"""
        return self._scope

    @property
    def name(self) -> str:
        return self._frame.name

    @property
    def stack(self) -> Tuple[str, ...]:
        """Frame names from the outermost transaction to this one"""
        return self._stack

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def state(self) -> FrameState:
        return self._frame.state

    @property
    def is_active(self) -> bool:
        return not self._frame.resolved

    def _ensure_active(self, operation: str) -> None:
        if self._frame.resolved:
            raise HandleFinalizedError(
                f"Cannot {operation}: transaction {self.name} is already "
                f"{self._frame.state.value}"
            )

    async def execute(self, sql: str, params: Params = None) -> WriteResult:
        self._ensure_active("execute")
        return await self._interface.execute(sql, params)

    async def query_one(self, sql: str, params: Params = None) -> Optional[Row]:
        self._ensure_active("query")
        return await self._interface.query_one(sql, params)

    async def query_all(self, sql: str, params: Params = None) -> List[Row]:
        self._ensure_active("query")
        return await self._interface.query_all(sql, params)

    async def nested(self, body: Body[T]) -> T:
        """Run `body` in a child savepoint

        Args:
            body (Callable[[Tx], Any]): Receives the child handle. May be a
                coroutine function or a plain function.

        Returns:
            Any: Whatever `body` returns
        """
        self._ensure_active("open a nested transaction")
        active = get_active_handle(self._scope)
        if active is not None and active is not self and self.name in (
            active.stack
        ):
            # A descendant's body already holds this handle's slot
            return await self._open_child(body)
        return await self._queue.run(lambda: self._open_child(body))

    async def _open_child(self, body: Body[T]) -> T:
        self._ensure_active("open a nested transaction")
        frame = SavepointFrame(self._names.next(), self._interface)
        await frame.open()
        child = Tx(
            self._interface, self._names, frame, self._stack, self._scope
        )
        logger.debug(f"Nested transaction {' > '.join(child.stack)}")
        return await run_in_frame(child, body)

    async def snapshot(self) -> Snapshot:
        """Take a revertible point at the current state"""
        self._ensure_active("take a snapshot")
        name = self._names.next()
        await self._interface.exec_command(f"SAVEPOINT {name}")
        logger.debug(f"Took snapshot {name} in transaction {self.name}")
        return Snapshot(self, name)

    async def release(self) -> None:
        """Release this handle's frame now, keeping its changes"""
        self._ensure_active("release")
        await self._frame.commit()

    async def rollback(self) -> None:
        """Discard this handle's changes and release its frame now"""
        self._ensure_active("roll back")
        await self._frame.rollback()

    def __repr__(self) -> str:
        return f"<Tx {self.name} depth={self.depth} ({self.state.value})>"
