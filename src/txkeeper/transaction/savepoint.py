"""
Savepoint frames: one named rollback point and its resolution state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .interfaces import FrameState

if TYPE_CHECKING:
    from txkeeper.interface.base import BaseInterface

logger = logging.getLogger(__name__)


class SavepointFrame:
    """
    A savepoint frame is resolved exactly once, either by `commit`
    (RELEASE) or by `rollback` (ROLLBACK TO followed by RELEASE). Once
    resolved, neither statement is ever issued again for its name.
    """

    def __init__(self, name: str, interface: BaseInterface):
        self.name = name
        self.interface = interface
        self._state = FrameState.OPEN
        self._opened = False

    async def open(self) -> None:
        """Issue the SAVEPOINT for this frame"""
        await self.interface.exec_command(f"SAVEPOINT {self.name}")
        self._opened = True
        logger.debug(f"Opened savepoint {self.name}")

    async def commit(self) -> None:
        """Release this savepoint, keeping its changes"""
        if self.resolved:
            logger.debug(
                f"Savepoint {self.name} already {self._state.value}, "
                "skipping release"
            )
            return

        await self.interface.exec_command(f"RELEASE {self.name}")
        self._state = FrameState.COMMITTED
        logger.debug(f"Released savepoint {self.name}")

    async def rollback(self) -> None:
        """Roll back to this savepoint and release it

        Errors from either statement are logged and suppressed; the frame
        is marked rolled back regardless.
        """
        if self.resolved:
            logger.debug(
                f"Savepoint {self.name} already {self._state.value}, "
                "skipping rollback"
            )
            return

        try:
            await self.interface.exec_command(f"ROLLBACK TO {self.name}")
        except Exception as e:
            logger.warning(f"Failed to roll back to savepoint {self.name}: {e}")

        try:
            await self.interface.exec_command(f"RELEASE {self.name}")
        except Exception as e:
            logger.warning(f"Failed to release savepoint {self.name}: {e}")

        self._state = FrameState.ROLLED_BACK
        logger.debug(f"Rolled back savepoint {self.name}")

    @property
    def state(self) -> FrameState:
        return self._state

    @property
    def resolved(self) -> bool:
        return self._state is not FrameState.OPEN

    @property
    def is_open(self) -> bool:
        return self._opened and not self.resolved

    def __str__(self) -> str:
        return f"<SavepointFrame {self.name} ({self._state.value})>"
