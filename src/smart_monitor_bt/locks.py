"""Process-wide serialization of Bluetooth operations.

bluetoothctl and the audio server are shared system resources: two
concurrent connects would race on disconnect-prior and default-sink
selection.  Every state-changing operation takes the writer side of one
named lock; status reads take the reader side and may overlap.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class OperationLock:
    """Readers/writer lock with writer preference.

    A waiting writer blocks new readers, so a connect is never starved by
    a UI polling the status endpoint.
    """

    def __init__(self, name: str):
        self.name = name
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer: str | None = None
        self._waiting_writers = 0

    @property
    def busy(self) -> bool:
        """True while a writer holds the lock."""
        return self._writer is not None

    @property
    def holder(self) -> str | None:
        return self._writer

    @asynccontextmanager
    async def read(self):
        async with self._cond:
            await self._cond.wait_for(
                lambda: self._writer is None and not self._waiting_writers
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self, operation: str = "write"):
        async with self._cond:
            if self._writer is not None or self._readers:
                logger.debug(
                    "%s waiting for %s (held by %s)",
                    operation, self.name, self._writer or "readers",
                )
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: self._writer is None and not self._readers
                )
            finally:
                self._waiting_writers -= 1
                # a cancelled writer may have been the only thing holding readers back
                self._cond.notify_all()
            self._writer = operation
        try:
            yield
        finally:
            async with self._cond:
                self._writer = None
                self._cond.notify_all()


BLUETOOTH_OPERATIONS = OperationLock("bluetooth-operations")
