"""Confirmation sound played after a device is connected and routed."""

import logging
import shlex

from ..errors import ToolReportedFailure
from ..process import CommandRunner

logger = logging.getLogger(__name__)


class ConfirmationTone:
    def __init__(
        self,
        runner: CommandRunner,
        sound: str | None,
        player: str = "mpg123 -q",
        timeout: float = 10.0,
    ):
        self._runner = runner
        self.sound = sound
        self._player = shlex.split(player)
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.sound) and bool(self._player)

    async def play(self) -> None:
        """Play the sound through the current default sink.

        Raises :class:`ToolReportedFailure` or :class:`ToolTimeout`; the
        caller decides whether that matters.
        """
        result = await self._runner.run(*self._player, self.sound, timeout=self._timeout)
        if not result.ok:
            raise ToolReportedFailure(
                result.command,
                result.output or f"exit status {result.returncode}",
                result.returncode,
            )
        logger.info("Played confirmation sound %s", self.sound)
