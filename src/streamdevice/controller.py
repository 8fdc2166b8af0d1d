"""
Stream controller: the single task that owns a ``StreamState``.

One asyncio task races the emission timer against the inbound command
channel. Whichever becomes ready is handled to completion before the loop
looks at the other, so a sample is never computed from a half-applied
command and no lock is needed. Only this task mutates the state.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .state import (
    COMMAND_TYPES,
    SetInterval,
    SetScale,
    SetWaveform,
    StreamState,
    ToggleRunning,
)
from .transport import Sink
from .waveform import Waveforms

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChannelClosed(Exception):
    pass


class StreamTransportError(Exception):
    """Pushing a sample to the output sink failed; the stream stops."""


class CommandChannel:
    """Unbounded queue of reconfigure commands with an explicit close.

    Commands queued before ``close()`` are still delivered; after that
    ``get()`` raises ``ChannelClosed``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put_nowait(self, command: Any) -> None:
        if self._closed:
            raise ChannelClosed("command channel is closed")
        self._queue.put_nowait(command)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSED:
            # keep the marker for any later reader
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed("command channel is closed")
        return item


class StreamController:
    def __init__(
        self,
        state: StreamState,
        destination_path: str,
        waveforms: Optional[Waveforms] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.state = state
        self.destination_path = destination_path
        self.waveforms = waveforms if waveforms is not None else Waveforms()
        self._sleep = sleep

        self.emitted = 0
        self.skipped = 0
        self.applied = 0
        self.discarded = 0

    async def run(self, sink: Sink, commands: CommandChannel) -> None:
        """Emit samples and apply commands until ``commands`` is closed.

        Raises ``StreamTransportError`` if the sink fails.
        """
        logger.info(
            f"streaming {self.state.waveform} to {self.destination_path} "
            f"every {self.state.interval_ms} ms (scale {self.state.scale})"
        )
        next_command = asyncio.ensure_future(commands.get())
        timer: Optional[asyncio.Future] = None
        try:
            while True:
                if timer is None:
                    # interval may have just changed, read it fresh
                    timer = asyncio.ensure_future(self._sleep(self.state.interval_ms / 1000.0))
                done, _ = await asyncio.wait({timer, next_command}, return_when=asyncio.FIRST_COMPLETED)

                if timer in done:
                    timer = None
                    await self._on_tick(sink)

                if next_command in done:
                    try:
                        command = next_command.result()
                    except ChannelClosed:
                        logger.info("command channel closed, stopping stream")
                        return
                    interval = self.state.interval_ms
                    self.apply(command)
                    # the clock keeps running across commands; only a new interval restarts it
                    if timer is not None and self.state.interval_ms != interval:
                        timer.cancel()
                        timer = None
                    next_command = asyncio.ensure_future(commands.get())
        finally:
            if timer is not None and not timer.done():
                timer.cancel()
            if not next_command.done():
                next_command.cancel()
            logger.info(
                f"stream stopped: emitted={self.emitted} skipped={self.skipped} "
                f"applied={self.applied} discarded={self.discarded}"
            )

    async def _on_tick(self, sink: Sink) -> None:
        state = self.state
        if not state.running:
            self.skipped += 1
            return
        value = state.next_value(self.waveforms)
        try:
            await sink.send(self.destination_path, value)
        except Exception as e:
            logger.error(f"failed to send sample to {self.destination_path}: {e}")
            raise StreamTransportError(f"cannot send sample to {self.destination_path}") from e
        self.emitted += 1
        logger.debug(f"data sent on {self.destination_path}, content: {value}")
        state.advance(self.waveforms)

    def apply(self, command: Any) -> bool:
        """Apply one command to the state. Returns False if it was discarded."""
        state = self.state
        if not isinstance(command, COMMAND_TYPES):
            logger.warning(f"discarding unrecognized command: {command!r}")
            self.discarded += 1
            return False

        if isinstance(command, ToggleRunning):
            state.running = not state.running
            logger.info(f"stream {'resumed' if state.running else 'paused'}")
        elif isinstance(command, SetWaveform):
            logger.debug(f"update stream math function with {command.waveform}")
            state.waveform = command.waveform
        elif isinstance(command, SetInterval):
            logger.debug(f"update stream interval with {command.interval_ms}")
            state.interval_ms = command.interval_ms
        elif isinstance(command, SetScale):
            logger.debug(f"update stream scale with {command.scale}")
            state.scale = float(command.scale)
        self.applied += 1
        return True
