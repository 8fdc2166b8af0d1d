"""
Inbound control events.

A control event is a JSON datagram ``{"path": "/<sensor_id>/<field>",
"value": ...}``. ``parse_event`` turns it into a ``ReconfigureCommand``;
``CommandReceiver`` listens on UDP and feeds a ``CommandChannel``. Bad
events are logged and dropped, the sender gets no reply.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Tuple

from .controller import ChannelClosed, CommandChannel
from .state import (
    InvalidCommandError,
    ReconfigureCommand,
    SetInterval,
    SetScale,
    SetWaveform,
    ToggleRunning,
)
from .transport import TransportError, parse_udp_endpoint

logger = logging.getLogger(__name__)

EVENT_FIELDS = ("toggle", "function", "interval", "scale")


class CommandParseError(ValueError):
    pass


def split_path(path: str) -> Tuple[str, str]:
    parts = [p for p in str(path).split("/") if p]
    if len(parts) != 2:
        raise CommandParseError(f"expected a path like /<sensor_id>/<field>, got {path!r}")
    return parts[0], parts[1]


def parse_event(path: str, payload: Any) -> ReconfigureCommand:
    _sensor_id, field = split_path(path)
    try:
        if field == "toggle":
            return ToggleRunning()
        if field == "function":
            if not isinstance(payload, str):
                raise CommandParseError(f"function expects a waveform name, got {payload!r}")
            return SetWaveform(payload)
        if field == "interval":
            if isinstance(payload, float) and payload.is_integer():
                payload = int(payload)
            return SetInterval(payload)
        if field == "scale":
            return SetScale(payload)
    except InvalidCommandError as e:
        raise CommandParseError(f"{field}: {e}") from e
    raise CommandParseError(f"unknown field {field!r} in {path!r}, expected one of {EVENT_FIELDS}")


class CommandReceiver(asyncio.DatagramProtocol):
    def __init__(self, channel: CommandChannel, sensor_id: Optional[str] = None) -> None:
        self.channel = channel
        self.sensor_id = sensor_id
        self.received = 0
        self.dropped = 0

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self.received += 1
        try:
            msg = json.loads(data.decode("utf-8", errors="ignore"))
            if not isinstance(msg, dict) or "path" not in msg:
                raise CommandParseError(f"expected an object with a 'path', got {msg!r}")
            path = msg["path"]
            sensor_id, _ = split_path(path)
            if self.sensor_id is not None and sensor_id != self.sensor_id:
                logger.debug(f"ignoring event for sensor {sensor_id} from {addr}")
                self.dropped += 1
                return
            command = parse_event(path, msg.get("value"))
        except (json.JSONDecodeError, CommandParseError) as e:
            logger.warning(f"discarding control event from {addr}: {e}")
            self.dropped += 1
            return

        try:
            self.channel.put_nowait(command)
        except ChannelClosed:
            logger.debug(f"stream stopped, dropping {command!r}")
            self.dropped += 1
            return
        logger.debug(f"queued {command!r} for sensor {sensor_id}")

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"control socket error: {exc}")


async def start_receiver(
    endpoint: str, channel: CommandChannel, sensor_id: Optional[str] = None
) -> Tuple[asyncio.DatagramTransport, CommandReceiver]:
    host, port = parse_udp_endpoint(endpoint)
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: CommandReceiver(channel, sensor_id), local_addr=(host, port)
        )
    except OSError as e:
        raise TransportError(f"cannot listen on {endpoint}: {e}") from e
    logger.info(f"listening for control events on {endpoint}")
    return transport, protocol
