"""
Output sinks the stream controller pushes samples into.

A sink only needs ``async send(path, value)`` and ``close()``. Delivery is
best effort: a sink reports a broken or closed transport by raising, it does
not retry.
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from typing import Optional, Protocol, TextIO, Tuple

logger = logging.getLogger(__name__)


class TransportError(Exception):
    pass


class TransportClosed(TransportError):
    pass


class Sink(Protocol):
    async def send(self, path: str, value: float) -> None: ...

    def close(self) -> None: ...


def parse_udp_endpoint(endpoint: str) -> Tuple[str, int]:
    """Split ``udp://host:port`` into ``(host, port)``."""
    prefix = "udp://"
    if not endpoint.startswith(prefix):
        raise TransportError(f"unsupported endpoint {endpoint!r}, expected udp://host:port")
    host, sep, port = endpoint[len(prefix):].rpartition(":")
    if not sep or not host:
        raise TransportError(f"endpoint {endpoint!r} is missing a host or port")
    try:
        port_num = int(port)
    except ValueError as e:
        raise TransportError(f"invalid port in endpoint {endpoint!r}") from e
    if not 0 < port_num < 65536:
        raise TransportError(f"port out of range in endpoint {endpoint!r}")
    return host.strip("[]"), port_num


class QueueSink:
    """In-process sink backed by an asyncio queue.

    With ``maxsize > 0`` a full queue suspends ``send`` (backpressure).
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def send(self, path: str, value: float) -> None:
        if self._closed:
            raise TransportClosed("queue sink is closed")
        await self.queue.put((path, value))

    def close(self) -> None:
        self._closed = True


class CsvSink:
    """Writes ``ts,device_id,path,value`` lines, one per sample."""

    def __init__(self, device_id: str, stream: Optional[TextIO] = None, header: bool = True) -> None:
        self.device_id = device_id
        self.stream = stream if stream is not None else sys.stdout
        self._closed = False
        if header:
            print("ts,device_id,path,value", file=self.stream, flush=True)

    async def send(self, path: str, value: float) -> None:
        if self._closed:
            raise TransportClosed("csv sink is closed")
        try:
            print(f"{time.time():.3f},{self.device_id},{path},{value:.6f}", file=self.stream, flush=True)
        except (OSError, ValueError) as e:
            # ValueError: write to a closed file
            raise TransportClosed(f"cannot write sample: {e}") from e

    def close(self) -> None:
        self._closed = True


class _DatagramState(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.error: Optional[Exception] = None
        self.lost = False

    def error_received(self, exc: Exception) -> None:
        # ICMP errors (nobody listening yet) are not fatal for datagrams
        logger.warning(f"udp transport error: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.lost = True
        if exc is not None:
            self.error = exc


class UdpJsonSink:
    """Sends every sample as one JSON datagram.

    Payload: ``{"ts", "device_id", "path", "value"}``.
    """

    def __init__(self, transport: asyncio.DatagramTransport, protocol: _DatagramState, device_id: str) -> None:
        self._transport = transport
        self._protocol = protocol
        self.device_id = device_id

    @classmethod
    async def connect(cls, host: str, port: int, device_id: str) -> "UdpJsonSink":
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(_DatagramState, remote_addr=(host, port))
        except OSError as e:
            raise TransportError(f"cannot open udp endpoint {host}:{port}: {e}") from e
        logger.info(f"sending samples to udp://{host}:{port}")
        return cls(transport, protocol, device_id)

    async def send(self, path: str, value: float) -> None:
        if self._protocol.error is not None:
            raise TransportClosed(f"udp transport failed: {self._protocol.error}") from self._protocol.error
        if self._protocol.lost or self._transport.is_closing():
            raise TransportClosed("udp transport is closed")
        msg = {"ts": time.time(), "device_id": self.device_id, "path": path, "value": value}
        self._transport.sendto(json.dumps(msg, separators=(",", ":")).encode("utf-8"))

    def close(self) -> None:
        self._transport.close()


async def open_sink(endpoint: str, device_id: str) -> Sink:
    if endpoint in ("-", "stdout"):
        return CsvSink(device_id)
    host, port = parse_udp_endpoint(endpoint)
    return await UdpJsonSink.connect(host, port, device_id)
