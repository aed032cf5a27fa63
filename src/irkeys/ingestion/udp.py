"""Asyncio UDP listener delivering controller datagrams to the engine.

Every datagram carries exactly one JSON message.  The sender's IP address is
used as the controller id so several controllers can share one listener.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from types import TracebackType
from typing import Tuple

from irkeys.ingestion.messages import deliver_message
from irkeys_core.engine import RemoteControlEngine

__all__ = ["AsyncControllerUDPServer", "DEFAULT_PORT"]


logger = logging.getLogger(__name__)


DEFAULT_PORT = 5100


class _AsyncControllerProtocol(asyncio.DatagramProtocol):
    def __init__(self, server: "AsyncControllerUDPServer") -> None:
        self._server = server

    def connection_made(self, transport: asyncio.BaseTransport) -> None:  # pragma: no cover - exercised indirectly
        self._server._connection_made(transport)

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._server._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:  # pragma: no cover - defensive
        self._server._on_error(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self._server._connection_lost(exc)


class AsyncControllerUDPServer:
    """Receive controller datagrams and feed them to a :class:`RemoteControlEngine`."""

    def __init__(
        self,
        engine: RemoteControlEngine,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._engine = engine
        self._host = host
        self._requested_port = port
        self._loop = loop
        self._transport: asyncio.DatagramTransport | None = None
        self._address: Tuple[str, int] = ("", 0)
        self._received = 0
        self._closed_event = asyncio.Event()
        self._closed_event.set()
        self._closing = False

    @classmethod
    async def create(
        cls,
        engine: RemoteControlEngine,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> "AsyncControllerUDPServer":
        self = cls(engine, host=host, port=port, loop=loop)
        await self.start()
        return self

    async def start(self) -> None:
        if self._transport is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _AsyncControllerProtocol(self),
            local_addr=(self._host, self._requested_port),
            family=socket.AF_INET,
        )
        self._transport = transport
        logger.info(
            "Listening for controller datagrams.",
            extra={"event": "ingestion.listening", "host": self._address[0], "port": self._address[1]},
        )

    async def __aenter__(self) -> "AsyncControllerUDPServer":
        if self._transport is None:
            await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def address(self) -> Tuple[str, int]:
        return self._address

    @property
    def received(self) -> int:
        return self._received

    async def close(self) -> None:
        if self._closing:
            await self._closed_event.wait()
            return
        self._closing = True
        transport = self._transport
        if transport is not None:
            transport.close()
        else:
            self._closed_event.set()
        await self._closed_event.wait()

    async def serve_forever(self) -> None:
        if self._transport is None:
            await self.start()
        await self._closed_event.wait()

    def _connection_made(self, transport: asyncio.BaseTransport) -> None:
        datagram = transport  # type: ignore[assignment]
        assert isinstance(datagram, asyncio.DatagramTransport)
        self._transport = datagram
        sockname = datagram.get_extra_info("sockname")
        if isinstance(sockname, tuple) and len(sockname) >= 2:
            self._address = (str(sockname[0]), int(sockname[1]))
        else:  # pragma: no cover - defensive
            self._address = (self._host, self._requested_port)
        self._closed_event = asyncio.Event()

    def _on_datagram(self, payload: bytes, source: tuple[str, int]) -> None:
        if not payload:
            return
        self._received += 1
        deliver_message(self._engine, source[0], payload)

    def _on_error(self, exc: Exception) -> None:
        logger.warning(
            "Controller socket reported an error.",
            extra={"event": "ingestion.socket_error", "error": str(exc)},
        )

    def _connection_lost(self, exc: Exception | None) -> None:
        self._transport = None
        self._closed_event.set()
        if exc is not None:
            logger.warning(
                "Controller socket closed with an error.",
                extra={"event": "ingestion.connection_lost", "error": str(exc)},
            )
