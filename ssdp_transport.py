"""
UDP transport for SSDP - asyncio datagram endpoint with per-interface
multicast membership.

Received datagrams are queued (bounded) together with the sender address and
read back by the engine one at a time; on_receive is called after each one
so the engine can run a tick immediately.
"""

from __future__ import annotations

import asyncio
import collections
import logging
import socket
import struct
from typing import Callable, NamedTuple, Optional

from ssdp_composer import SSDP_MCAST_GRP, SSDP_MCAST_PORT

_logger = logging.getLogger(__name__)

RECEIVE_QUEUE_SIZE = 32


class Datagram(NamedTuple):
    data: bytes
    address: str
    port: int


class SSDPTransport(asyncio.DatagramProtocol):
    """Datagram endpoint bound to the SSDP port, shared by search responses and announcements."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        on_receive: Optional[Callable[[], None]] = None,
        queue_size: int = RECEIVE_QUEUE_SIZE,
    ) -> None:
        self.logger = logger or _logger
        self.on_receive = on_receive
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._sock: Optional[socket.socket] = None
        self._queue: collections.deque[Datagram] = collections.deque(maxlen=queue_size)
        self._default_dest: Optional[tuple[str, int]] = None

    # -------------------------------------------------------------------------
    # asyncio.DatagramProtocol
    # -------------------------------------------------------------------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._queue.append(Datagram(data, addr[0], addr[1]))
        if self.on_receive:
            self.on_receive()

    def error_received(self, exc: Exception) -> None:
        self.logger.debug("SSDP socket error: %s", exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.transport = None

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def listen(self, host: str = "0.0.0.0", port: int = SSDP_MCAST_PORT) -> bool:
        """Bind the SSDP socket and attach it to the running loop."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    self.logger.debug("SO_REUSEPORT not supported")
            sock.setblocking(False)
            sock.bind((host, port))
            loop = asyncio.get_running_loop()
            await loop.create_datagram_endpoint(lambda: self, sock=sock)
        except OSError as e:
            self.logger.warning("SSDP requires port %d (may need root): %s", port, e)
            sock.close()
            return False
        self._sock = sock
        self.logger.info("SSDP listening on UDP %s:%d", host, port)
        return True

    def _mreq(self, interface_address: str) -> bytes:
        return struct.pack(
            "4s4s",
            socket.inet_aton(SSDP_MCAST_GRP),
            socket.inet_aton(interface_address),
        )

    def join_group(self, interface_address: str) -> bool:
        if not self._sock:
            return False
        try:
            self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._mreq(interface_address))
            return True
        except OSError as e:
            self.logger.warning("SSDP %s failed to join multicast group: %s", interface_address, e)
            return False

    def leave_group(self, interface_address: str) -> bool:
        if not self._sock:
            return False
        try:
            self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._mreq(interface_address))
            return True
        except OSError as e:
            self.logger.warning("SSDP %s failed to leave multicast group: %s", interface_address, e)
            return False

    def set_multicast_interface(self, interface_address: str) -> None:
        if self._sock:
            try:
                self._sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(interface_address)
                )
            except OSError as e:
                self.logger.warning("SSDP could not set multicast interface %s: %s", interface_address, e)

    def set_multicast_ttl(self, ttl: int) -> None:
        if self._sock:
            try:
                self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, int(ttl))
            except OSError as e:
                self.logger.warning("SSDP could not set multicast TTL %d: %s", ttl, e)

    def connect(self, address: str = SSDP_MCAST_GRP, port: int = SSDP_MCAST_PORT) -> bool:
        """
        Set the default destination used by send() without an address.
        The socket itself stays unconnected so unicast responses can share it.
        """
        if self.transport is None:
            return False
        self._default_dest = (address, port)
        return True

    # -------------------------------------------------------------------------
    # Receive queue
    # -------------------------------------------------------------------------

    def has_next(self) -> bool:
        return bool(self._queue)

    def next(self) -> Optional[Datagram]:
        return self._queue.popleft() if self._queue else None

    def flush(self) -> None:
        """Discard the next queued datagram unread."""
        if self._queue:
            self._queue.popleft()

    # -------------------------------------------------------------------------
    # Send / close
    # -------------------------------------------------------------------------

    def send(self, data: bytes, address: Optional[str] = None, port: Optional[int] = None) -> None:
        if address is None or port is None:
            if self._default_dest is None:
                raise RuntimeError("No destination and transport not connected")
            address, port = self._default_dest
        if self.transport is None:
            self.logger.debug("SSDP send to %s:%d dropped: transport closed", address, port)
            return
        self.transport.sendto(data, (address, port))

    def close(self) -> None:
        if self.transport:
            self.transport.close()
            self.transport = None
        elif self._sock:
            self._sock.close()
        self._sock = None
        self._queue.clear()
        self._default_dest = None
