"""
SSDP engine - drives one discovery tick at a time.

Each tick reads at most one queued datagram into the parser (only while no
response is pending), lets the scheduler pick one action, and sends it through
the composer. While a response is pending every queued datagram is discarded
unparsed, so a second search cannot replace the one in flight.

Usage:
    engine = SSDPEngine(profile, interfaces, SSDPTransport(logger), logger)
    if await engine.start():
        await engine.run(0.05)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Callable, Optional

from ssdp_composer import SSDP_MCAST_GRP, SSDP_MCAST_PORT, MessageComposer, MessageKind
from ssdp_description import render_description
from ssdp_device import DeviceProfile, InterfaceSet, NetworkInterface
from ssdp_parser import MessageParser
from ssdp_scheduler import SSDP_INTERVAL, Action, ResponseScheduler

_logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.05


class SSDPEngine:
    """Responder instance owning parser, scheduler and composer state."""

    def __init__(
        self,
        profile: DeviceProfile,
        interfaces: InterfaceSet,
        transport: Any,
        logger: Optional[logging.Logger] = None,
        interval: float = SSDP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.profile = profile
        self.interfaces = interfaces
        self.transport = transport
        self.logger = logger or _logger
        self.parser = MessageParser(profile, self.logger)
        self.scheduler = ResponseScheduler(interval, clock, rng, self.logger)
        self.composer = MessageComposer(profile, interfaces, int(interval), self.logger)
        self._joined: set[str] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """Open the socket and join the multicast group on each visible interface."""
        sta, ap = self.interfaces.station, self.interfaces.access_point
        self.logger.info(
            "SSDP STA IP: %s AP IP: %s MULTICAST: %s",
            sta.address or "-", ap.address or "-", SSDP_MCAST_GRP,
        )
        if not await self.transport.listen("0.0.0.0", SSDP_MCAST_PORT):
            self.logger.error("SSDP: listen on network failed")
            return False

        for iface in self.interfaces.visible():
            if not self._join(iface):
                self.logger.error("SSDP: %s failed to join igmp group", iface.name.upper())
                self._shutdown_transport()
                return False

        primary = self.interfaces.multicast_interface()
        if primary:
            self.transport.set_multicast_interface(primary.address)
        self.transport.set_multicast_ttl(self.profile.ttl)
        self.transport.on_receive = self.tick
        if not self.transport.connect(SSDP_MCAST_GRP, SSDP_MCAST_PORT):
            self.logger.error("SSDP: connect to multicast group failed")
            self._shutdown_transport()
            return False

        self._running = True
        self.logger.info(
            "SSDP advertising %s (uuid:%s) on %s",
            self.profile.device_type, self.profile.uuid,
            ", ".join(i.address for i in self.interfaces.visible()) or "no interface",
        )
        return True

    def stop(self) -> None:
        """Leave the multicast groups and close the socket. A pending response is dropped."""
        self.scheduler.cancel()
        self._shutdown_transport()
        if self._running:
            self.logger.info("SSDP stopped")
        self._running = False

    def _shutdown_transport(self) -> None:
        for address in list(self._joined):
            if not self.transport.leave_group(address):
                self.logger.warning("SSDP %s failed to leave igmp group", address)
        self._joined.clear()
        self.transport.on_receive = None
        self.transport.close()

    def _join(self, iface: NetworkInterface) -> bool:
        if iface.address in self._joined:
            return True
        if not self.transport.join_group(iface.address):
            return False
        self._joined.add(iface.address)
        return True

    def _leave(self, iface: NetworkInterface) -> None:
        if iface.address not in self._joined:
            return
        if not self.transport.leave_group(iface.address):
            self.logger.warning("SSDP %s failed to leave igmp group", iface.name.upper())
        self._joined.discard(iface.address)

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self) -> Action:
        """Run one discovery cycle. Returns the action taken."""
        transport = self.transport
        if not self.scheduler.is_pending and transport.has_next():
            datagram = transport.next()
            if datagram is not None:
                result = self.parser.parse(datagram.data)
                if self.logger.isEnabledFor(logging.DEBUG):
                    self.logger.debug(
                        "SSDP datagram from %s:%d -> %r", datagram.address, datagram.port, result
                    )
                self.scheduler.schedule(result, datagram.address, datagram.port)

        action, target = self.scheduler.poll()
        if action is Action.RESPOND and target is not None:
            self.composer.send(transport, MessageKind.RESPONSE, target.address, target.port)
        elif action is Action.ANNOUNCE:
            self.composer.send(transport, MessageKind.NOTIFY)

        if self.scheduler.is_pending:
            while transport.has_next():
                transport.flush()
        return action

    async def run(self, tick_interval: float = DEFAULT_TICK_INTERVAL) -> None:
        """Call tick() every tick_interval seconds until cancelled or stopped."""
        try:
            while self._running:
                self.tick()
                await asyncio.sleep(tick_interval)
        except asyncio.CancelledError:
            self.logger.debug("SSDP tick loop cancelled")
            raise

    # -------------------------------------------------------------------------
    # Visibility
    # -------------------------------------------------------------------------

    def manage(self, target: str, action: str) -> bool:
        """Coupled visibility toggle (see InterfaceSet.manage)."""
        action = (action or "").strip().lower()
        result = self.interfaces.manage(target, action)
        if action != "read" and result:
            self._apply_visibility(self.interfaces.get(target))
        return result

    def set_hidden(self, target: str, hidden: bool) -> None:
        self.interfaces.set_hidden(target, hidden)
        self._apply_visibility(self.interfaces.get(target))

    def _apply_visibility(self, iface: NetworkInterface) -> None:
        if not self._running:
            return
        if iface.visible:
            if not self._join(iface):
                self.logger.warning("SSDP %s failed to join igmp group", iface.name.upper())
        else:
            self._leave(iface)
        primary = self.interfaces.multicast_interface()
        if primary:
            self.transport.set_multicast_interface(primary.address)
        self.logger.info("SSDP %s %s", iface.name.upper(), "hidden" if iface.hidden else "visible")

    # -------------------------------------------------------------------------
    # Device settings
    # -------------------------------------------------------------------------

    def set_field(self, name: str, value: Any, *args: Any) -> str:
        return self.profile.set_field(name, value, *args)

    def set_serial_number(self, number: int) -> str:
        return self.profile.set_serial_number(number)

    def set_port(self, port: int) -> None:
        self.profile.http_port = int(port)

    def set_ttl(self, ttl: int) -> None:
        self.profile.ttl = int(ttl)
        if self._running:
            self.transport.set_multicast_ttl(self.profile.ttl)

    def description(self, local_address: str) -> Optional[bytes]:
        """Description document for an HTTP client connected via local_address."""
        return render_description(self.profile, self.interfaces, local_address)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "device": self.profile.as_dict(),
            "interfaces": self.interfaces.as_dict(),
            "joined": sorted(self._joined),
            "scheduler": self.scheduler.as_dict(),
        }
