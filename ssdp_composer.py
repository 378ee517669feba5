"""
SSDP message composer - search responses and NOTIFY ssdp:alive announcements.

Messages are built by plain substitution; values are written verbatim.
"""

from __future__ import annotations

import enum
import logging
import platform
from typing import Any, Optional

from ssdp_device import DeviceProfile, InterfaceSet
from ssdp_scheduler import SSDP_INTERVAL

SSDP_MCAST_GRP = "239.255.255.250"
SSDP_MCAST_PORT = 1900

_logger = logging.getLogger(__name__)


class MessageKind(enum.Enum):
    RESPONSE = "response"
    NOTIFY = "notify"


RESPONSE_HEAD = [
    "HTTP/1.1 200 OK",
    "EXT:",
]

NOTIFY_HEAD = [
    "NOTIFY * HTTP/1.1",
    f"HOST: {SSDP_MCAST_GRP}:{SSDP_MCAST_PORT}",
    "NTS: ssdp:alive",
]


def server_banner(profile: DeviceProfile) -> str:
    system = platform.system() or "Python"
    return f"{system}/1.0 UPNP/1.1 {profile.model_name}/{profile.model_number}"


def render_message(
    kind: MessageKind,
    profile: DeviceProfile,
    address: str,
    max_age: int = SSDP_INTERVAL,
) -> bytes:
    """Render one SSDP message advertising address in LOCATION."""
    head = RESPONSE_HEAD if kind is MessageKind.RESPONSE else NOTIFY_HEAD
    label = "ST" if kind is MessageKind.RESPONSE else "NT"
    return "\r\n".join(head + [
        f"CACHE-CONTROL: max-age={max_age}",
        f"SERVER: {server_banner(profile)}",
        f"USN: uuid:{profile.uuid}",
        f"{label}: {profile.device_type}",
        f"LOCATION: http://{address}:{profile.http_port}/{profile.schema_path}",
        "", "",
    ]).encode("utf-8")


class MessageComposer:
    """Chooses the advertised interface and destination, renders and hands the message to a transport."""

    def __init__(
        self,
        profile: DeviceProfile,
        interfaces: InterfaceSet,
        max_age: int = SSDP_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.profile = profile
        self.interfaces = interfaces
        self.max_age = max_age
        self.logger = logger or _logger

    def render(self, kind: MessageKind, remote_address: Optional[str] = None) -> Optional[bytes]:
        address = self.interfaces.route(remote_address if kind is MessageKind.RESPONSE else None)
        if address is None:
            return None
        return render_message(kind, self.profile, address, self.max_age)

    def send(
        self,
        transport: Any,
        kind: MessageKind,
        address: Optional[str] = None,
        port: Optional[int] = None,
    ) -> bool:
        """
        Render and send. Responses go to address:port, announcements to the
        multicast group. Returns False when no interface can be advertised.
        """
        data = self.render(kind, address)
        if data is None:
            self.logger.debug("SSDP %s not sent: no visible interface", kind.value)
            return False
        if kind is MessageKind.NOTIFY:
            address, port = SSDP_MCAST_GRP, SSDP_MCAST_PORT
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "SSDP sending %s to %s:%s\n%s", kind.value, address, port,
                data.decode("utf-8", errors="replace"),
            )
        transport.send(data, address, port)
        return True
