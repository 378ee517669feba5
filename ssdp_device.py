"""
Device identity and network interfaces for the SSDP responder.

DeviceProfile holds the strings advertised in SSDP messages and the description
document. InterfaceSet holds the station (sta) and access point (ap) interfaces,
their visibility gates and the LOCATION routing rule.
"""

from __future__ import annotations

import ipaddress
import logging
import uuid as uuid_mod
from typing import Any, Optional

_logger = logging.getLogger(__name__)

DEFAULT_DEVICE_TYPE = "upnp:rootdevice"
DEFAULT_SCHEMA_PATH = "description.xml"
DEFAULT_HTTP_PORT = 80
DEFAULT_TTL = 2

# Maximum visible characters per field; longer values are truncated.
FIELD_LIMITS = {
    "device_type": 63,
    "uuid": 41,
    "schema_path": 63,
    "friendly_name": 63,
    "presentation_url": 127,
    "serial_number": 31,
    "model_name": 63,
    "model_number": 31,
    "model_url": 127,
    "manufacturer": 63,
    "manufacturer_url": 127,
}


def default_uuid(node: Optional[int] = None) -> str:
    """UUID stable per host, built from the low 24 bits of the hardware address."""
    if node is None:
        node = uuid_mod.getnode()
    return "38323636-4558-4dda-9188-cda0e6%06x" % (node & 0xFFFFFF)


# -----------------------------------------------------------------------------
# Device profile
# -----------------------------------------------------------------------------

class DeviceProfile:
    """
    Strings that identify this device on the network.
    Every field is written through set_field, which truncates to FIELD_LIMITS.
    """

    def __init__(self, node: Optional[int] = None) -> None:
        self.device_type: str = DEFAULT_DEVICE_TYPE
        self.uuid: str = default_uuid(node)
        self.schema_path: str = DEFAULT_SCHEMA_PATH
        self.friendly_name: str = ""
        self.presentation_url: str = ""
        self.serial_number: str = ""
        self.model_name: str = ""
        self.model_number: str = ""
        self.model_url: str = ""
        self.manufacturer: str = ""
        self.manufacturer_url: str = ""
        self.http_port: int = DEFAULT_HTTP_PORT
        self.ttl: int = DEFAULT_TTL

    def set_field(self, name: str, value: Any, *args: Any) -> str:
        """
        Set a bounded string field by name and return the stored value.
        With extra args, value is a %-format string (e.g. set_field("model_number", "%d.%d", 1, 2)).
        """
        if name not in FIELD_LIMITS:
            raise KeyError(f"Unknown device field: {name}")
        text = str(value) % args if args else ("" if value is None else str(value))
        limit = FIELD_LIMITS[name]
        if len(text) > limit:
            _logger.debug("Truncating %s to %d chars", name, limit)
            text = text[:limit]
        setattr(self, name, text)
        return text

    def update(self, fields: dict[str, Any]) -> None:
        """Apply several set_field calls from a mapping (e.g. the config 'device' section)."""
        for name, value in fields.items():
            self.set_field(name, value)

    def set_serial_number(self, number: int) -> str:
        """Store a numeric serial as 8 upper-case hex digits."""
        return self.set_field("serial_number", "%08X", number & 0xFFFFFFFF)

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {name: getattr(self, name) for name in FIELD_LIMITS}
        out["http_port"] = self.http_port
        out["ttl"] = self.ttl
        return out


# -----------------------------------------------------------------------------
# Network interfaces
# -----------------------------------------------------------------------------

class NetworkInterface:
    """One IPv4 interface. An empty or 0.0.0.0 address means the interface is absent."""

    def __init__(self, name: str, address: str = "", netmask: str = "255.255.255.0", hidden: bool = False) -> None:
        self.name = name
        self.address = (address or "").strip()
        self.netmask = (netmask or "255.255.255.0").strip()
        self.hidden = bool(hidden)

    @property
    def present(self) -> bool:
        if not self.address:
            return False
        try:
            return int(ipaddress.IPv4Address(self.address)) != 0
        except ValueError:
            return False

    @property
    def visible(self) -> bool:
        return self.present and not self.hidden

    def contains(self, address: Optional[str]) -> bool:
        """True if address lies in this interface's subnet."""
        if not address or not self.present:
            return False
        try:
            network = ipaddress.IPv4Network(f"{self.address}/{self.netmask}", strict=False)
            return ipaddress.IPv4Address(address) in network
        except ValueError:
            return False

    def as_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "netmask": self.netmask,
            "hidden": self.hidden,
            "present": self.present,
        }


VISIBILITY_ACTIONS = ("toggle", "show", "hide", "read")


class InterfaceSet:
    """
    Station and access point interfaces with their visibility gates.

    manage() applies the coupled policy: a change to one interface is only
    honoured while the other one is visible, so both can never be hidden
    through it. set_hidden() writes a gate without that check.
    """

    def __init__(self, station: NetworkInterface, access_point: NetworkInterface) -> None:
        self.station = station
        self.access_point = access_point

    def get(self, target: str) -> NetworkInterface:
        key = (target or "").strip().lower()
        if key in ("sta", "station"):
            return self.station
        if key in ("ap", "access_point"):
            return self.access_point
        raise ValueError(f"Unknown interface: {target!r}")

    def other(self, target: str) -> NetworkInterface:
        iface = self.get(target)
        return self.access_point if iface is self.station else self.station

    def manage(self, target: str, action: str) -> bool:
        """
        Apply toggle/show/hide to an interface, or read its hidden flag.
        For write actions, returns True if the change was honoured.
        """
        action = (action or "").strip().lower()
        if action not in VISIBILITY_ACTIONS:
            raise ValueError(f"Unknown visibility action: {action!r}")
        iface = self.get(target)
        if action == "read":
            return iface.hidden
        if self.other(target).hidden:
            _logger.debug("Ignoring %s %s: other interface is hidden", action, iface.name)
            return False
        if action == "toggle":
            iface.hidden = not iface.hidden
        else:
            iface.hidden = action == "hide"
        return True

    def set_hidden(self, target: str, hidden: bool) -> None:
        self.get(target).hidden = bool(hidden)

    def visible(self) -> list[NetworkInterface]:
        return [i for i in (self.station, self.access_point) if i.visible]

    def multicast_interface(self) -> Optional[NetworkInterface]:
        """Interface used for outgoing multicast: station if visible, else access point."""
        for iface in (self.station, self.access_point):
            if iface.visible:
                return iface
        return None

    def route(self, remote_address: Optional[str] = None) -> Optional[str]:
        """
        Address to advertise in LOCATION for a message to remote_address.
        Station when the remote is in its subnet, otherwise access point.
        Without a remote (announcements) the multicast interface is used.
        """
        if not remote_address:
            iface = self.multicast_interface()
            return iface.address if iface else None
        if self.station.visible and self.station.contains(remote_address):
            return self.station.address
        if self.access_point.visible:
            return self.access_point.address
        if self.station.visible:
            return self.station.address
        return None

    def find(self, address: str) -> Optional[NetworkInterface]:
        """Visible interface owning address, if any."""
        for iface in self.visible():
            if iface.address == address:
                return iface
        return None

    def as_dict(self) -> dict[str, Any]:
        return {"sta": self.station.as_dict(), "ap": self.access_point.as_dict()}
