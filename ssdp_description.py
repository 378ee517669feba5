"""
UPnP device description document served at the LOCATION advertised over SSDP.

The document is only returned to clients that reached us through a visible
interface; URLBase carries that interface's address.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ssdp_device import DeviceProfile, InterfaceSet

_logger = logging.getLogger(__name__)


def _escape_xml_text(s: str) -> str:
    """Escape &, <, >, " for use in XML element text."""
    return (
        str(s)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def device_description_xml(profile: DeviceProfile, address: str) -> str:
    e = _escape_xml_text
    return (
        '<?xml version="1.0"?>'
        '<root xmlns="urn:schemas-upnp-org:device-1-0">'
        "<specVersion><major>1</major><minor>0</minor></specVersion>"
        f"<URLBase>http://{address}:{profile.http_port}/</URLBase>"
        "<device>"
        f"<deviceType>{e(profile.device_type)}</deviceType>"
        f"<friendlyName>{e(profile.friendly_name)}</friendlyName>"
        f"<presentationURL>{e(profile.presentation_url)}</presentationURL>"
        f"<serialNumber>{e(profile.serial_number)}</serialNumber>"
        f"<modelName>{e(profile.model_name)}</modelName>"
        f"<modelNumber>{e(profile.model_number)}</modelNumber>"
        f"<modelURL>{e(profile.model_url)}</modelURL>"
        f"<manufacturer>{e(profile.manufacturer)}</manufacturer>"
        f"<manufacturerURL>{e(profile.manufacturer_url)}</manufacturerURL>"
        f"<UDN>uuid:{e(profile.uuid)}</UDN>"
        "</device>"
        "</root>\r\n"
    )


def render_description(
    profile: DeviceProfile, interfaces: InterfaceSet, local_address: str
) -> Optional[bytes]:
    """Full HTTP response with the description, or None if local_address is not a visible interface."""
    if interfaces.find(local_address) is None:
        return None
    body = device_description_xml(profile, local_address).encode("utf-8")
    return (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/xml\r\n"
        b"Content-Length: " + str(len(body)).encode() + b"\r\n"
        b"Connection: close\r\n"
        b"Access-Control-Allow-Origin: *\r\n\r\n"
    ) + body


NOT_FOUND = (
    b"HTTP/1.1 404 Not Found\r\n"
    b"Content-Length: 0\r\n"
    b"Connection: close\r\n\r\n"
)


class DescriptionHandler(asyncio.Protocol):
    """Serves GET /<schema_path>; anything else gets a 404."""

    def __init__(
        self,
        profile: DeviceProfile,
        describe: Callable[[str], Optional[bytes]],
        logger: logging.Logger,
    ) -> None:
        self.profile = profile
        self.describe = describe
        self.logger = logger
        self._buffer = b""
        self.transport: Optional[asyncio.BaseTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport

    def data_received(self, data: bytes) -> None:
        self._buffer += data
        if b"\r\n\r\n" not in self._buffer:
            if len(self._buffer) > 8192:
                self._close()
            return
        req_line = self._buffer.split(b"\r\n", 1)[0].decode("utf-8", errors="ignore")
        parts = req_line.split()
        if len(parts) < 2:
            self.logger.debug("HTTP: malformed request line: %r", req_line[:100])
            self._close()
            return
        method, path = parts[0].upper(), parts[1].split("?")[0]

        sockname = self.transport.get_extra_info("sockname") if self.transport else None
        peername = self.transport.get_extra_info("peername") if self.transport else None
        local_ip = sockname[0] if sockname else ""
        client_ip = peername[0] if peername else "?"

        body = None
        if method == "GET" and path.lstrip("/") == self.profile.schema_path.lstrip("/"):
            body = self.describe(local_ip)
        if body is not None:
            self.transport.write(body)
            self.logger.debug("Client %s request: %s %s -> 200 OK", client_ip, method, path)
        else:
            self.transport.write(NOT_FOUND)
            self.logger.debug("Client %s request: %s %s -> 404", client_ip, method, path)
        self._close()

    def _close(self) -> None:
        if self.transport:
            self.transport.close()
            self.transport = None


async def run_description_server(
    config: dict,
    logger: logging.Logger,
    profile: DeviceProfile,
    describe: Callable[[str], Optional[bytes]],
) -> Optional[asyncio.Server]:
    """Start the description HTTP server on the profile's HTTP port. Returns None if disabled or failed."""
    if not config.get("enable_description_server", True):
        return None
    try:
        server = await asyncio.get_running_loop().create_server(
            lambda: DescriptionHandler(profile, describe, logger),
            "0.0.0.0",
            profile.http_port,
            reuse_address=True,
        )
    except OSError as e:
        logger.warning("HTTP port %d unavailable: %s", profile.http_port, e)
        return None
    logger.info("Device description on port %d at /%s", profile.http_port, profile.schema_path)
    return server
