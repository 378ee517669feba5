import logging
import xml.etree.ElementTree as ET

from ssdp_description import NOT_FOUND, DescriptionHandler, device_description_xml, render_description

NS = "{urn:schemas-upnp-org:device-1-0}"


class _FakeStreamTransport:
    def __init__(self, local=("192.168.1.20", 8080)):
        self.local = local
        self.written = b""
        self.closed = False

    def get_extra_info(self, name):
        if name == "sockname":
            return self.local
        if name == "peername":
            return ("192.168.1.50", 40000)
        return None

    def write(self, data):
        self.written += data

    def close(self):
        self.closed = True


def test_description_xml_fields(profile):
    profile.update({"manufacturer": "Acme & Sons", "model_url": "http://acme.example/m"})
    root = ET.fromstring(device_description_xml(profile, "192.168.1.20").strip())
    assert root.find(f"{NS}URLBase").text == "http://192.168.1.20:8080/"
    device = root.find(f"{NS}device")
    assert device.find(f"{NS}deviceType").text == "upnp:rootdevice"
    assert device.find(f"{NS}friendlyName").text == "Test Device"
    assert device.find(f"{NS}manufacturer").text == "Acme & Sons"
    assert device.find(f"{NS}UDN").text == f"uuid:{profile.uuid}"


def test_render_description_only_for_visible(profile, interfaces):
    response = render_description(profile, interfaces, "192.168.1.20")
    head, body = response.split(b"\r\n\r\n", 1)
    assert head.startswith(b"HTTP/1.1 200 OK")
    assert b"Content-Type: text/xml" in head
    assert b"Access-Control-Allow-Origin: *" in head
    assert f"Content-Length: {len(body)}".encode() in head
    assert render_description(profile, interfaces, "10.0.0.1") is None
    interfaces.set_hidden("sta", True)
    assert render_description(profile, interfaces, "192.168.1.20") is None


def _request(profile, interfaces, raw, local=("192.168.1.20", 8080)):
    handler = DescriptionHandler(
        profile, lambda ip: render_description(profile, interfaces, ip), logging.getLogger("test")
    )
    transport = _FakeStreamTransport(local)
    handler.connection_made(transport)
    handler.data_received(raw)
    return transport


def test_handler_serves_schema_path(profile, interfaces):
    transport = _request(profile, interfaces, b"GET /description.xml HTTP/1.1\r\nHost: x\r\n\r\n")
    assert transport.written.startswith(b"HTTP/1.1 200 OK")
    assert b"<URLBase>http://192.168.1.20:8080/</URLBase>" in transport.written
    assert transport.closed


def test_handler_404s(profile, interfaces):
    transport = _request(profile, interfaces, b"GET /other.xml HTTP/1.1\r\n\r\n")
    assert transport.written == NOT_FOUND
    transport = _request(profile, interfaces, b"GET /description.xml HTTP/1.1\r\n\r\n", ("127.0.0.1", 8080))
    assert transport.written == NOT_FOUND


def test_handler_waits_for_full_headers(profile, interfaces):
    transport = _request(profile, interfaces, b"GET /description.xml HTTP/1.1\r\n")
    assert transport.written == b""
    assert not transport.closed
