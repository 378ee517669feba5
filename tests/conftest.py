import random

import pytest

from ssdp_device import DeviceProfile, InterfaceSet, NetworkInterface
from ssdp_transport import Datagram

SEARCH_ALL = (
    b"M-SEARCH * HTTP/1.1\r\n"
    b"HOST: 239.255.255.250:1900\r\n"
    b'MAN: "ssdp:discover"\r\n'
    b"ST: ssdp:all\r\n"
    b"MX: 3\r\n"
    b"\r\n"
)


def search(st: str = "ssdp:all", mx: int = 3) -> bytes:
    return (
        "M-SEARCH * HTTP/1.1\r\n"
        "HOST: 239.255.255.250:1900\r\n"
        'MAN: "ssdp:discover"\r\n'
        f"ST: {st}\r\n"
        f"MX: {mx}\r\n"
        "\r\n"
    ).encode()


class FixedRandom(random.Random):
    """Jitter source that always lands in the middle of the MX window."""

    def random(self) -> float:
        return 0.5


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """In-memory stand-in for SSDPTransport."""

    def __init__(self, listen_ok=True, join_ok=True, connect_ok=True) -> None:
        self.listen_ok = listen_ok
        self.join_ok = join_ok
        self.connect_ok = connect_ok
        self.queue = []
        self.sent = []
        self.joined = []
        self.left = []
        self.multicast_interface = None
        self.ttl = None
        self.on_receive = None
        self.closed = False
        self.listening = None

    async def listen(self, host="0.0.0.0", port=1900):
        self.listening = (host, port) if self.listen_ok else None
        return self.listen_ok

    def join_group(self, address):
        if self.join_ok:
            self.joined.append(address)
        return self.join_ok

    def leave_group(self, address):
        self.left.append(address)
        return True

    def set_multicast_interface(self, address):
        self.multicast_interface = address

    def set_multicast_ttl(self, ttl):
        self.ttl = ttl

    def connect(self, address, port):
        return self.connect_ok

    def deliver(self, data: bytes, address: str = "192.168.1.50", port: int = 50000) -> None:
        self.queue.append(Datagram(data, address, port))

    def has_next(self):
        return bool(self.queue)

    def next(self):
        return self.queue.pop(0) if self.queue else None

    def flush(self):
        if self.queue:
            self.queue.pop(0)

    def send(self, data, address=None, port=None):
        self.sent.append((data, address, port))

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return FixedRandom()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def profile():
    p = DeviceProfile(node=0xABCDEF)
    p.update({"model_name": "Responder", "model_number": "1.0", "friendly_name": "Test Device"})
    p.http_port = 8080
    return p


@pytest.fixture
def interfaces():
    return InterfaceSet(
        NetworkInterface("sta", "192.168.1.20", "255.255.255.0"),
        NetworkInterface("ap", "192.168.4.1", "255.255.255.0"),
    )
