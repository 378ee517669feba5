import json
import logging

import pytest

from web_ui import JsonApiHandler, visibility_handler
from ssdp_engine import SSDPEngine


class _FakeStreamTransport:
    def __init__(self):
        self.written = b""
        self.closed = False

    def write(self, data):
        self.written += data

    def close(self):
        self.closed = True


def _call(handler, raw):
    transport = _FakeStreamTransport()
    handler.connection_made(transport)
    handler.data_received(raw)
    head, body = transport.written.split(b"\r\n\r\n", 1)
    return head.split(b"\r\n")[0].decode(), json.loads(body)


def _post(payload):
    body = json.dumps(payload).encode()
    return (
        b"POST /visibility HTTP/1.1\r\nContent-Type: application/json\r\n"
        b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n" + body
    )


@pytest.fixture
def engine(profile, interfaces, transport, clock, rng):
    return SSDPEngine(profile, interfaces, transport, clock=clock, rng=rng)


def _handler(engine):
    return JsonApiHandler(engine.status, logging.getLogger("test"), visibility_handler(engine))


def test_get_status(engine):
    status, body = _call(_handler(engine), b"GET / HTTP/1.1\r\n\r\n")
    assert status == "HTTP/1.1 200 OK"
    assert body["interfaces"]["ap"]["address"] == "192.168.4.1"
    assert body["scheduler"]["last_announce"] is None


def test_post_visibility_action(engine):
    status, body = _call(_handler(engine), _post({"interface": "sta", "action": "hide"}))
    assert status == "HTTP/1.1 200 OK"
    assert body["honoured"] is True
    assert body["interfaces"]["sta"]["hidden"] is True

    status, body = _call(_handler(engine), _post({"interface": "ap", "action": "hide"}))
    assert body["honoured"] is False
    assert body["interfaces"]["ap"]["hidden"] is False


def test_post_hidden_flag(engine):
    _call(_handler(engine), _post({"interface": "sta", "hidden": True}))
    status, body = _call(_handler(engine), _post({"interface": "ap", "hidden": True}))
    assert status == "HTTP/1.1 200 OK"
    assert body["interfaces"]["sta"]["hidden"] and body["interfaces"]["ap"]["hidden"]


def test_post_bad_requests(engine):
    status, _ = _call(_handler(engine), _post({"interface": "eth9", "action": "hide"}))
    assert status == "HTTP/1.1 400 Bad Request"
    status, _ = _call(_handler(engine), _post({"interface": "sta"}))
    assert status == "HTTP/1.1 400 Bad Request"
    status, _ = _call(_handler(engine), _post([1, 2]))
    assert status == "HTTP/1.1 400 Bad Request"


def test_post_read_action_is_rejected(engine):
    for action in ("read", " READ "):
        status, body = _call(_handler(engine), _post({"interface": "sta", "action": action}))
        assert status == "HTTP/1.1 400 Bad Request"
        assert "honoured" not in body
    assert engine.interfaces.station.hidden is False


def test_unknown_path(engine):
    status, body = _call(_handler(engine), b"GET /nope HTTP/1.1\r\n\r\n")
    assert status == "HTTP/1.1 404 Not Found"


def test_visibility_without_callback(engine):
    handler = JsonApiHandler(engine.status, logging.getLogger("test"))
    status, _ = _call(handler, _post({"interface": "sta", "action": "hide"}))
    assert status == "HTTP/1.1 501 Not Implemented"
