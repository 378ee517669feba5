import pytest

from ssdp_device import (
    FIELD_LIMITS,
    DeviceProfile,
    InterfaceSet,
    NetworkInterface,
    default_uuid,
)


def _interfaces(sta="192.168.1.20", ap="192.168.4.1"):
    return InterfaceSet(NetworkInterface("sta", sta), NetworkInterface("ap", ap))


def test_profile_defaults():
    profile = DeviceProfile(node=0x112233ABCDEF)
    assert profile.device_type == "upnp:rootdevice"
    assert profile.schema_path == "description.xml"
    assert profile.uuid == "38323636-4558-4dda-9188-cda0e6abcdef"
    assert profile.http_port == 80
    assert profile.ttl == 2
    assert profile.friendly_name == ""


def test_default_uuid_is_stable():
    assert default_uuid(5) == default_uuid(5)
    assert default_uuid(5).endswith("000005")


def test_setters_truncate():
    profile = DeviceProfile(node=1)
    for name, limit in FIELD_LIMITS.items():
        stored = profile.set_field(name, "x" * (limit + 50))
        assert len(stored) == limit
        assert getattr(profile, name) == stored


def test_set_field_with_format_args():
    profile = DeviceProfile(node=1)
    assert profile.set_field("model_number", "%d.%d", 2, 7) == "2.7"
    assert profile.set_field("friendly_name", "100%") == "100%"


def test_unknown_field_raises():
    with pytest.raises(KeyError):
        DeviceProfile(node=1).set_field("colour", "red")


def test_serial_number_hex():
    profile = DeviceProfile(node=1)
    assert profile.set_serial_number(0xBEEF) == "0000BEEF"
    assert profile.set_serial_number(4294967295) == "FFFFFFFF"


def test_update_and_as_dict():
    profile = DeviceProfile(node=1)
    profile.update({"friendly_name": "Kitchen", "manufacturer": "Acme"})
    data = profile.as_dict()
    assert data["friendly_name"] == "Kitchen"
    assert data["manufacturer"] == "Acme"
    assert data["http_port"] == 80


def test_zero_address_is_absent():
    assert not NetworkInterface("sta", "0.0.0.0").present
    assert not NetworkInterface("sta", "").present
    assert not NetworkInterface("sta", "not-an-ip").present
    assert NetworkInterface("sta", "10.0.0.1").present


def test_contains_uses_netmask():
    iface = NetworkInterface("sta", "10.1.2.3", "255.255.0.0")
    assert iface.contains("10.1.200.9")
    assert not iface.contains("10.2.0.1")
    assert not iface.contains("garbage")
    assert not iface.contains(None)


def test_route_prefers_station_for_its_subnet():
    interfaces = _interfaces()
    assert interfaces.route("192.168.1.99") == "192.168.1.20"
    assert interfaces.route("192.168.4.7") == "192.168.4.1"
    assert interfaces.route("8.8.8.8") == "192.168.4.1"
    assert interfaces.route(None) == "192.168.1.20"


def test_route_skips_hidden_and_absent():
    interfaces = _interfaces()
    interfaces.set_hidden("sta", True)
    assert interfaces.route("192.168.1.99") == "192.168.4.1"
    assert interfaces.route(None) == "192.168.4.1"

    interfaces = _interfaces(ap="0.0.0.0")
    assert interfaces.route("8.8.8.8") == "192.168.1.20"

    interfaces = _interfaces(sta="0.0.0.0", ap="0.0.0.0")
    assert interfaces.route("8.8.8.8") is None
    assert interfaces.route(None) is None


def test_manage_hides_one_interface():
    interfaces = _interfaces()
    assert interfaces.manage("sta", "hide")
    assert interfaces.manage("sta", "read") is True
    assert interfaces.manage("ap", "read") is False


def test_manage_cannot_hide_both():
    interfaces = _interfaces()
    assert interfaces.manage("sta", "toggle")
    assert not interfaces.manage("ap", "hide")
    assert not interfaces.manage("ap", "toggle")
    assert not interfaces.access_point.hidden
    # showing the station again re-opens the access point gate
    assert interfaces.manage("sta", "show")
    assert interfaces.manage("ap", "hide")
    assert interfaces.access_point.hidden


def test_set_hidden_is_uncoupled():
    interfaces = _interfaces()
    interfaces.set_hidden("sta", True)
    interfaces.set_hidden("ap", True)
    assert interfaces.visible() == []
    assert interfaces.multicast_interface() is None


def test_manage_rejects_bad_input():
    interfaces = _interfaces()
    with pytest.raises(ValueError):
        interfaces.manage("eth0", "hide")
    with pytest.raises(ValueError):
        interfaces.manage("sta", "explode")


def test_find_only_visible():
    interfaces = _interfaces()
    assert interfaces.find("192.168.4.1") is interfaces.access_point
    interfaces.set_hidden("ap", True)
    assert interfaces.find("192.168.4.1") is None
    assert interfaces.find("127.0.0.1") is None
