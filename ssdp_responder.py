#!/usr/bin/env python3
"""
SSDP Responder - advertise a UPnP root device on a station and an access
point interface at the same time.

Answers M-SEARCH requests with a randomized delay, sends periodic
NOTIFY ssdp:alive announcements and serves the description document.

Usage:
    python ssdp_responder.py [--config config.yaml]

    Or with environment variables:
    SSDP_STA_IP=192.168.1.20 SSDP_AP_IP=192.168.4.1 python ssdp_responder.py
"""

import argparse
import asyncio
import logging
import os
import signal
import socket
import sys
from pathlib import Path
from typing import Optional

try:
    import yaml
except ImportError:
    yaml = None

from ssdp_description import run_description_server
from ssdp_device import DeviceProfile, InterfaceSet, NetworkInterface
from ssdp_engine import DEFAULT_TICK_INTERVAL, SSDPEngine
from ssdp_scheduler import SSDP_INTERVAL
from ssdp_transport import SSDPTransport
from web_ui import run_json_api, visibility_handler

# -----------------------------------------------------------------------------
# Logging setup
# -----------------------------------------------------------------------------

def setup_logging(level: str = "INFO") -> None:
    """Configure logging format and level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Reduce noise from asyncio
    logging.getLogger("asyncio").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

DEFAULTS = {
    "log_level": "INFO",
    "http_port": 80,
    "ttl": 2,
    "announce_interval": SSDP_INTERVAL,
    "tick_interval": DEFAULT_TICK_INTERVAL,
    "sta_ip": "",
    "sta_netmask": "255.255.255.0",
    "hide_sta": False,
    "ap_ip": "",
    "ap_netmask": "255.255.255.0",
    "hide_ap": False,
    "device": {},            # DeviceProfile fields, e.g. friendly_name, model_name
    "serial_number": None,   # int form, stored as %08X
    "enable_description_server": True,
    "enable_web_ui": False,
    "web_ui_port": 8081,
}


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from YAML file with environment overrides."""
    if yaml is None:
        raise ImportError("PyYAML is required. Install with: pip install pyyaml")

    config = dict(DEFAULTS)
    config["device"] = {}

    # Explicit path must exist; config.yaml in project dir is optional
    if config_path:
        if not config_path.exists():
            raise FileNotFoundError(f"Config not found: {config_path}")
        path: Optional[Path] = config_path
    else:
        path = Path(__file__).parent / "config.yaml"
        if not path.exists():
            path = None
    if path:
        with open(path) as f:
            config.update(yaml.safe_load(f) or {})

    # Environment overrides
    if os.getenv("SSDP_STA_IP"):
        config["sta_ip"] = os.getenv("SSDP_STA_IP")
    if os.getenv("SSDP_AP_IP"):
        config["ap_ip"] = os.getenv("SSDP_AP_IP")
    if os.getenv("SSDP_HTTP_PORT"):
        config["http_port"] = int(os.getenv("SSDP_HTTP_PORT"))
    if os.getenv("LOG_LEVEL"):
        config["log_level"] = os.getenv("LOG_LEVEL")

    return config


def get_station_ip(config: dict) -> Optional[str]:
    """Station address from config, or the address the default route leaves from."""
    ip = (config.get("sta_ip") or "").strip()
    if ip:
        return ip
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.settimeout(2.0)
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return None


def build_profile(config: dict) -> DeviceProfile:
    profile = DeviceProfile()
    profile.update(config.get("device") or {})
    if config.get("serial_number") is not None:
        profile.set_serial_number(int(config["serial_number"]))
    profile.http_port = int(config.get("http_port", 80))
    profile.ttl = int(config.get("ttl", 2))
    return profile


def build_interfaces(config: dict) -> InterfaceSet:
    return InterfaceSet(
        NetworkInterface(
            "sta",
            get_station_ip(config) or "",
            config.get("sta_netmask", "255.255.255.0"),
            bool(config.get("hide_sta")),
        ),
        NetworkInterface(
            "ap",
            config.get("ap_ip") or "",
            config.get("ap_netmask", "255.255.255.0"),
            bool(config.get("hide_ap")),
        ),
    )


# -----------------------------------------------------------------------------
# Main entry point
# -----------------------------------------------------------------------------

async def main_async(config: dict) -> int:
    """Run the responder until SIGINT/SIGTERM."""
    logger = logging.getLogger("ssdp-responder")
    profile = build_profile(config)
    interfaces = build_interfaces(config)
    engine = SSDPEngine(
        profile,
        interfaces,
        SSDPTransport(logger),
        logger,
        interval=float(config.get("announce_interval", SSDP_INTERVAL)),
    )

    # Handle shutdown gracefully - must not block event loop or Ctrl-C won't work
    stop_event = asyncio.Event()
    _shutting_down = False

    def shutdown():
        nonlocal _shutting_down
        if _shutting_down:
            logger.warning("Second Ctrl-C: forcing exit")
            os._exit(1)
        _shutting_down = True
        stop_event.set()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown)
    except (NotImplementedError, OSError):
        # add_signal_handler not supported on Windows - use signal.signal
        try:
            signal.signal(signal.SIGINT, lambda s, f: shutdown())
            signal.signal(signal.SIGTERM, lambda s, f: shutdown())
        except (ValueError, OSError):
            logger.debug("Signal handlers unavailable")

    if not interfaces.visible():
        logger.warning("SSDP: no visible interface. Set sta_ip or ap_ip in config.")

    if not await engine.start():
        logger.error("SSDP failed to start")
        return 1

    http_server = await run_description_server(config, logger, profile, engine.description)
    json_api = await run_json_api(
        config, logger, engine.status, set_visibility=visibility_handler(engine)
    )
    if json_api:
        logger.info("JSON API on port %d", int(config.get("web_ui_port", 8081)))

    tick_task = asyncio.create_task(engine.run(float(config.get("tick_interval", DEFAULT_TICK_INTERVAL))))

    await stop_event.wait()

    logger.info("Shutting down...")
    tick_task.cancel()
    try:
        await tick_task
    except asyncio.CancelledError:
        pass
    engine.stop()
    try:
        for srv in (http_server, json_api):
            if srv:
                srv.close()
                await asyncio.wait_for(srv.wait_closed(), timeout=2.0)
    except asyncio.TimeoutError:
        logger.warning("Shutdown timed out, exiting anyway")
    return 0


def main() -> int:
    """Parse arguments and run the responder."""
    parser = argparse.ArgumentParser(
        description="SSDP Responder - UPnP discovery on station and access point interfaces"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Path to config YAML (default: config.yaml in project dir, if present)",
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1
    except ImportError as e:
        print(str(e), file=sys.stderr)
        return 1
    setup_logging(config["log_level"])

    try:
        return asyncio.run(main_async(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
