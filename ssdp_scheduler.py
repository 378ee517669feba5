"""
Timing policy for the SSDP responder: jittered search responses and periodic
ssdp:alive announcements. All decisions compare timestamps, so a late tick
still fires as soon as its deadline has passed.
"""

from __future__ import annotations

import enum
import logging
import random
import time
from typing import Callable, Optional

from ssdp_parser import ParseResult

_logger = logging.getLogger(__name__)

# Seconds between announcements; also advertised as CACHE-CONTROL max-age.
SSDP_INTERVAL = 1200


class Action(enum.Enum):
    NONE = "none"
    RESPOND = "respond"
    ANNOUNCE = "announce"


class PendingResponse:
    """A search response waiting for its random delay to elapse."""

    __slots__ = ("address", "port", "ready_at")

    def __init__(self, address: str, port: int, ready_at: float) -> None:
        self.address = address
        self.port = port
        self.ready_at = ready_at

    def as_dict(self) -> dict:
        return {"address": self.address, "port": self.port, "ready_at": self.ready_at}

    def __repr__(self) -> str:
        return f"PendingResponse({self.address}:{self.port}, ready_at={self.ready_at:.3f})"


class ResponseScheduler:
    """
    Holds at most one pending response and the last announcement time.
    poll() returns one action per tick: respond, announce or nothing.
    """

    def __init__(
        self,
        interval: float = SSDP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.interval = interval
        self.clock = clock
        self.rng = rng or random.Random()
        self.logger = logger or _logger
        self.pending: Optional[PendingResponse] = None
        self.last_announce: Optional[float] = None
        self.delay: float = 0.0

    @property
    def is_pending(self) -> bool:
        return self.pending is not None

    def draw_delay(self, max_delay: int) -> float:
        """Uniform delay in [0, max_delay) seconds."""
        if max_delay <= 0:
            return 0.0
        return self.rng.random() * max_delay

    def schedule(self, result: ParseResult, address: str, port: int) -> bool:
        """Record a pending response for a search match. Returns True if one was scheduled."""
        if not result.is_search or self.pending is not None:
            return False
        self.delay = self.draw_delay(result.max_delay)
        self.pending = PendingResponse(address, port, self.clock() + self.delay)
        self.logger.debug(
            "SSDP search from %s:%d, responding in %.2fs (MX=%d)",
            address, port, self.delay, result.max_delay,
        )
        return True

    def poll(self) -> tuple[Action, Optional[PendingResponse]]:
        now = self.clock()
        pending = self.pending
        if pending is not None:
            if now >= pending.ready_at:
                self.pending = None
                self.delay = 0.0
                return Action.RESPOND, pending
            return Action.NONE, None
        if self.last_announce is None or now - self.last_announce >= self.interval:
            self.last_announce = now
            return Action.ANNOUNCE, None
        return Action.NONE, None

    def cancel(self) -> None:
        """Drop any pending response (on shutdown)."""
        self.pending = None
        self.delay = 0.0

    def as_dict(self) -> dict:
        return {
            "pending": self.pending.as_dict() if self.pending else None,
            "last_announce": self.last_announce,
            "interval": self.interval,
        }
