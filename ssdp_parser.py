"""
Incremental SSDP request parser.

Consumes one datagram a byte at a time and classifies it as IGNORE, ABORT or
SEARCH_MATCH. Every field is read into a small fixed-size buffer; bytes past
the bound are dropped from that field, so memory use does not depend on the
datagram size.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import Optional

from ssdp_device import DeviceProfile

_logger = logging.getLogger(__name__)

METHOD_SIZE = 9
URI_SIZE = 1
FIELD_SIZE = 63

# Consecutive \r/\n bytes since the last other byte.
LINE_END = 2
HEADERS_END = 4

SEARCH_METHOD = "M-SEARCH"
SEARCH_URI = "*"
SEARCH_ALL = "ssdp:all"

_TERMINATORS = (0x0D, 0x0A)
_SPACE = 0x20
_COLON = 0x3A

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class ParseState(enum.Enum):
    METHOD = "method"
    URI = "uri"
    PROTO = "proto"
    KEY = "key"
    VALUE = "value"
    ABORT = "abort"


class Header(enum.Enum):
    OTHER = "other"
    MAN = "man"
    ST = "st"
    MX = "mx"


class Outcome(enum.Enum):
    IGNORE = "ignore"
    ABORT = "abort"
    SEARCH_MATCH = "search_match"


class ParseResult:
    """Classification of one datagram. max_delay is the MX window in seconds."""

    __slots__ = ("outcome", "max_delay")

    def __init__(self, outcome: Outcome, max_delay: int = 0) -> None:
        self.outcome = outcome
        self.max_delay = max_delay

    @property
    def is_search(self) -> bool:
        return self.outcome is Outcome.SEARCH_MATCH

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParseResult):
            return NotImplemented
        return self.outcome is other.outcome and self.max_delay == other.max_delay

    def __repr__(self) -> str:
        if self.outcome is Outcome.SEARCH_MATCH:
            return f"ParseResult(SEARCH_MATCH, max_delay={self.max_delay})"
        return f"ParseResult({self.outcome.name})"


def parse_mx(text: str) -> int:
    """Leading integer of an MX value; garbage and negatives give 0."""
    m = _LEADING_INT.match(text)
    if not m:
        return 0
    return max(0, int(m.group(1)))


def classify_header(name: str) -> Header:
    if name.startswith("MA"):
        return Header.MAN
    if name == "ST":
        return Header.ST
    if name == "MX":
        return Header.MX
    return Header.OTHER


class MessageParser:
    """
    State machine METHOD -> URI -> PROTO -> KEY <-> VALUE, with ABORT terminal.

    A search is accepted at the blank line ending the headers, or as soon as
    an ST value equals our device type (case-insensitive).
    """

    def __init__(self, profile: Optional[DeviceProfile] = None, logger: Optional[logging.Logger] = None) -> None:
        self.profile = profile if profile is not None else DeviceProfile()
        self.logger = logger or _logger
        self.reset()

    def reset(self) -> None:
        self.state = ParseState.METHOD
        self.header = Header.OTHER
        self.terminators = 0
        self.accepted = False
        self.max_delay = 0
        self._token = bytearray()

    @property
    def device_type(self) -> str:
        """Type an ST value must match, read from the profile on every comparison."""
        return self.profile.device_type

    @property
    def token(self) -> bytes:
        """Bytes accumulated for the field being read."""
        return bytes(self._token)

    def token_limit(self) -> int:
        if self.state is ParseState.METHOD:
            return METHOD_SIZE
        if self.state is ParseState.URI:
            return URI_SIZE
        return FIELD_SIZE

    def parse(self, data: bytes) -> ParseResult:
        """Classify a whole datagram, starting from a clean state."""
        self.reset()
        for byte in data:
            self.feed(byte)
        return self.result()

    def result(self) -> ParseResult:
        if self.state is ParseState.ABORT:
            return ParseResult(Outcome.ABORT)
        if self.accepted:
            return ParseResult(Outcome.SEARCH_MATCH, self.max_delay)
        return ParseResult(Outcome.IGNORE)

    def feed(self, byte: int) -> None:
        if byte in _TERMINATORS:
            self.terminators += 1
        else:
            self.terminators = 0

        state = self.state
        if state is ParseState.ABORT:
            return
        if state is ParseState.METHOD:
            self._read_method(byte)
        elif state is ParseState.URI:
            self._read_uri(byte)
        elif state is ParseState.PROTO:
            if self.terminators == LINE_END:
                self._enter(ParseState.KEY)
        elif state is ParseState.KEY:
            self._read_key(byte)
        elif state is ParseState.VALUE:
            self._read_value(byte)

    # -------------------------------------------------------------------------

    def _enter(self, state: ParseState) -> None:
        self.state = state
        self._token.clear()

    def _append(self, byte: int) -> None:
        if len(self._token) < self.token_limit():
            self._token.append(byte)

    def _text(self) -> str:
        return self._token.decode("latin-1")

    def _abort(self) -> None:
        self.state = ParseState.ABORT
        self.accepted = False
        self.max_delay = 0
        self._token.clear()

    def _read_method(self, byte: int) -> None:
        if byte != _SPACE:
            self._append(byte)
            return
        if self._text() != SEARCH_METHOD:
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug("SSDP ignoring method %r", self._text())
            self._abort()
        else:
            self._enter(ParseState.URI)

    def _read_uri(self, byte: int) -> None:
        if byte != _SPACE:
            self._append(byte)
            return
        if self._text() != SEARCH_URI:
            self._abort()
        else:
            self._enter(ParseState.PROTO)

    def _read_key(self, byte: int) -> None:
        if self.terminators == HEADERS_END:
            self.accepted = True
        elif self.terminators == LINE_END:
            # Header line without a value
            self._token.clear()
        elif byte == _SPACE:
            self.header = classify_header(self._text())
            self._enter(ParseState.VALUE)
        elif byte not in _TERMINATORS and byte != _COLON:
            self._append(byte)

    def _read_value(self, byte: int) -> None:
        if self.terminators == LINE_END:
            self._complete_value(self._text())
        elif byte not in _TERMINATORS:
            self._append(byte)

    def _complete_value(self, value: str) -> None:
        header = self.header
        if header is Header.MAN:
            self.logger.debug("SSDP MAN: %s", value)
        elif header is Header.ST:
            if value.lower() == self.device_type.lower():
                self.accepted = True
            elif value != SEARCH_ALL:
                self.logger.debug("SSDP REJECT: %s", value)
                self._abort()
                return
        elif header is Header.MX:
            self.max_delay = parse_mx(value)
        self.header = Header.OTHER
        self._enter(ParseState.KEY)
