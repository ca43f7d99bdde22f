"""Parsing and serialisation of SIP messages, with and without an SDP body."""

from __future__ import annotations

import ipaddress
import logging
import re

from .constants import (
    APP_USERAGENT,
    HEADER_CALL_ID,
    HEADER_CONTACT,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_TYPE,
    HEADER_CSEQ,
    HEADER_FROM,
    HEADER_REFER_TO,
    HEADER_REFERRED_BY,
    HEADER_TO,
    HEADER_VIA,
    HEADERS_DELIMITER,
    SDP_CONTENT_TYPE,
    TYPE_INVITE,
    TYPE_REGISTER,
)

logger = logging.getLogger(__name__)

CRLF = HEADERS_DELIMITER
NO_ADDRESS = ("0.0.0.0", 0)

_ALLOW = "INVITE, ACK, CANCEL, OPTIONS, BYE, REFER, NOTIFY, MESSAGE, SUBSCRIBE, INFO"
_VIA_PREFIX = "Via: SIP/2.0/UDP "
_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*[+-]?[0-9]+")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


class SipMessageError(ValueError):
    """Raised when a SIP message cannot be parsed or is incomplete."""


def ipv4_to_address(ip, port):
    """Validate a dotted-quad IPv4 address and return ``(ip, port)``.

    The port is reduced to 16 bits. Raises ValueError for an invalid address.
    """
    if not isinstance(ip, str):
        raise ValueError(f"invalid IPv4 address: {ip!r}")
    try:
        address = ipaddress.IPv4Address(ip)
    except ValueError as exc:
        raise ValueError(f"invalid IPv4 address: {ip!r}") from exc
    return str(address), port & 0xFFFF


def _to_int(text):
    """Parse a leading decimal integer, ignoring anything that follows."""
    match = _INT_PREFIX.match(text)
    if match is None:
        raise SipMessageError(f"not a number: {text!r}")
    value = int(match.group())
    if not _INT_MIN <= value <= _INT_MAX:
        raise SipMessageError(f"number out of range: {text!r}")
    return value


def _terminated_lines(text):
    """Return the CRLF-terminated lines of text; an unterminated tail is dropped."""
    return text.split(CRLF)[:-1]


def _header_value(line, name):
    prefix = f"{name}: "
    return line[len(prefix):] if line.startswith(prefix) else ""


def _extract_number(text):
    start = text.find("sip:") + 4
    if start > len(text):
        raise SipMessageError(f"cannot extract number from {text!r}")
    at = text.find("@")
    return text[start:at] if at >= start else text[start:]


def _extract_tag(line):
    start = line.find("tag=") + 4
    if start > len(line):
        raise SipMessageError(f"cannot extract tag from {line!r}")
    return line[start:]


def _extract_src(line):
    start = line.find(_VIA_PREFIX) + len(_VIA_PREFIX) + 1
    if start > len(line):
        raise SipMessageError(f"malformed Via header: {line!r}")
    colon = line.find(":", start)
    if colon < 0:
        ip, port_text = line[start:], line
    else:
        ip = line[start:colon]
        end = line.find(";", colon)
        port_text = line[colon + 1:] if end < 0 else line[colon + 1:end]
    port = _to_int(port_text)
    try:
        return ipv4_to_address(ip, port)
    except ValueError:
        logger.error("Invalid IP address in Via header: %s", ip)
        return NO_ADDRESS


class SipMessage:
    """A SIP request or response.

    Built from raw text, the message is parsed and validated; built with no
    text, it starts empty and is filled in field by field.
    """

    def __init__(self, message=None):
        self._raw = message if message is not None else ""
        self.type = ""
        self._header = ""
        self._via = ""
        self._from = ""
        self.from_number = ""
        self.from_tag = ""
        self._to = ""
        self.to_number = ""
        self.to_tag = ""
        self.call_id = ""
        self.cseq = ""
        self.contact = ""
        self.contact_number = ""
        self.content_length = ""
        self.content_type = ""
        self.refer_to = ""
        self.refer_to_number = ""
        self.referred_by = ""
        self._replaces = ""
        self.src = NO_ADDRESS
        if message is not None:
            self._parse_headers()

    @property
    def raw(self):
        """The message text as received, with in-place edits applied."""
        return self._raw

    def _replace_in_raw(self, old, new):
        pos = self._raw.find(old)
        if pos < 0:
            raise SipMessageError(f"{old!r} not found in message")
        self._raw = self._raw[:pos] + new + self._raw[pos + len(old):]

    @property
    def header(self):
        return self._header

    @header.setter
    def header(self, value):
        self._replace_in_raw(self._header, value)
        self._header = value

    @property
    def via(self):
        return self._via

    @via.setter
    def via(self, value):
        self._replace_in_raw(self._via, value)
        self._via = value

    @property
    def from_header(self):
        return self._from

    @from_header.setter
    def from_header(self, value):
        self._replace_in_raw(self._from, value)
        self._from = value
        self.from_number = _extract_number(value)

    @property
    def to(self):
        return self._to

    @to.setter
    def to(self, value):
        self._to = value
        self.to_number = _extract_number(value)

    def set_replaces(self, value):
        """Put a Replaces line into the raw message text."""
        pos = self._raw.find(self._replaces)
        if not self._replaces or pos < 0:
            self._raw += value + CRLF
        else:
            self._replace_in_raw(self._replaces, value)
            self._replaces = value

    def _parse_headers(self):
        header, _, rest = self._raw.partition(CRLF)
        self._header = header
        self.type = header.split(" ", 1)[0]
        if self.type == "SIP/2.0":
            self.type = header

        for line in _terminated_lines(rest):
            if HEADER_VIA in line:
                self._via = _header_value(line, HEADER_VIA)
                self.src = _extract_src(line)
            elif HEADER_FROM in line:
                self._from = _header_value(line, HEADER_FROM)
                self.from_number = _extract_number(line)
                self.from_tag = _extract_tag(line)
            elif line.startswith(HEADER_TO):
                self._to = _header_value(line, HEADER_TO)
                self.to_number = _extract_number(line)
                self.to_tag = _extract_tag(line)
            elif HEADER_CALL_ID in line:
                self.call_id = _header_value(line, HEADER_CALL_ID)
            elif HEADER_CSEQ in line:
                self.cseq = _header_value(line, HEADER_CSEQ)
            elif HEADER_CONTACT in line:
                self.contact = _header_value(line, HEADER_CONTACT)
                self.contact_number = _extract_number(line)
            elif HEADER_CONTENT_LENGTH in line:
                self.content_length = _header_value(line, HEADER_CONTENT_LENGTH)
            elif HEADER_REFER_TO in line:
                self.refer_to = _header_value(line, HEADER_REFER_TO)
                self.refer_to_number = _extract_number(line)
            elif HEADER_REFERRED_BY in line:
                self.referred_by = _header_value(line, HEADER_REFERRED_BY)

        if not self.is_valid():
            raise SipMessageError("Invalid message.")

    def is_valid(self):
        """Whether the mandatory headers for this message type are present."""
        if not all((self._via, self._to, self._from, self.call_id, self.cseq)):
            return False
        if self.type in (TYPE_INVITE, TYPE_REGISTER) and not self.contact:
            return False
        return True

    def to_payload(self):
        """Serialise the message headers as wire text."""
        lines = [
            self._header,
            f"{HEADER_VIA}: {self._via}",
            f"{HEADER_FROM}: {self._from}",
            f"{HEADER_TO}: {self._to}",
            f"{HEADER_CALL_ID}: {self.call_id}",
            f"{HEADER_CSEQ}: {self.cseq}",
            f"{HEADER_CONTACT}: {self.contact}",
            f"{HEADER_CONTENT_TYPE}: {self.content_type}",
            "Expires: 60",
            "Max-Forwards: 70",
            f"Allow: {_ALLOW}",
            f"User-Agent: {APP_USERAGENT}",
        ]
        if self.refer_to:
            lines.append(f"{HEADER_REFER_TO}: {self.refer_to}")
        if self.referred_by:
            lines.append(f"{HEADER_REFERRED_BY}: {self.referred_by}")
        lines.append(f"{HEADER_CONTENT_LENGTH}: {self.content_length}")
        return "".join(line + CRLF for line in lines) + CRLF


class SipSdpMessage(SipMessage):
    """A SIP message carrying an SDP body describing an RTP audio stream."""

    def __init__(self, message):
        super().__init__(message)
        self.rtp_host = ""
        self.rtp_port = 0
        self.media_description = ""
        self._parse_sdp()
        self.content_type = ""

    def _parse_sdp(self):
        start = self._raw.find("v=")
        body = self._raw[start:] if start >= 0 else ""
        for line in _terminated_lines(body):
            if "m=" in line:
                self.rtp_port = self._extract_rtp_port(line)
            elif line.startswith("c="):
                self.rtp_host = self._extract_rtp_host(line)
                logger.info("RTP host: %s", self.rtp_host)
            elif "a=rtpmap:" in line and not self.media_description:
                self.media_description = line[line.find("a=rtpmap:") + 2:]
                logger.info("Media description: %s", self.media_description)

    @staticmethod
    def _extract_rtp_port(line):
        rest = line[line.find(" ") + 1:]
        return _to_int(rest.split(" ", 1)[0])

    @staticmethod
    def _extract_rtp_host(line):
        marker = "IN IP4 "
        return line[line.find(marker) + len(marker):]

    def to_payload(self):
        """Serialise the headers followed by this side's SDP answer."""
        sdp_lines = [
            "v=0",
            f"o=Z 0 20528078 IN IP4 {self.rtp_host}",
            "s=Z",
            f"c=IN IP4 {self.rtp_host}",
            "t=0 0",
            f"m=audio {self.rtp_port} RTP/AVP 106 9 98 101 0 8 3",
            "a=rtpmap:106 opus/48000/2",
            "a=fmtp:106 sprop-maxcapturerate=16000; minptime=20; useinbandfec=1",
            "a=rtpmap:98 telephone-event/48000",
            "a=fmtp:98 0-16",
            "a=rtpmap:101 telephone-event/8000",
            "a=fmtp:101 0-16",
            "a=sendrecv",
            "a=rtcp-mux",
        ]
        body = "".join(line + CRLF for line in sdp_lines)
        self.content_type = SDP_CONTENT_TYPE
        self.content_length = str(len(body.encode("utf-8")))
        return super().to_payload() + body