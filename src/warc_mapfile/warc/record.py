"""Parsed WARC records.

A WarcRecord is the parsed form of one RawRecord: its version line, the ordered
header fields and the body bytes. Provenance (source file, offset, source group)
rides along but does not take part in equality, so a record re-parsed from its
serialized value compares equal to the original.

Header names and values are decoded with `surrogateescape`, which makes
parse -> serialize lossless even for non-UTF-8 header bytes.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from ..errors import MalformedRecordError
from ..formats.base import CorpusFormat

_ENC = "utf-8"
_ERRORS = "surrogateescape"
CRLF = b"\r\n"


def _decode(b: bytes) -> str:
    return b.decode(_ENC, _ERRORS)


def _encode(s: str) -> bytes:
    return s.encode(_ENC, _ERRORS)


@dataclass(frozen=True)
class WarcRecord:
    version: str
    headers: Tuple[Tuple[str, str], ...]
    body: bytes
    source: Optional[str] = field(default=None, compare=False)
    offset: Optional[int] = field(default=None, compare=False)
    group: Optional[str] = field(default=None, compare=False)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of header `name` (case-insensitive)."""
        lname = name.lower()
        for k, v in self.headers:
            if k.lower() == lname:
                return v
        return default

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    @property
    def record_type(self) -> Optional[str]:
        return self.get("WARC-Type")

    @property
    def record_id(self) -> Optional[str]:
        return self.get("WARC-Record-ID")

    @property
    def target_uri(self) -> Optional[str]:
        return self.get("WARC-Target-URI")

    @property
    def content_type(self) -> Optional[str]:
        return self.get("Content-Type")

    @property
    def content_length(self) -> int:
        return len(self.body)

    def identifier(self, fmt: CorpusFormat) -> Optional[str]:
        return self.get(fmt.id_header)

    def date(self, fmt: CorpusFormat) -> Optional[datetime]:
        return fmt.parse_date(self.get(fmt.date_header))

    def to_bytes(self, terminator: bytes = b"\r\n\r\n") -> bytes:
        """Canonical serialization: CRLF header lines, empty line, body, terminator."""
        parts = [_encode(self.version), CRLF]
        for k, v in self.headers:
            parts.append(_encode(k))
            parts.append(b": ")
            parts.append(_encode(v))
            parts.append(CRLF)
        parts.append(CRLF)
        parts.append(self.body)
        parts.append(terminator)
        return b"".join(parts)


def parse_headers(block: bytes, *, source: Optional[str] = None, offset: Optional[int] = None) -> Tuple[Tuple[str, str], ...]:
    """Parse a header block into ordered (name, value) pairs.

    Lines starting with whitespace continue the previous field.
    """
    headers = []
    for line in block.split(b"\n"):
        line = line.rstrip(b"\r")
        if not line:
            continue
        if line[:1] in (b" ", b"\t"):
            if not headers:
                raise MalformedRecordError(
                    "header block starts with a continuation line",
                    source, offset, "BAD_HEADER_LINE",
                )
            name, value = headers[-1]
            headers[-1] = (name, f"{value} {_decode(line.strip())}".strip())
            continue
        name, sep, value = line.partition(b":")
        name = name.strip()
        if not sep or not name:
            raise MalformedRecordError(
                f"invalid header line {line[:80]!r}",
                source, offset, "BAD_HEADER_LINE",
            )
        headers.append((_decode(name), _decode(value.strip())))
    return tuple(headers)
