"""WARC record reader.

One splitting routine serves every protocol version; the CorpusFormat descriptor
supplies the version line and terminator. Per record:

1. scan for a line starting with `WARC/` (bytes before the first one are ignored)
2. check the version line against the descriptor
3. read header lines up to the first empty line
4. take `Content-Length` body bytes and require the terminator right after them

Any violation raises MalformedRecordError with a reason code:
VERSION_MISMATCH, UNTERMINATED, HEADER_TOO_LARGE, MISSING_CONTENT_LENGTH,
BAD_CONTENT_LENGTH, LENGTH_MISMATCH (splitting) and BAD_HEADER_LINE,
MISSING_HEADER (parsing).

Error policy is the caller's: without `on_error` the first error propagates; with it
the callback sees the error (and may re-raise) and scanning resumes at the next
record marker.
"""

from __future__ import annotations
import io
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from ..errors import MalformedRecordError
from ..formats.base import RECORD_MARKER, CorpusFormat
from .record import WarcRecord, parse_headers
from .scanner import ByteScanner
from .splits import Split, open_split

log = logging.getLogger("warc_mapfile.warc.reader")

MAX_HEADER_BYTES = 256 * 1024

_LINE_MARKER = b"\n" + RECORD_MARKER
_CONTENT_LENGTH_RE = re.compile(rb"^content-length[ \t]*:[ \t]*(\S*)[ \t]*\r?$", re.IGNORECASE | re.MULTILINE)

ErrorHandler = Callable[[MalformedRecordError], None]


@dataclass(frozen=True)
class RawRecord:
    source: str
    offset: int          # absolute offset of the version line
    length: int          # bytes from the version line through the terminator
    version: bytes
    header_block: bytes
    body: bytes


def _read_record(scanner: ByteScanner, fmt: CorpusFormat, source: str, max_header: int) -> RawRecord:
    # scanner.offset sits on the newline preceding the record
    offset = scanner.offset + 1
    term = fmt.terminator

    def fail(message: str, reason: str) -> MalformedRecordError:
        return MalformedRecordError(message, source, offset, reason)

    eol = scanner.find(b"\n", 1, limit=max_header)
    if eol < 0:
        raise fail("record has no terminator before end of input", "UNTERMINATED")
    version = scanner.view(1, eol).rstrip(b"\r")
    if version != fmt.version_line:
        raise fail(f"unrecognized version tag {version[:32]!r}, expected {fmt.version!r}", "VERSION_MISMATCH")

    header_start = pos = eol + 1
    while True:
        nl = scanner.find(b"\n", pos, limit=max_header)
        if nl < 0:
            if len(scanner) >= max_header:
                raise fail(f"header block exceeds {max_header} bytes", "HEADER_TOO_LARGE")
            raise fail("record has no terminator before end of input", "UNTERMINATED")
        if scanner.view(pos, nl) in (b"", b"\r"):
            header_end, body_start = pos, nl + 1
            break
        pos = nl + 1

    header_block = scanner.view(header_start, header_end)
    m = _CONTENT_LENGTH_RE.search(header_block)
    if m is None:
        raise fail("missing Content-Length header", "MISSING_CONTENT_LENGTH")
    try:
        declared = int(m.group(1))
    except ValueError:
        declared = -1
    if declared < 0:
        raise fail(f"invalid Content-Length {m.group(1)[:32]!r}", "BAD_CONTENT_LENGTH")

    body_end = body_start + declared
    available = scanner.ensure(body_end + len(term))
    if available < body_end + len(term):
        tail = scanner.view(body_start, available)
        if tail.endswith(term):
            raise fail(
                f"declared Content-Length {declared} but body spans {len(tail) - len(term)} bytes",
                "LENGTH_MISMATCH",
            )
        raise fail(
            f"record has no terminator before end of input (declared Content-Length {declared})",
            "UNTERMINATED",
        )
    if scanner.view(body_end, body_end + len(term)) != term:
        raise fail(
            f"declared Content-Length {declared} does not match the record body span",
            "LENGTH_MISMATCH",
        )

    return RawRecord(
        source=source,
        offset=offset,
        length=body_end + len(term) - 1,
        version=version,
        header_block=header_block,
        body=scanner.view(body_start, body_end),
    )


def iter_raw_records(
    scanner: ByteScanner,
    fmt: CorpusFormat,
    *,
    source: str,
    end: Optional[int] = None,
    on_error: Optional[ErrorHandler] = None,
    max_header: int = MAX_HEADER_BYTES,
) -> Iterator[RawRecord]:
    """Split a byte stream into raw records.

    `scanner` must be positioned on a newline (or a virtual one at file start) so
    that a record starting at its first real byte is recognised. Records whose start
    offset is at or beyond `end` belong to the next split and are not yielded.
    """
    while scanner.seek(_LINE_MARKER):
        if end is not None and scanner.offset + 1 >= end:
            return
        try:
            raw = _read_record(scanner, fmt, source, max_header)
        except MalformedRecordError as e:
            if on_error is None:
                raise
            on_error(e)
            # step past this marker; the next seek finds the following record
            scanner.consume(1)
            continue
        # keep the terminator's final newline for the next marker match
        scanner.consume(raw.length)
        yield raw


def parse_record(raw: RawRecord, fmt: CorpusFormat, group: Optional[str] = None) -> WarcRecord:
    """Parse a raw record's header block into a WarcRecord."""
    headers = parse_headers(raw.header_block, source=raw.source, offset=raw.offset)
    record = WarcRecord(
        version=raw.version.decode("ascii", "replace"),
        headers=headers,
        body=raw.body,
        source=raw.source,
        offset=raw.offset,
        group=group,
    )
    for name in fmt.required_headers:
        if record.get(name) is None:
            raise MalformedRecordError(f"missing required header {name}", raw.source, raw.offset, "MISSING_HEADER")
    return record


def _records(raws: Iterator[RawRecord], fmt: CorpusFormat, group: Optional[str], on_error: Optional[ErrorHandler]) -> Iterator[WarcRecord]:
    for raw in raws:
        try:
            yield parse_record(raw, fmt, group=group)
        except MalformedRecordError as e:
            if on_error is None:
                raise
            on_error(e)


def _split_scanner(split: Split, stream) -> ByteScanner:
    if split.start:
        return ByteScanner(stream, split.start - 1)
    return ByteScanner(stream, 0, prefix=b"\n")


def read_split(split: Split, *, fmt: CorpusFormat, on_error: Optional[ErrorHandler] = None) -> Iterator[WarcRecord]:
    """Lazily read and parse every record owned by `split`."""
    with open_split(split) as stream:
        scanner = _split_scanner(split, stream)
        raws = iter_raw_records(scanner, fmt, source=split.path, end=split.end, on_error=on_error)
        yield from _records(raws, fmt, split.group, on_error)


def read_bytes(data: bytes, fmt: CorpusFormat, *, source: str = "<bytes>", on_error: Optional[ErrorHandler] = None) -> Iterator[WarcRecord]:
    """Parse records from an in-memory buffer."""
    scanner = ByteScanner(io.BytesIO(data), 0, prefix=b"\n")
    raws = iter_raw_records(scanner, fmt, source=source, on_error=on_error)
    yield from _records(raws, fmt, None, on_error)


class WarcRecordReader:
    """Restartable record sequence over one split: every iteration reopens the file."""

    def __init__(self, split: Split, fmt: CorpusFormat, on_error: Optional[ErrorHandler] = None):
        self.split = split
        self.fmt = fmt
        self.on_error = on_error

    def __iter__(self) -> Iterator[WarcRecord]:
        return read_split(self.split, fmt=self.fmt, on_error=self.on_error)

    def raw_records(self) -> Iterator[RawRecord]:
        with open_split(self.split) as stream:
            scanner = _split_scanner(self.split, stream)
            yield from iter_raw_records(
                scanner, self.fmt, source=self.split.path, end=self.split.end, on_error=self.on_error
            )


def record_starts(path: str, fmt: CorpusFormat) -> Iterator[int]:
    """Offsets of every record a sequential read of `path` accepts.

    Byte-range splits are cut only at these offsets: a split that started inside a
    record body could take a WARC record embedded in that body for a real one.
    Malformed records are skipped here; they surface when the owning split is read.
    """
    def defer(err: MalformedRecordError) -> None:
        log.debug(f"Pre-scan passed over malformed record: {err}")

    with open(path, "rb") as stream:
        scanner = ByteScanner(stream, 0, prefix=b"\n")
        for raw in iter_raw_records(scanner, fmt, source=path, on_error=defer):
            yield raw.offset
