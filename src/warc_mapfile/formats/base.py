"""Corpus format descriptors.

A corpus format is a small immutable description of one WARC protocol variant.
One shared splitting routine (`warc_mapfile.warc.reader`) consumes it; formats
differ only in:
- the version line that starts a record (e.g. `WARC/1.0`)
- the byte sequence terminating a record after its body
- the header vocabulary (required fields, identifier field)
- the date formats used in `WARC-Date`
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

RECORD_MARKER = b"WARC/"


@dataclass(frozen=True)
class CorpusFormat:
    name: str
    version: str                       # version line, e.g. "WARC/1.0"
    terminator: bytes                  # bytes following the record body
    id_header: str = "WARC-TREC-ID"    # canonical identifier used for keys
    uri_header: str = "WARC-Target-URI"
    date_header: str = "WARC-Date"
    required_headers: Tuple[str, ...] = ("WARC-Type", "Content-Length")
    date_formats: Tuple[str, ...] = ()
    mapped_record_types: Tuple[str, ...] = ("response",)
    description: str = ""

    def __post_init__(self) -> None:
        # the splitter resumes scanning on the terminator's final newline
        if not self.terminator.endswith(b"\n"):
            raise ValueError(f"Format {self.name}: terminator must end with a newline")
        if not self.version.startswith(RECORD_MARKER.decode("ascii")):
            raise ValueError(f"Format {self.name}: version must start with {RECORD_MARKER!r}")

    @property
    def version_line(self) -> bytes:
        return self.version.encode("ascii")

    def parse_date(self, value: Optional[str]) -> Optional[datetime]:
        """Parse a WARC-Date value; None when absent or not in a known format.

        ClueWeb09 is known to carry impossible dates, so this never raises.
        """
        if not value:
            return None
        for fmt in self.date_formats:
            try:
                return datetime.strptime(value.strip(), fmt)
            except ValueError:
                continue
        return None

    def is_mapped(self, record_type: Optional[str]) -> bool:
        return (record_type or "").lower() in self.mapped_record_types
