"""WARC record -> (key, value) mapper.

Deterministic and idempotent: the same record, prefix and key policy always give the
same key and the same value bytes, so a retried split reproduces its output exactly.

The value is the record in canonical byte form (see `WarcRecord.to_bytes`);
`parse_value` turns it back into a WarcRecord with identical headers and body.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from ..errors import MalformedRecordError
from ..formats.base import CorpusFormat
from ..warc.reader import read_bytes
from ..warc.record import WarcRecord
from .keys import KeyPolicy, make_key


@dataclass(frozen=True)
class MappedEntry:
    key: str
    value: bytes

    @property
    def key_bytes(self) -> bytes:
        return self.key.encode("utf-8")


def map_record(
    record: WarcRecord,
    prefix: str,
    *,
    fmt: CorpusFormat,
    policy: Optional[KeyPolicy] = None,
) -> MappedEntry:
    """Derive the store entry for one parsed record.

    Raises MissingIdentifierError when the format's identifier header is absent.
    """
    key = make_key(
        record.identifier(fmt),
        prefix,
        policy=policy or KeyPolicy(),
        group=record.group,
        source=record.source,
        offset=record.offset,
    )
    return MappedEntry(key=key, value=record.to_bytes(fmt.terminator))


def parse_value(value: bytes, fmt: CorpusFormat) -> WarcRecord:
    """Inverse of the value encoding: exactly one record."""
    records = list(read_bytes(value, fmt, source="<value>"))
    if len(records) != 1:
        raise MalformedRecordError(f"stored value holds {len(records)} records, expected 1", "<value>", 0, "BAD_VALUE")
    return records[0]
