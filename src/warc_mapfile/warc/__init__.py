"""WARC record splitting, parsing and input splits."""

from .reader import RawRecord, WarcRecordReader, iter_raw_records, parse_record, read_bytes, read_split
from .record import WarcRecord
from .splits import Split, iter_splits, list_splits

__all__ = [
    "RawRecord",
    "WarcRecord",
    "WarcRecordReader",
    "iter_raw_records",
    "parse_record",
    "read_bytes",
    "read_split",
    "Split",
    "iter_splits",
    "list_splits",
]
