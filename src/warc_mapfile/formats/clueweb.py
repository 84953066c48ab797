"""ClueWeb corpus formats.

ClueWeb09 ships WARC/0.18 records, ClueWeb12 ships WARC/1.0 records. Both carry the
TREC document id in `WARC-TREC-ID`; only `response` records hold documents.
"""

from __future__ import annotations
from .base import CorpusFormat

CLUEWEB09 = CorpusFormat(
    name="clueweb09",
    version="WARC/0.18",
    terminator=b"\n\n",
    required_headers=("WARC-Type", "Content-Length"),
    date_formats=("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%SZ"),
    description="ClueWeb09 (WARC/0.18)",
)

CLUEWEB12 = CorpusFormat(
    name="clueweb12",
    version="WARC/1.0",
    terminator=b"\r\n\r\n",
    required_headers=("WARC-Type", "WARC-Date", "Content-Length"),
    date_formats=("%Y-%m-%dT%H:%M:%SZ",),
    description="ClueWeb12 (WARC/1.0)",
)
