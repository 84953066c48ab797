"""Analytics event schemas.

One event is emitted per processed split (stage "map"). Events are stored to
Parquet with a fixed schema so appends across runs never disagree on types.

This module defines helper constructors and the table schemas, but does not
force strict validation to keep overhead low in large conversions.
"""

from __future__ import annotations
from typing import Dict, Any
import json
import time
import pyarrow as pa

COUNT_KEYS = ("records_read", "mapped_records", "skipped_records", "rejected_records")
PERCENTILES = (50, 90, 99)


def _pct_fields(metric: str):
    return [(f"{metric}_p{p}", pa.float64()) for p in PERCENTILES]


EVENT_SCHEMA = pa.schema(
    [
        ("run_id", pa.string()),
        ("stage", pa.string()),
        ("format", pa.string()),
        ("split_id", pa.string()),
        ("source", pa.string()),
        ("timestamp_ms", pa.int64()),
        ("attempts", pa.int64()),
        *[(k, pa.int64()) for k in COUNT_KEYS],
        *_pct_fields("body_bytes"),
        ("rejection_breakdown", pa.string()),  # JSON object reason_code -> count
    ],
    metadata={"schema_version": "v1"},
)

AGGREGATE_SCHEMA = pa.schema(
    [
        ("run_id", pa.string()),
        ("format", pa.string()),
        ("timestamp_ms", pa.int64()),
        ("splits", pa.int64()),
        *[(k, pa.int64()) for k in COUNT_KEYS],
        *_pct_fields("body_bytes"),
        ("rejection_breakdown", pa.string()),
    ],
    metadata={"schema_version": "v1"},
)


def make_event(
    *,
    run_id: str,
    stage: str,
    fmt: str,
    split_id: str,
    source: str,
    counts: Dict[str, int],
    attempts: int = 1,
    rejection_breakdown: Dict[str, int] | None = None,
) -> Dict[str, Any]:
    ev: Dict[str, Any] = {
        "run_id": run_id,
        "stage": stage,
        "format": fmt,
        "split_id": split_id,
        "source": source,
        "timestamp_ms": int(time.time() * 1000),
        "attempts": int(attempts),
        "rejection_breakdown": json.dumps(rejection_breakdown or {}, sort_keys=True),
    }
    for k in COUNT_KEYS:
        ev[k] = int(counts.get(k, 0))
    return ev
