"""Analytics sink.

Two storage layers under `<work_dir>/analytics/`:
1) Raw events (append-only Parquet): `events.parquet`, one row per processed split
2) Aggregates (append-only Parquet): `aggregates.parquet`, one row per run flush

Body-size percentiles (p50/p90/p99) are computed with numpy from the samples each
split reports; the aggregate row uses the samples of every split seen in this process.
Both files use the fixed schemas from `analytics.schemas`.
"""

from __future__ import annotations
from typing import Dict, Any, List, Sequence
import json
import os
import time
import logging
import numpy as np
import pyarrow as pa
import pyarrow.parquet as pq

from .schemas import AGGREGATE_SCHEMA, COUNT_KEYS, EVENT_SCHEMA, PERCENTILES

log = logging.getLogger("warc_mapfile.analytics")


def _percentiles(xs: Sequence[float], metric: str) -> Dict[str, float | None]:
    if not len(xs):
        return {f"{metric}_p{p}": None for p in PERCENTILES}
    arr = np.asarray(xs, dtype=np.float64)
    return {f"{metric}_p{p}": float(np.percentile(arr, p)) for p in PERCENTILES}


class AnalyticsSink:
    def __init__(self, work_dir: str, run_id: str, fmt: str = ""):
        self.run_id = run_id
        self.fmt = fmt
        self.out_dir = os.path.join(work_dir, "analytics")
        os.makedirs(self.out_dir, exist_ok=True)
        self.events_path = os.path.join(self.out_dir, "events.parquet")
        self.aggregates_path = os.path.join(self.out_dir, "aggregates.parquet")

        self._pending: List[Dict[str, Any]] = []
        self._samples: List[int] = []
        self._totals = {k: 0 for k in COUNT_KEYS}
        self._breakdown: Dict[str, int] = {}
        self._splits = 0

    def emit(self, event: Dict[str, Any], body_sizes: Sequence[int] = ()) -> None:
        """Queue one split event; `body_sizes` feeds the percentile columns."""
        row = dict(event)
        row.update(_percentiles(body_sizes, "body_bytes"))
        self._pending.append(row)

        self._samples.extend(int(x) for x in body_sizes)
        self._splits += 1
        for k in COUNT_KEYS:
            self._totals[k] += int(event.get(k, 0))
        for reason, n in json.loads(event.get("rejection_breakdown") or "{}").items():
            self._breakdown[reason] = self._breakdown.get(reason, 0) + int(n)

    def flush(self) -> None:
        """Append queued events and one aggregate row for this run."""
        if self._pending:
            self._append_parquet(self.events_path, self._pending, EVENT_SCHEMA)
            self._pending = []
        if not self._splits:
            return
        agg: Dict[str, Any] = {
            "run_id": self.run_id,
            "format": self.fmt,
            "timestamp_ms": int(time.time() * 1000),
            "splits": self._splits,
            "rejection_breakdown": json.dumps(self._breakdown, sort_keys=True),
        }
        agg.update(self._totals)
        agg.update(_percentiles(self._samples, "body_bytes"))
        self._append_parquet(self.aggregates_path, [agg], AGGREGATE_SCHEMA)
        log.info(
            f"Analytics: splits={self._splits} read={self._totals['records_read']} "
            f"mapped={self._totals['mapped_records']} skipped={self._totals['skipped_records']} "
            f"rejected={self._totals['rejected_records']}"
        )

    def _append_parquet(self, path: str, rows: List[Dict[str, Any]], schema: pa.Schema) -> None:
        table = pa.Table.from_pylist(rows, schema=schema)
        if os.path.exists(path) and os.path.getsize(path) > 0:
            existing = pq.read_table(path).cast(schema)
            table = pa.concat_tables([existing, table])
        tmp = path + ".tmp"
        pq.write_table(table, tmp, compression="zstd")
        os.replace(tmp, path)
