"""Split worker: read -> parse -> map -> sort -> spill.

`run_split` is a plain module-level function so process pools and Ray can ship it.
Each attempt first removes run files left by an earlier attempt of the same split and
writes every run through tmp + rename, so a retried split produces exactly the files
a first attempt would have.
"""

from __future__ import annotations
import glob
import logging
import os
from typing import List, Tuple

from ..config import ON_MALFORMED_SKIP
from ..errors import MalformedRecordError
from ..store.codec import write_run
from .context import MAX_BODY_SAMPLES, SplitResult, SplitTask

log = logging.getLogger("warc_mapfile.worker")


def run_path(runs_dir: str, split_id: str, n: int) -> str:
    return os.path.join(runs_dir, f"{split_id}-{n:05d}.run")


def clear_runs(runs_dir: str, split_id: str) -> None:
    for p in glob.glob(os.path.join(runs_dir, f"{split_id}-*.run*")):
        os.remove(p)


def run_split(task: SplitTask) -> SplitResult:
    split = task.split
    result = SplitResult(split_id=split.split_id)
    os.makedirs(task.runs_dir, exist_ok=True)
    clear_runs(task.runs_dir, split.split_id)

    skip = task.on_malformed == ON_MALFORMED_SKIP
    counts = result.counts

    def reject(err: MalformedRecordError) -> None:
        if not skip:
            raise err
        counts["rejected_records"] += 1
        result.rejection_breakdown[err.reason] = result.rejection_breakdown.get(err.reason, 0) + 1
        result.rejections.append(
            {
                "split_id": split.split_id,
                "source": err.source,
                "offset": err.offset,
                "reason": err.reason,
                "message": err.message,
            }
        )
        log.warning(f"Rejected record: {err} [{err.reason}]")

    buf: List[Tuple[bytes, bytes]] = []

    def spill() -> None:
        if not buf:
            return
        buf.sort(key=lambda kv: kv[0])
        path = run_path(task.runs_dir, split.split_id, len(result.run_paths))
        write_run(path, buf)
        result.run_paths.append(path)
        buf.clear()

    fmt = task.strategy.format
    for record in task.strategy.read(split, on_error=reject):
        counts["records_read"] += 1
        if not fmt.is_mapped(record.record_type):
            counts["skipped_records"] += 1
            continue
        try:
            entry = task.strategy.map(record, task.prefix, policy=task.key_policy)
        except MalformedRecordError as e:
            reject(e)
            continue
        buf.append((entry.key_bytes, entry.value))
        counts["mapped_records"] += 1
        if len(result.body_sizes) < MAX_BODY_SAMPLES:
            result.body_sizes.append(len(record.body))
        if len(buf) >= task.run_entries:
            spill()
    spill()

    log.info(
        f"Split {split.split_id} ({os.path.basename(split.path)}@{split.start}) done: "
        f"read={counts['records_read']} mapped={counts['mapped_records']} "
        f"skipped={counts['skipped_records']} rejected={counts['rejected_records']} runs={len(result.run_paths)}"
    )
    return result
