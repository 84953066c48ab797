"""K-way merge of sorted run files.

Phase 1 (workers) leaves every split as one or more sorted run files. Phase 2 merges
them with a heap. When there are more runs than `fan_in`, intermediate passes merge
groups of runs into larger runs first so the number of open files stays bounded.

Equal keys are kept side by side in the merged stream; the store writer rejects them.
"""

from __future__ import annotations
import heapq
import logging
import os
from operator import itemgetter
from typing import Iterator, List, Sequence

from ..store.codec import Entry, iter_run, write_run

log = logging.getLogger("warc_mapfile.merge")

DEFAULT_FAN_IN = 256


def merge_sorted(paths: Sequence[str]) -> Iterator[Entry]:
    return heapq.merge(*(iter_run(p) for p in paths), key=itemgetter(0))


def merge_runs(paths: Sequence[str], tmp_dir: str, fan_in: int = DEFAULT_FAN_IN) -> Iterator[Entry]:
    """Yield all entries of `paths` in key order."""
    if fan_in < 2:
        raise ValueError(f"fan_in must be >= 2, got {fan_in}")
    runs: List[str] = list(paths)
    level = 0
    while len(runs) > fan_in:
        os.makedirs(tmp_dir, exist_ok=True)
        log.info(f"Merge pass {level}: {len(runs)} runs, fan-in {fan_in}")
        merged: List[str] = []
        for i in range(0, len(runs), fan_in):
            out = os.path.join(tmp_dir, f"merge-{level:02d}-{i // fan_in:05d}.run")
            write_run(out, merge_sorted(runs[i : i + fan_in]))
            merged.append(out)
        if level > 0:
            for p in runs:
                os.remove(p)
        runs = merged
        level += 1
    yield from merge_sorted(runs)
