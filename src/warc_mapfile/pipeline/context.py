"""Pipeline data model.

SplitTask is the immutable unit of work handed to a worker: the split, the resolved
format strategy and every setting that shapes keys and values. It must stay
picklable, since process pools and Ray ship it to other processes.

SplitResult is what a worker hands back. Only a finished result is checkpointed, so
the driver never sees a half-written split.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..formats.registry import FormatStrategy
from ..mapper.keys import KeyPolicy
from ..warc.splits import Split

# body sizes kept per split for percentile analytics
MAX_BODY_SAMPLES = 10_000


@dataclass(frozen=True)
class SplitTask:
    split: Split
    strategy: FormatStrategy
    prefix: str
    key_policy: KeyPolicy
    on_malformed: str
    runs_dir: str
    run_entries: int = 100_000

    @property
    def split_id(self) -> str:
        return self.split.split_id


def empty_counts() -> Dict[str, int]:
    return {"records_read": 0, "mapped_records": 0, "skipped_records": 0, "rejected_records": 0}


@dataclass
class SplitResult:
    split_id: str
    run_paths: List[str] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=empty_counts)
    rejection_breakdown: Dict[str, int] = field(default_factory=dict)
    rejections: List[Dict[str, Any]] = field(default_factory=list)
    body_sizes: List[int] = field(default_factory=list)
    attempts: int = 1

    def to_checkpoint(self) -> Dict[str, Any]:
        return {
            "run_paths": list(self.run_paths),
            "counts": dict(self.counts),
            "rejection_breakdown": dict(self.rejection_breakdown),
            "attempts": self.attempts,
        }

    @classmethod
    def from_checkpoint(cls, split_id: str, state: Dict[str, Any]) -> "SplitResult":
        counts = empty_counts()
        counts.update(state.get("counts") or {})
        return cls(
            split_id=split_id,
            run_paths=list(state.get("run_paths") or []),
            counts=counts,
            rejection_breakdown=dict(state.get("rejection_breakdown") or {}),
            attempts=int(state.get("attempts", 1)),
        )
