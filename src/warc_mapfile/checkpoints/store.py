"""Checkpoint store.

Purpose:
- allow long conversions to resume after crashes/restarts
- remember which splits already produced their sorted run files
- never mix outputs of different configurations (fingerprint check)

A split is recorded only after all its run files are in place, so a recorded split
never has to be recomputed. Completed splits whose run files vanished are dropped on
load and simply run again.

Checkpoint schema (JSON):
{
  "run_id": "...",
  "fingerprint": "<sha256>",
  "updated_at_ms": 123,
  "start_time_ms": 123,
  "resume_mode": "auto" | "beginning",
  "splits": {
    "00000": {
      "run_paths": ["<work>/runs/00000-00000.run"],
      "counts": {"records_read": 10, "mapped_records": 9, ...},
      "rejection_breakdown": {"LENGTH_MISMATCH": 1},
      "attempts": 1
    }
  }
}
"""

from __future__ import annotations
from typing import Dict, Any, Optional
import os, json, time
import logging

log = logging.getLogger("warc_mapfile.checkpoints")


class CheckpointStore:
    """Per-run checkpoint with resume mode support."""

    RESUME_MODES = {"auto", "beginning"}

    def __init__(self, work_dir: str, run_id: str):
        """
        Initialize checkpoint store.

        Args:
            work_dir: Run work directory (checkpoints go to work_dir/checkpoints)
            run_id: Run identifier
        """
        self.run_id = run_id
        self.checkpoint_dir = os.path.join(work_dir, "checkpoints")
        self.path = os.path.join(self.checkpoint_dir, f"{run_id}.json")
        os.makedirs(self.checkpoint_dir, exist_ok=True)

    def _fresh(self, resume_mode: str, fingerprint: Optional[str]) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "fingerprint": fingerprint,
            "start_time_ms": int(time.time() * 1000),
            "resume_mode": resume_mode,
            "splits": {},
        }

    def load(self, resume_mode: str = "auto", fingerprint: Optional[str] = None) -> Dict[str, Any]:
        """
        Load checkpoint state.

        Args:
            resume_mode: How to resume:
                - "auto": Use the existing checkpoint if its fingerprint matches, otherwise start fresh
                - "beginning": Ignore any existing checkpoint
            fingerprint: Fingerprint of the current run configuration and inputs

        Returns:
            Checkpoint state dictionary
        """
        if resume_mode not in self.RESUME_MODES:
            raise ValueError(f"Unknown resume mode: {resume_mode}")
        if resume_mode == "beginning" or not os.path.exists(self.path):
            return self._fresh(resume_mode, fingerprint)

        with open(self.path, "r", encoding="utf-8") as f:
            state = json.load(f)
        if state.get("fingerprint") != fingerprint:
            log.info(f"Checkpoint {self.path} belongs to a different configuration or input; starting fresh")
            return self._fresh(resume_mode, fingerprint)

        splits = state.setdefault("splits", {})
        for split_id in list(splits):
            runs = splits[split_id].get("run_paths") or []
            if not all(os.path.exists(p) for p in runs):
                log.warning(f"Checkpointed split {split_id} lost its run files; it will be reprocessed")
                del splits[split_id]
        state["resume_mode"] = resume_mode
        return state

    def save(self, state: Dict[str, Any]) -> None:
        """Save checkpoint state."""
        state["updated_at_ms"] = int(time.time() * 1000)
        if "run_id" not in state:
            state["run_id"] = self.run_id

        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)

    def clear(self) -> None:
        """Remove the checkpoint once its run has been published."""
        if os.path.exists(self.path):
            os.remove(self.path)
