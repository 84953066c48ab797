"""Store build runner.

This module is the entrypoint for a conversion job:

1. resolve the corpus format (unknown names fail before anything is created)
2. validate settings and paths, enumerate splits
3. run every split not already in the checkpoint (local or Ray), checkpointing each
   finished split together with its analytics and rejections
4. completeness barrier: every split must have a result
5. k-way merge of all run files into a store written under `<work_dir>/staging`
6. atomic rename of the finished store to the output path
7. cleanup of runs and checkpoint, manifest + analytics flush

Work dir layout (`<output>.work` unless configured):
    runs/ checkpoints/ analytics/ rejections/ manifests/ staging/
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import os
import shutil
import time
import logging

from ..analytics.schemas import make_event
from ..analytics.sink import AnalyticsSink
from ..checkpoints.store import CheckpointStore
from ..config import BuildConfig
from ..errors import ArgumentError, MapFileError, WorkerFailure
from ..formats.registry import FormatRegistry, FormatStrategy, resolve
from ..store.writer import publish_store, write_store
from ..utils.fingerprint import run_fingerprint
from ..warc.splits import Split, list_splits
from .artifacts import append_jsonl, write_manifest
from .context import SplitResult, SplitTask, empty_counts
from .executor import Runner, execute_local
from .merge import merge_runs
from .worker import run_split

log = logging.getLogger("warc_mapfile.build")


@dataclass
class BuildResult:
    run_id: str
    output: str
    entries: int
    splits: int
    counts: Dict[str, int] = field(default_factory=empty_counts)
    rejection_breakdown: Dict[str, int] = field(default_factory=dict)
    resumed_splits: int = 0
    manifest_path: Optional[str] = None


def preflight(cfg: BuildConfig, registry: Optional[FormatRegistry] = None) -> List[Split]:
    """Check input and output paths and enumerate splits. Creates nothing."""
    strategy = resolve(cfg.format, registry)
    if not os.path.exists(cfg.input_path) and not any(ch in cfg.input_path for ch in "*?["):
        raise ArgumentError(f"Input path does not exist: {cfg.input_path}")
    splits = list_splits(cfg.input_path, cfg.split_size, strategy.format)
    if not splits:
        raise ArgumentError(f"No WARC files (*.warc, *.warc.gz) found under: {cfg.input_path}")
    if os.path.exists(cfg.output):
        raise ArgumentError(f"Output path already exists: {cfg.output}")
    return splits


def _work_dirs(work_dir: str) -> Dict[str, str]:
    dirs = {name: os.path.join(work_dir, name) for name in ("runs", "checkpoints", "analytics", "rejections", "manifests")}
    dirs["staging"] = os.path.join(work_dir, "staging")
    return dirs


def _store_metadata(cfg: BuildConfig, strategy: FormatStrategy) -> Dict[str, Any]:
    policy = cfg.key_policy()
    return {
        "corpus_format": strategy.name,
        "corpus_version": strategy.format.version,
        "prefix": cfg.prefix,
        "key_scope": policy.scope.value,
        "key_separator": policy.separator,
        "key_style": policy.style.value,
    }


def _totals(done: Dict[str, Dict[str, Any]]):
    counts = empty_counts()
    breakdown: Dict[str, int] = {}
    for s in done.values():
        for k, v in (s.get("counts") or {}).items():
            counts[k] = counts.get(k, 0) + int(v)
        for reason, n in (s.get("rejection_breakdown") or {}).items():
            breakdown[reason] = breakdown.get(reason, 0) + int(n)
    return counts, breakdown


def _execute(cfg: BuildConfig, tasks: List[SplitTask], runner: Runner, on_result) -> None:
    if not tasks:
        return
    try:
        if cfg.mode == "ray":
            from .ray_build import execute_ray
            execute_ray(
                tasks,
                runner,
                address=cfg.ray_address,
                max_retries=cfg.max_retries,
                split_timeout=cfg.split_timeout,
                on_result=on_result,
                progress=cfg.progress,
            )
        else:
            execute_local(
                tasks,
                runner,
                workers=cfg.workers,
                max_retries=cfg.max_retries,
                split_timeout=cfg.split_timeout,
                on_result=on_result,
                progress=cfg.progress,
            )
    except MapFileError:
        raise
    except Exception as e:
        raise WorkerFailure(f"Split execution failed: {e!r}") from e


def build(
    cfg: BuildConfig,
    *,
    splits: Optional[List[Split]] = None,
    runner: Runner = run_split,
    registry: Optional[FormatRegistry] = None,
) -> BuildResult:
    strategy = resolve(cfg.format, registry)
    cfg.validate()
    if splits is None:
        splits = preflight(cfg, registry)
    elif os.path.exists(cfg.output):
        raise ArgumentError(f"Output path already exists: {cfg.output}")

    run_id = cfg.run_id
    work_dir = cfg.resolved_work_dir()
    dirs = _work_dirs(work_dir)
    start_ms = int(time.time() * 1000)

    log.info(
        f"Run {run_id}: format={strategy.name} input={cfg.input_path} output={cfg.output} "
        f"splits={len(splits)} mode={cfg.mode} workers={cfg.workers}"
    )
    log.info(f"Malformed-record policy: {cfg.on_malformed}")
    log.info(f"Work dir: {work_dir}")

    for d in dirs.values():
        if d != dirs["staging"]:
            os.makedirs(d, exist_ok=True)

    sink = AnalyticsSink(work_dir=work_dir, run_id=run_id, fmt=strategy.name)
    ckpt = CheckpointStore(work_dir=work_dir, run_id=run_id)
    fingerprint = run_fingerprint(cfg.fingerprint_dict(), splits)
    state = ckpt.load(cfg.resume, fingerprint)
    done: Dict[str, Dict[str, Any]] = state["splits"]
    resumed = sum(1 for s in splits if s.split_id in done)
    if resumed:
        log.info(f"Resuming: {resumed}/{len(splits)} split(s) already completed")
    ckpt.save(state)

    policy = cfg.key_policy()
    tasks = [
        SplitTask(
            split=s,
            strategy=strategy,
            prefix=cfg.prefix,
            key_policy=policy,
            on_malformed=cfg.on_malformed,
            runs_dir=dirs["runs"],
            run_entries=cfg.run_entries,
        )
        for s in splits
        if s.split_id not in done
    ]
    by_id = {s.split_id: s for s in splits}
    rejections_path = os.path.join(dirs["rejections"], "rejections.jsonl")
    manifest_path = os.path.join(dirs["manifests"], f"{run_id}.json")

    def on_result(result: SplitResult) -> None:
        split = by_id[result.split_id]
        append_jsonl(rejections_path, result.rejections)
        done[result.split_id] = result.to_checkpoint()
        ckpt.save(state)
        sink.emit(
            make_event(
                run_id=run_id,
                stage="map",
                fmt=strategy.name,
                split_id=result.split_id,
                source=split.path,
                counts=result.counts,
                attempts=result.attempts,
                rejection_breakdown=result.rejection_breakdown,
            ),
            body_sizes=result.body_sizes,
        )

    manifest: Dict[str, Any] = {
        "run_id": run_id,
        "format": strategy.name,
        "input": cfg.input_path,
        "output": cfg.output,
        "work_dir": work_dir,
        "config": cfg.to_dict(),
        "splits": len(splits),
        "resumed_splits": resumed,
        "start_time_ms": start_ms,
    }
    try:
        _execute(cfg, tasks, runner, on_result)

        missing = [s.split_id for s in splits if s.split_id not in done]
        if missing:
            raise WorkerFailure(
                f"{len(missing)} split(s) produced no result: {', '.join(missing[:10])}",
                split_id=missing[0],
            )

        run_paths = [p for s in splits for p in done[s.split_id]["run_paths"]]
        if os.path.exists(dirs["staging"]):
            shutil.rmtree(dirs["staging"])
        log.info(f"Merging {len(run_paths)} run file(s) into {dirs['staging']}")
        meta = write_store(
            dirs["staging"],
            merge_runs(run_paths, os.path.join(dirs["runs"], "merge")),
            index_interval=cfg.index_interval,
            metadata=_store_metadata(cfg, strategy),
        )
        publish_store(dirs["staging"], cfg.output)
        log.info(f"Published store {cfg.output} with {meta['entries']} entries")

        if not cfg.keep_runs:
            shutil.rmtree(dirs["runs"], ignore_errors=True)
            ckpt.clear()

        counts, breakdown = _totals(done)
        manifest.update(
            {
                "status": "succeeded",
                "entries": meta["entries"],
                "counts": counts,
                "rejection_breakdown": breakdown,
                "end_time_ms": int(time.time() * 1000),
            }
        )
        write_manifest(manifest_path, manifest)
        return BuildResult(
            run_id=run_id,
            output=cfg.output,
            entries=meta["entries"],
            splits=len(splits),
            counts=counts,
            rejection_breakdown=breakdown,
            resumed_splits=resumed,
            manifest_path=manifest_path,
        )
    except BaseException as e:
        if os.path.exists(dirs["staging"]):
            shutil.rmtree(dirs["staging"], ignore_errors=True)
        counts, breakdown = _totals(done)
        manifest.update(
            {
                "status": "failed",
                "error": f"{type(e).__name__}: {e}",
                "counts": counts,
                "rejection_breakdown": breakdown,
                "end_time_ms": int(time.time() * 1000),
            }
        )
        write_manifest(manifest_path, manifest)
        log.error(f"Run {run_id} failed: {e}")
        raise
    finally:
        sink.flush()
