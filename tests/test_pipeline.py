"""End-to-end store builds."""

import json
import os
import time

import pyarrow.parquet as pq
import pytest

from warc_mapfile.config import BuildConfig
from warc_mapfile.errors import (
    ArgumentError,
    MalformedRecordError,
    StoreIntegrityError,
    UnsupportedFormatError,
    WorkerFailure,
)
from warc_mapfile.formats.clueweb import CLUEWEB12
from warc_mapfile.pipeline.build import build
from warc_mapfile.pipeline.worker import run_split
from warc_mapfile.store.reader import SortedStoreReader


def _cfg(input_path, output, **kw):
    kw.setdefault("run_id", "test")
    return BuildConfig(
        prefix="cw-",
        input_path=str(input_path),
        format="clueweb12",
        output=str(output),
        progress=False,
        **kw,
    )


def _read_all(path):
    with open(os.path.join(path, "data"), "rb") as f:
        return f.read()


def test_build_corpus(corpus_dir, tmp_path):
    out = tmp_path / "out.store"
    result = build(_cfg(corpus_dir, out))
    assert result.entries == 12
    assert result.splits == 3
    assert result.counts["mapped_records"] == 12

    with SortedStoreReader(str(out)) as r:
        keys = list(r.keys())
        assert keys == sorted(keys)
        assert keys[0] == "cw-doc-a0" and keys[-1] == "cw-doc-c3"
        rec = r.get_record("cw-doc-b2", CLUEWEB12)
        assert rec.body == b"b2"
        assert r.meta["corpus_format"] == "clueweb12"
        assert r.meta["prefix"] == "cw-"

    work = str(out) + ".work"
    assert not os.path.exists(os.path.join(work, "runs"))
    assert not os.path.exists(os.path.join(work, "staging"))
    assert not os.path.exists(os.path.join(work, "checkpoints", "test.json"))
    with open(result.manifest_path, encoding="utf-8") as f:
        manifest = json.load(f)
    assert manifest["status"] == "succeeded"
    assert manifest["entries"] == 12

    events = pq.read_table(os.path.join(work, "analytics", "events.parquet")).to_pylist()
    assert sorted(e["split_id"] for e in events) == ["00000", "00001", "00002"]
    assert all(e["mapped_records"] == 4 for e in events)
    assert events[0]["body_bytes_p50"] == 2.0


def test_non_response_records_are_skipped(cw12_file, tmp_path):
    result = build(_cfg(cw12_file, tmp_path / "out"))
    assert result.counts["records_read"] == 4
    assert result.counts["skipped_records"] == 1
    assert result.entries == 3


def test_rerun_is_byte_identical(corpus_dir, tmp_path):
    build(_cfg(corpus_dir, tmp_path / "a"))
    build(_cfg(corpus_dir, tmp_path / "b", workers=2))
    build(_cfg(corpus_dir, tmp_path / "c", run_entries=1))
    for name in ("data", "index", "store.json"):
        blobs = set()
        for out in ("a", "b", "c"):
            with open(tmp_path / out / name, "rb") as f:
                blobs.add(f.read())
        assert len(blobs) == 1


def test_byte_range_splits_match_whole_files(write_warc, record, tmp_path):
    path = write_warc("big/x.warc", [record(f"doc-{i:03d}", b"q" * i) for i in range(40)])
    whole = build(_cfg(path, tmp_path / "whole"))
    ranged = build(_cfg(path, tmp_path / "ranged", split_size=300))
    assert ranged.splits > 1
    assert whole.entries == ranged.entries == 40
    assert _read_all(tmp_path / "whole") == _read_all(tmp_path / "ranged")


def test_record_quoted_in_a_body_is_not_mapped(write_warc, record, tmp_path):
    inner = record("phantom", b"quoted")
    path = write_warc("nested/x.warc", [record("doc-a", b"f" * 199 + b"\n" + inner), record("doc-b")])
    result = build(_cfg(path, tmp_path / "out", split_size=150))
    assert result.splits == 2
    assert result.entries == 2
    with SortedStoreReader(str(tmp_path / "out")) as r:
        assert list(r.keys()) == ["cw-doc-a", "cw-doc-b"]
        assert "cw-phantom" not in r


def test_retries_recover(corpus_dir, tmp_path, make_flaky_runner):
    runner = make_flaky_runner(2)
    out = tmp_path / "out"
    result = build(_cfg(corpus_dir, out, max_retries=3), runner=runner)
    assert result.entries == 12
    assert runner.calls == {"00000": 3, "00001": 3, "00002": 3}
    events = pq.read_table(str(out) + ".work/analytics/events.parquet").to_pylist()
    assert {e["attempts"] for e in events} == {3}


def test_retries_exhausted(corpus_dir, tmp_path, make_flaky_runner):
    out = tmp_path / "out"
    with pytest.raises(WorkerFailure) as exc:
        build(_cfg(corpus_dir, out, max_retries=1), runner=make_flaky_runner(5))
    assert exc.value.split_id == "00000"
    assert exc.value.attempts == 2
    assert not out.exists()
    with open(str(out) + ".work/manifests/test.json", encoding="utf-8") as f:
        assert json.load(f)["status"] == "failed"


def _crash_once(task):
    marker = os.path.join(task.runs_dir, f"crashed.{task.split_id}")
    if task.split_id == "00000" and not os.path.exists(marker):
        open(marker, "w").close()
        os._exit(1)
    return run_split(task)


def _always_crash(task):
    if task.split_id == "00000":
        os._exit(1)
    return run_split(task)


def _hang_once(task):
    marker = os.path.join(task.runs_dir, f"hung.{task.split_id}")
    if task.split_id == "00000" and not os.path.exists(marker):
        open(marker, "w").close()
        time.sleep(120)
    return run_split(task)


def test_dead_worker_process_is_replaced(corpus_dir, tmp_path):
    out = tmp_path / "out"
    result = build(_cfg(corpus_dir, out, workers=2, max_retries=3), runner=_crash_once)
    assert result.entries == 12
    events = pq.read_table(str(out) + ".work/analytics/events.parquet").to_pylist()
    assert {e["split_id"]: e["attempts"] for e in events}["00000"] == 2


def test_dead_worker_process_exhausts_retries(corpus_dir, tmp_path):
    out = tmp_path / "out"
    with pytest.raises(WorkerFailure) as exc:
        build(_cfg(corpus_dir, out, workers=2, max_retries=1), runner=_always_crash)
    assert exc.value.attempts == 2
    assert not out.exists()


def test_split_over_time_budget_is_retried(corpus_dir, tmp_path):
    out = tmp_path / "out"
    started = time.monotonic()
    result = build(_cfg(corpus_dir, out, split_timeout=8), runner=_hang_once)
    assert time.monotonic() - started < 60
    assert result.entries == 12
    events = pq.read_table(str(out) + ".work/analytics/events.parquet").to_pylist()
    assert {e["split_id"]: e["attempts"] for e in events} == {"00000": 2, "00001": 1, "00002": 1}


def test_split_over_time_budget_exhausts_retries(corpus_dir, tmp_path):
    with pytest.raises(WorkerFailure) as exc:
        build(_cfg(corpus_dir, tmp_path / "out", split_timeout=8, max_retries=0), runner=_hang_once)
    assert exc.value.split_id == "00000"
    assert "split_timeout" in str(exc.value)


def test_unexpected_driver_error_is_a_worker_failure(corpus_dir, tmp_path, monkeypatch):
    def full_disk(*args, **kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("warc_mapfile.pipeline.build.append_jsonl", full_disk)
    with pytest.raises(WorkerFailure):
        build(_cfg(corpus_dir, tmp_path / "out"))
    assert not (tmp_path / "out").exists()


def _bad_corpus(write_warc, record):
    bad = record("doc-bad", b"0123456789", content_length=3)
    return write_warc("bad/x.warc", [record("doc-1"), bad, record("doc-2"), record(None)])


def test_malformed_abort(write_warc, record, tmp_path):
    out = tmp_path / "out"
    with pytest.raises(MalformedRecordError) as exc:
        build(_cfg(_bad_corpus(write_warc, record), out))
    assert exc.value.reason == "LENGTH_MISMATCH"
    assert not out.exists()


def test_malformed_skip(write_warc, record, tmp_path):
    out = tmp_path / "out"
    result = build(_cfg(_bad_corpus(write_warc, record), out, on_malformed="skip"))
    assert result.entries == 2
    assert result.rejection_breakdown == {"LENGTH_MISMATCH": 1, "MISSING_IDENTIFIER": 1}
    with open(str(out) + ".work/rejections/rejections.jsonl", encoding="utf-8") as f:
        rows = [json.loads(line) for line in f]
    assert sorted(r["reason"] for r in rows) == ["LENGTH_MISMATCH", "MISSING_IDENTIFIER"]
    assert all(r["source"].endswith("x.warc") for r in rows)


def test_unknown_format_creates_nothing(corpus_dir, tmp_path):
    cfg = _cfg(corpus_dir, tmp_path / "out")
    cfg.format = "clueweb22"
    with pytest.raises(UnsupportedFormatError):
        build(cfg)
    assert not (tmp_path / "out").exists()
    assert not (tmp_path / "out.work").exists()


def test_existing_output_rejected(corpus_dir, tmp_path):
    (tmp_path / "out").mkdir()
    with pytest.raises(ArgumentError):
        build(_cfg(corpus_dir, tmp_path / "out"))


def test_empty_input_rejected(tmp_path):
    (tmp_path / "empty").mkdir()
    with pytest.raises(ArgumentError):
        build(_cfg(tmp_path / "empty", tmp_path / "out"))


def test_duplicate_keys_fail_the_job(write_warc, record, tmp_path):
    write_warc("dup/a.warc", [record("doc-1")])
    write_warc("dup/b.warc", [record("doc-1", b"other")])
    out = tmp_path / "out"
    with pytest.raises(StoreIntegrityError):
        build(_cfg(tmp_path / "dup", out, on_malformed="skip"))
    assert not out.exists()


def test_missing_split_result_blocks_publish(corpus_dir, tmp_path):
    def first_split_only(task):
        result = run_split(task)
        result.split_id = "00000"
        return result

    out = tmp_path / "out"
    with pytest.raises(WorkerFailure):
        build(_cfg(corpus_dir, out), runner=first_split_only)
    assert not out.exists()


def test_resume_skips_completed_splits(corpus_dir, tmp_path):
    def fail_last(task):
        if task.split_id == "00002":
            raise OSError("disk went away")
        return run_split(task)

    out = tmp_path / "out"
    with pytest.raises(WorkerFailure):
        build(_cfg(corpus_dir, out, max_retries=0), runner=fail_last)

    seen = []

    def counting(task):
        seen.append(task.split_id)
        return run_split(task)

    result = build(_cfg(corpus_dir, out), runner=counting)
    assert seen == ["00002"]
    assert result.resumed_splits == 2
    assert result.entries == 12


def test_resume_from_beginning(corpus_dir, tmp_path):
    def fail_last(task):
        if task.split_id == "00002":
            raise OSError("disk went away")
        return run_split(task)

    out = tmp_path / "out"
    with pytest.raises(WorkerFailure):
        build(_cfg(corpus_dir, out, max_retries=0), runner=fail_last)

    seen = []

    def counting(task):
        seen.append(task.split_id)
        return run_split(task)

    result = build(_cfg(corpus_dir, out, resume="beginning"), runner=counting)
    assert seen == ["00000", "00001", "00002"]
    assert result.resumed_splits == 0
