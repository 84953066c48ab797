"""Command-line interface."""

import json
import os
import subprocess
import sys

import pytest

from warc_mapfile.cli import main


def _build_args(input_path, output, *extra):
    return ["build", "-p", "corpusA-", "-i", str(input_path), "-f", "clueweb12", "-o", str(output), "--no-progress", *extra]


def test_help():
    result = subprocess.run(
        [sys.executable, "-m", "warc_mapfile", "--help"],
        capture_output=True,
        text=True,
        timeout=30,
    )
    assert result.returncode == 0
    assert "build" in result.stdout


def test_formats(capsys):
    assert main(["formats"]) == 0
    out = capsys.readouterr().out
    assert "clueweb09\tWARC/0.18" in out
    assert "clueweb12\tWARC/1.0" in out


def test_build_and_lookup(cw12_file, tmp_path, capsys):
    out = tmp_path / "out.store"
    assert main(_build_args(cw12_file, out)) == 0
    assert (out / "store.json").exists()
    assert os.path.exists(tmp_path / "out.store.work" / "logs" / "clueweb12_0000tw-00.log")
    capsys.readouterr()

    assert main(["lookup", "--store", str(out), "corpusA-clueweb12-0000tw-00-00001", "--json"]) == 0
    rec = json.loads(capsys.readouterr().out)
    assert rec["body"] == "body 1"
    assert ["WARC-TREC-ID", "clueweb12-0000tw-00-00001"] in rec["headers"]

    assert main(["lookup", "--store", str(out), "corpusA-missing"]) == 1
    assert "Key not found" in capsys.readouterr().err


def test_unsupported_format(cw12_file, tmp_path, capsys):
    args = _build_args(cw12_file, tmp_path / "out")
    args[args.index("clueweb12")] = "clueweb22"
    assert main(args) == 1
    err = capsys.readouterr().err
    assert "usage:" in err
    assert "Input format 'clueweb22' is not supported." in err
    assert "Supported input formats are: clueweb09, clueweb12" in err
    assert not (tmp_path / "out").exists()
    assert not (tmp_path / "out.work").exists()


def test_missing_required_option(cw12_file, tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["build", "-i", str(cw12_file), "-f", "clueweb12", "-o", str(tmp_path / "out")])
    assert exc.value.code == 2
    assert "--prefix" in capsys.readouterr().err


def test_unknown_option_exits_2(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["build", "--bogus"])
    assert exc.value.code == 2


def test_existing_output(cw12_file, tmp_path, capsys):
    (tmp_path / "out").mkdir()
    assert main(_build_args(cw12_file, tmp_path / "out")) == 1
    assert "already exists" in capsys.readouterr().err


def test_malformed_abort_exit_code(write_warc, record, tmp_path):
    path = write_warc("bad.warc", [record("a"), record("b", b"xyz", content_length=1)])
    assert main(_build_args(path, tmp_path / "out")) == 1
    assert not (tmp_path / "out").exists()
    assert main(_build_args(path, tmp_path / "out", "--on-malformed", "skip")) == 0


def test_config_file_with_overrides(cw12_file, tmp_path):
    cfg = tmp_path / "build.yaml"
    cfg.write_text(
        "keys:\n  prefix: fromfile-\n  scope: per_file\n  separator: '/'\n"
        f"input:\n  path: {cw12_file}\n  format: clueweb12\n"
        "execution:\n  progress: false\n",
        encoding="utf-8",
    )
    out = tmp_path / "out"
    assert main(["build", "--config", str(cfg), "-p", "cli-", "-o", str(out)]) == 0
    from warc_mapfile.store.reader import SortedStoreReader

    with SortedStoreReader(str(out)) as r:
        assert "cli-0000tw-00/clueweb12-0000tw-00-00002" in r
        assert r.meta["key_scope"] == "per_file"


def test_filesystem_error_during_build(cw12_file, tmp_path, monkeypatch, capsys):
    def cross_device(*args, **kwargs):
        raise OSError(18, "Invalid cross-device link")

    monkeypatch.setattr("warc_mapfile.pipeline.build.publish_store", cross_device)
    assert main(_build_args(cw12_file, tmp_path / "out")) == 1
    assert "cross-device" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()


def test_ray_mode_without_ray(cw12_file, tmp_path, monkeypatch, capsys):
    monkeypatch.setitem(sys.modules, "ray", None)
    assert main(_build_args(cw12_file, tmp_path / "out", "--mode", "ray")) == 1
    assert "pip install warc-mapfile[ray]" in capsys.readouterr().err
