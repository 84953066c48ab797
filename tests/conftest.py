"""Pytest configuration and shared fixtures."""

import gzip

import pytest

from warc_mapfile.formats.clueweb import CLUEWEB09, CLUEWEB12
from warc_mapfile.pipeline import worker


def build_record(
    trec_id="clueweb12-0000tw-00-00001",
    body=b"HTTP/1.1 200 OK\r\nContent-Type: text/html\r\n\r\n<html>hello</html>",
    *,
    fmt=CLUEWEB12,
    record_type="response",
    content_length=None,
    extra_headers=(),
    terminator=None,
):
    """Serialize one record the way the corpus files lay it out."""
    eol = b"\r\n" if fmt is CLUEWEB12 else b"\n"
    headers = [("WARC-Type", record_type), ("WARC-Date", "2012-02-10T21:51:20Z")]
    if trec_id is not None:
        headers.append(("WARC-TREC-ID", trec_id))
    headers.append(("WARC-Target-URI", f"http://example.com/{trec_id or 'info'}"))
    headers.extend(extra_headers)
    headers.append(("Content-Length", str(len(body) if content_length is None else content_length)))
    out = fmt.version.encode("ascii") + eol
    for name, value in headers:
        out += f"{name}: {value}".encode("utf-8") + eol
    out += eol + body
    out += fmt.terminator if terminator is None else terminator
    return out


def warcinfo(fmt=CLUEWEB12):
    return build_record(None, b"software: crawler\r\n", fmt=fmt, record_type="warcinfo")


@pytest.fixture
def record():
    """Builder for a single serialized record."""
    return build_record


@pytest.fixture
def write_warc(tmp_path):
    """Write records to a .warc (or .warc.gz) file under tmp_path and return its path."""

    def _write(name, records, compress=False):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        data = b"".join(records)
        if compress:
            with gzip.open(path, "wb") as f:
                f.write(data)
        else:
            path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def cw12_records():
    return [warcinfo()] + [build_record(f"clueweb12-0000tw-00-{i:05d}", f"body {i}".encode()) for i in (3, 1, 2)]


@pytest.fixture
def cw12_file(write_warc, cw12_records):
    return write_warc("input/0000tw-00.warc", cw12_records)


@pytest.fixture
def cw09_file(write_warc):
    records = [warcinfo(CLUEWEB09)] + [
        build_record(f"clueweb09-en0000-00-{i:05d}", f"page {i}".encode(), fmt=CLUEWEB09) for i in range(3)
    ]
    return write_warc("input09/en0000-00.warc", records)


@pytest.fixture
def corpus_dir(write_warc, tmp_path):
    """Two plain files and one gzip file with disjoint identifiers."""
    write_warc("corpus/a.warc", [build_record(f"doc-a{i}", f"a{i}".encode()) for i in range(4)])
    write_warc("corpus/b.warc", [build_record(f"doc-b{i}", f"b{i}".encode()) for i in range(4)])
    write_warc("corpus/sub/c.warc.gz", [build_record(f"doc-c{i}", f"c{i}".encode()) for i in range(4)], compress=True)
    return tmp_path / "corpus"


def flaky_runner(fail_times):
    """Runner failing the first `fail_times` calls per split with an I/O error."""
    calls = {}

    def run(task):
        calls[task.split_id] = calls.get(task.split_id, 0) + 1
        if calls[task.split_id] <= fail_times:
            raise OSError(f"injected failure {calls[task.split_id]} for split {task.split_id}")
        return worker.run_split(task)

    run.calls = calls
    return run


@pytest.fixture
def make_flaky_runner():
    return flaky_runner


@pytest.fixture(autouse=True)
def _restore_root_log_handlers():
    """Drop root logger handlers a test installed, so none outlive pytest's captured streams."""
    import logging

    root = logging.getLogger()
    before = list(root.handlers)
    yield
    for h in [h for h in root.handlers if h not in before]:
        root.removeHandler(h)
        h.close()
