"""Input splits.

Split iteration primitive: given a corpus path, enumerate disjoint units of work,
each independently assignable to a worker.

Supports multiple input forms:
- Single file: "path/to/file.warc.gz"
- Directory: "path/to/corpus/" (all .warc / .warc.gz files, recursive)
- Glob pattern: "path/to/*.warc.gz" or "path/to/**/*.warc"

Gzip files cannot be cut, so they are always whole-file splits. Plain `.warc` files
are cut into byte ranges of roughly `split_size` bytes when it is set. Every cut
falls on a record start found by a sequential pass over the file, never inside a
record body, so a WARC record quoted in a payload is not mistaken for a real one.
Split ids are assigned in sorted file order, so enumeration is deterministic.
"""

from __future__ import annotations
import glob
import gzip
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple

from ..formats.base import CorpusFormat

WARC_SUFFIXES = (".warc", ".warc.gz")


@dataclass(frozen=True)
class Split:
    split_id: str
    path: str
    start: int = 0
    end: Optional[int] = None   # exclusive; None reads to end of file
    group: str = ""

    @property
    def compressed(self) -> bool:
        return self.path.endswith(".gz")

    @property
    def length(self) -> Optional[int]:
        return None if self.end is None else self.end - self.start


def source_group(path: str) -> str:
    """File name without WARC/gzip suffixes, e.g. `0000tw-00` for `0000tw-00.warc.gz`."""
    name = os.path.basename(path)
    for suffix in (".gz", ".warc"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    return name


def resolve_input_files(input_path: str) -> List[str]:
    """Resolve an input path, directory or glob to a sorted list of WARC files."""
    if any(ch in input_path for ch in "*?["):
        matched = glob.glob(input_path, recursive=True)
        return sorted(f for f in matched if os.path.isfile(f) and f.endswith(WARC_SUFFIXES))

    path = Path(input_path)
    if path.is_dir():
        files = [str(f) for f in path.rglob("*") if f.is_file() and f.name.endswith(WARC_SUFFIXES)]
        return sorted(files)

    if path.is_file():
        return [str(path)]

    return []


def _byte_ranges(file_path: str, split_size: int, fmt: CorpusFormat) -> Iterator[Tuple[int, Optional[int]]]:
    """Cut a plain file into ranges of about `split_size` bytes at record starts."""
    from .reader import record_starts

    start = 0
    for offset in record_starts(file_path, fmt):
        if offset - start >= split_size:
            yield start, offset
            start = offset
    yield start, None


def iter_splits(
    input_path: str,
    split_size: Optional[int] = None,
    fmt: Optional[CorpusFormat] = None,
) -> Iterator[Split]:
    """Yield the disjoint splits covering every WARC file under `input_path`.

    Cutting plain files needs `fmt`: boundaries come from a sequential pre-scan of
    the file, so every range starts on a record the whole-file read also accepts.
    """
    idx = 0
    for file_path in resolve_input_files(input_path):
        group = source_group(file_path)
        size = os.path.getsize(file_path)
        if split_size is None or split_size <= 0 or file_path.endswith(".gz") or size <= split_size:
            yield Split(split_id=f"{idx:05d}", path=file_path, start=0, end=None, group=group)
            idx += 1
            continue
        if fmt is None:
            raise ValueError("Cutting plain WARC files into byte ranges needs the corpus format")
        for start, end in _byte_ranges(file_path, split_size, fmt):
            yield Split(split_id=f"{idx:05d}", path=file_path, start=start, end=end, group=group)
            idx += 1


def list_splits(
    input_path: str,
    split_size: Optional[int] = None,
    fmt: Optional[CorpusFormat] = None,
) -> List[Split]:
    return list(iter_splits(input_path, split_size, fmt))


@contextmanager
def open_split(split: Split) -> Iterator[BinaryIO]:
    """Open the stream backing a split, positioned one byte before `split.start`.

    The byte before the start is needed to recognise a record marker sitting exactly
    on the split boundary. At offset 0 the stream is returned unpositioned.
    """
    if split.compressed:
        if split.start:
            raise ValueError(f"Gzip split {split.split_id} must start at offset 0")
        f = gzip.open(split.path, "rb")
    else:
        f = open(split.path, "rb")
        if split.start:
            f.seek(split.start - 1)
    try:
        yield f
    finally:
        f.close()
