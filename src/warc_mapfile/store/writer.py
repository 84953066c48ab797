"""Sorted store writer.

A sorted store is a directory holding:
- `data`: entries in strictly ascending key order (byte-wise on UTF-8 keys)
- `index`: every `index_interval`-th key (starting with the first) and the byte
  offset of its entry in `data`
- `store.json`: layout description (format version, index interval, key order,
  entry counts, plus caller metadata such as the corpus format)

Nothing time-dependent is written, so the same entries always produce
byte-identical files. The writer refuses duplicate and out-of-order keys.
"""

from __future__ import annotations
import json
import logging
import os
from typing import Any, BinaryIO, Dict, Iterable, Optional, Tuple, Union

from ..errors import StoreIntegrityError
from .codec import DATA_MAGIC, INDEX_MAGIC, write_entry, write_index_entry

log = logging.getLogger("warc_mapfile.store.writer")

STORE_FORMAT = "warc-mapfile-store"
STORE_VERSION = 1
DEFAULT_INDEX_INTERVAL = 128

DATA_FILE = "data"
INDEX_FILE = "index"
META_FILE = "store.json"

KeyLike = Union[str, bytes]


def _key_bytes(key: KeyLike) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else bytes(key)


class SortedStoreWriter:
    def __init__(self, path: str, index_interval: int = DEFAULT_INDEX_INTERVAL, metadata: Optional[Dict[str, Any]] = None):
        if index_interval < 1:
            raise ValueError(f"index_interval must be >= 1, got {index_interval}")
        self.path = path
        self.index_interval = index_interval
        self.metadata = dict(metadata or {})
        os.makedirs(path, exist_ok=True)
        self._data: BinaryIO = open(os.path.join(path, DATA_FILE), "wb")
        self._index: BinaryIO = open(os.path.join(path, INDEX_FILE), "wb")
        self._data.write(DATA_MAGIC)
        self._index.write(INDEX_MAGIC)
        self._offset = len(DATA_MAGIC)
        self._last_key: Optional[bytes] = None
        self._count = 0
        self._index_count = 0
        self._closed = False

    @property
    def count(self) -> int:
        return self._count

    def append(self, key: KeyLike, value: bytes) -> None:
        k = _key_bytes(key)
        if self._last_key is not None:
            if k == self._last_key:
                raise StoreIntegrityError(f"duplicate key {k!r}")
            if k < self._last_key:
                raise StoreIntegrityError(f"key out of order: {k!r} after {self._last_key!r}")
        if self._count % self.index_interval == 0:
            write_index_entry(self._index, k, self._offset)
            self._index_count += 1
        self._offset += write_entry(self._data, k, value)
        self._last_key = k
        self._count += 1

    def _close_files(self) -> None:
        for f in (self._data, self._index):
            f.flush()
            os.fsync(f.fileno())
            f.close()

    def close(self) -> Dict[str, Any]:
        """Finish the store and write `store.json`; return its content."""
        if self._closed:
            raise StoreIntegrityError(f"store writer for {self.path} already closed")
        self._closed = True
        self._close_files()
        meta = {
            "format": STORE_FORMAT,
            "version": STORE_VERSION,
            "data_file": DATA_FILE,
            "index_file": INDEX_FILE,
            "key_encoding": "utf-8",
            "key_order": "bytewise-lexicographic",
            "index_interval": self.index_interval,
            "entries": self._count,
            "index_entries": self._index_count,
            "data_bytes": self._offset,
            **self.metadata,
        }
        with open(os.path.join(self.path, META_FILE), "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2, sort_keys=True)
            f.write("\n")
        log.info(f"Sorted store written: path={self.path} entries={self._count} index_entries={self._index_count}")
        return meta

    def abort(self) -> None:
        if not self._closed:
            self._closed = True
            self._data.close()
            self._index.close()

    def __enter__(self) -> "SortedStoreWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
        elif not self._closed:
            self.close()


def write_store(
    path: str,
    entries: Iterable[Tuple[KeyLike, bytes]],
    index_interval: int = DEFAULT_INDEX_INTERVAL,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Write a complete store from entries already sorted by key."""
    w = SortedStoreWriter(path, index_interval=index_interval, metadata=metadata)
    try:
        for key, value in entries:
            w.append(key, value)
    except BaseException:
        w.abort()
        raise
    return w.close()


def publish_store(staging_path: str, output_path: str) -> None:
    """Atomically move a finished store to its final path.

    The rename is the publish step: readers see either no store or a complete one.
    """
    if not os.path.exists(os.path.join(staging_path, META_FILE)):
        raise StoreIntegrityError(f"refusing to publish unfinished store {staging_path}")
    if os.path.exists(output_path):
        raise StoreIntegrityError(f"output path already exists: {output_path}")
    parent = os.path.dirname(os.path.abspath(output_path))
    os.makedirs(parent, exist_ok=True)
    os.rename(staging_path, output_path)
