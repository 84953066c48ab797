"""Sorted store reader.

Lookup: the sparse index is loaded into memory; bisecting it yields the last
sampled key <= the wanted key, which bounds the search to the byte range between
two consecutive index offsets (at most `index_interval` entries). A linear scan of
that range finds the entry or proves it absent.
"""

from __future__ import annotations
import json
import os
from bisect import bisect_right
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import StoreIntegrityError
from ..formats.base import CorpusFormat
from ..mapper.warc_mapper import parse_value
from ..warc.record import WarcRecord
from .codec import DATA_MAGIC, INDEX_MAGIC, check_magic, iter_entries, iter_index, read_entry
from .writer import DATA_FILE, INDEX_FILE, META_FILE, STORE_FORMAT, KeyLike, _key_bytes


class SortedStoreReader:
    def __init__(self, path: str):
        self.path = path
        meta_path = os.path.join(path, META_FILE)
        if not os.path.exists(meta_path):
            raise StoreIntegrityError(f"{path}: missing {META_FILE}, not a published store")
        with open(meta_path, "r", encoding="utf-8") as f:
            self.meta: Dict[str, Any] = json.load(f)
        if self.meta.get("format") != STORE_FORMAT:
            raise StoreIntegrityError(f"{path}: unknown store format {self.meta.get('format')!r}")

        self._index_keys: List[bytes] = []
        self._index_offsets: List[int] = []
        index_path = os.path.join(path, INDEX_FILE)
        with open(index_path, "rb") as f:
            check_magic(f, INDEX_MAGIC, index_path)
            for key, offset in iter_index(f):
                self._index_keys.append(key)
                self._index_offsets.append(offset)

        self._data_path = os.path.join(path, DATA_FILE)
        self._data = open(self._data_path, "rb")
        check_magic(self._data, DATA_MAGIC, self._data_path)
        self._data_size = os.path.getsize(self._data_path)

    def close(self) -> None:
        self._data.close()

    def __enter__(self) -> "SortedStoreReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __len__(self) -> int:
        return int(self.meta.get("entries", 0))

    @property
    def index_interval(self) -> int:
        return int(self.meta["index_interval"])

    def search_range(self, key: KeyLike) -> Optional[Tuple[int, int]]:
        """Byte range [start, end) of `data` that holds `key` if it is present."""
        k = _key_bytes(key)
        i = bisect_right(self._index_keys, k) - 1
        if i < 0:
            return None
        start = self._index_offsets[i]
        end = self._index_offsets[i + 1] if i + 1 < len(self._index_offsets) else self._data_size
        return start, end

    def get(self, key: KeyLike, default: Optional[bytes] = None) -> Optional[bytes]:
        k = _key_bytes(key)
        rng = self.search_range(k)
        if rng is None:
            return default
        start, end = rng
        self._data.seek(start)
        while self._data.tell() < end:
            entry = read_entry(self._data)
            if entry is None:
                break
            ek, ev = entry
            if ek == k:
                return ev
            if ek > k:
                break
        return default

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, bytes)):
            return False
        return self.get(key) is not None

    def get_record(self, key: KeyLike, fmt: CorpusFormat) -> Optional[WarcRecord]:
        value = self.get(key)
        return None if value is None else parse_value(value, fmt)

    def __iter__(self) -> Iterator[Tuple[bytes, bytes]]:
        """All entries in key order."""
        with open(self._data_path, "rb") as f:
            check_magic(f, DATA_MAGIC, self._data_path)
            yield from iter_entries(f)

    def keys(self) -> Iterator[str]:
        for k, _ in self:
            yield k.decode("utf-8")
