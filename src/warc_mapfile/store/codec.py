"""Binary layout shared by run files and the sorted store.

Every file starts with an 8-byte magic. Entries follow back to back:

    data / run entry:  >I key_len, >Q value_len, key bytes, value bytes
    index entry:       >I key_len, >Q data offset, key bytes

Keys are UTF-8; ordering is byte-wise lexicographic on the encoded key.
"""

from __future__ import annotations
import os
import struct
from typing import BinaryIO, Iterable, Iterator, Optional, Tuple

from ..errors import StoreIntegrityError

DATA_MAGIC = b"WMFDATA1"
INDEX_MAGIC = b"WMFINDX1"
RUN_MAGIC = b"WMFRUN01"

_ENTRY = struct.Struct(">IQ")
_INDEX = struct.Struct(">IQ")

Entry = Tuple[bytes, bytes]


def encode_entry(key: bytes, value: bytes) -> bytes:
    return _ENTRY.pack(len(key), len(value)) + key + value


def write_entry(f: BinaryIO, key: bytes, value: bytes) -> int:
    """Write one entry; return the number of bytes written."""
    blob = encode_entry(key, value)
    f.write(blob)
    return len(blob)


def _read_exact(f: BinaryIO, n: int, what: str) -> bytes:
    b = f.read(n)
    if len(b) != n:
        raise StoreIntegrityError(f"truncated {what}: expected {n} bytes, got {len(b)}")
    return b


def read_entry(f: BinaryIO) -> Optional[Entry]:
    """Read one data entry at the current position; None at a clean end of file."""
    head = f.read(_ENTRY.size)
    if not head:
        return None
    if len(head) != _ENTRY.size:
        raise StoreIntegrityError("truncated entry header")
    klen, vlen = _ENTRY.unpack(head)
    key = _read_exact(f, klen, "entry key")
    value = _read_exact(f, vlen, "entry value")
    return key, value


def iter_entries(f: BinaryIO) -> Iterator[Entry]:
    while True:
        e = read_entry(f)
        if e is None:
            return
        yield e


def write_index_entry(f: BinaryIO, key: bytes, offset: int) -> None:
    f.write(_INDEX.pack(len(key), offset) + key)


def iter_index(f: BinaryIO) -> Iterator[Tuple[bytes, int]]:
    while True:
        head = f.read(_INDEX.size)
        if not head:
            return
        if len(head) != _INDEX.size:
            raise StoreIntegrityError("truncated index entry")
        klen, offset = _INDEX.unpack(head)
        yield _read_exact(f, klen, "index key"), offset


def check_magic(f: BinaryIO, magic: bytes, path: str) -> None:
    if f.read(len(magic)) != magic:
        raise StoreIntegrityError(f"{path}: not a {magic.decode('ascii')} file")


def write_run(path: str, entries: Iterable[Entry]) -> int:
    """Atomically write a run file of already sorted entries; return the entry count."""
    tmp = path + ".tmp"
    n = 0
    with open(tmp, "wb") as f:
        f.write(RUN_MAGIC)
        for key, value in entries:
            write_entry(f, key, value)
            n += 1
    os.replace(tmp, path)
    return n


def iter_run(path: str) -> Iterator[Entry]:
    with open(path, "rb") as f:
        check_magic(f, RUN_MAGIC, path)
        yield from iter_entries(f)
