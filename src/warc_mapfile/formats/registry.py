"""Format registry (version dispatcher).

Maps a declared corpus-format name to the {reader, mapper} pair bound to that
protocol version. The registry is a fixed, read-only mapping built once at import;
there is no runtime registration. Adding a format means adding a descriptor in
`warc_mapfile.formats.*` and listing it in `_BUILTIN_FORMATS`.

Resolution happens before any job resource is allocated, so an unknown name never
leaves partial output behind.
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import partial
from types import MappingProxyType
from typing import Callable, Iterable, Iterator, List, Mapping, Optional

from ..errors import UnsupportedFormatError
from ..mapper.warc_mapper import MappedEntry, map_record
from ..warc.reader import read_split
from ..warc.record import WarcRecord
from .base import CorpusFormat
from .clueweb import CLUEWEB09, CLUEWEB12

_BUILTIN_FORMATS = (CLUEWEB09, CLUEWEB12)


@dataclass(frozen=True)
class FormatStrategy:
    format: CorpusFormat
    read: Callable[..., Iterator[WarcRecord]]
    map: Callable[..., MappedEntry]

    @property
    def name(self) -> str:
        return self.format.name


class FormatRegistry:
    """Immutable name -> CorpusFormat map."""

    def __init__(self, formats: Iterable[CorpusFormat]):
        table = {}
        for fmt in formats:
            if fmt.name in table:
                raise ValueError(f"Duplicate corpus format: {fmt.name}")
            table[fmt.name] = fmt
        self._formats: Mapping[str, CorpusFormat] = MappingProxyType(table)

    @property
    def formats(self) -> Mapping[str, CorpusFormat]:
        return self._formats

    def names(self) -> List[str]:
        return sorted(self._formats)

    def __contains__(self, name: object) -> bool:
        return name in self._formats

    def get(self, name: str) -> CorpusFormat:
        if name not in self._formats:
            raise UnsupportedFormatError(name, self.names())
        return self._formats[name]

    def resolve(self, name: str) -> FormatStrategy:
        fmt = self.get(name)
        return FormatStrategy(
            format=fmt,
            read=partial(read_split, fmt=fmt),
            map=partial(map_record, fmt=fmt),
        )


DEFAULT_REGISTRY = FormatRegistry(_BUILTIN_FORMATS)


def list_formats(registry: Optional[FormatRegistry] = None) -> List[str]:
    """List supported format names."""
    return (registry or DEFAULT_REGISTRY).names()


def get_format(name: str, registry: Optional[FormatRegistry] = None) -> CorpusFormat:
    return (registry or DEFAULT_REGISTRY).get(name)


def resolve(format_name: str, registry: Optional[FormatRegistry] = None) -> FormatStrategy:
    """Resolve a format name to its bound reader/mapper strategy.

    Raises UnsupportedFormatError (carrying the valid names) for unknown formats.
    """
    return (registry or DEFAULT_REGISTRY).resolve(format_name)
