"""Key-value mapping of parsed WARC records."""

from .keys import KeyPolicy, KeyScope, KeyStyle, make_key
from .warc_mapper import MappedEntry, map_record, parse_value

__all__ = ["KeyPolicy", "KeyScope", "KeyStyle", "make_key", "MappedEntry", "map_record", "parse_value"]
