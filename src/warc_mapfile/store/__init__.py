"""Sorted store: length-prefixed data file plus sparse index."""

from .reader import SortedStoreReader
from .writer import DEFAULT_INDEX_INTERVAL, SortedStoreWriter, publish_store, write_store

__all__ = ["SortedStoreReader", "SortedStoreWriter", "DEFAULT_INDEX_INTERVAL", "publish_store", "write_store"]
