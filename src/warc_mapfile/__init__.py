"""warc_mapfile

Converts WARC web-crawl corpora (ClueWeb09, ClueWeb12) into a sorted,
randomly-accessible key-value store.

Public API surface:
- warc_mapfile.cli.main : CLI entrypoint
- warc_mapfile.formats.registry.resolve : format name -> reader/mapper strategy
- warc_mapfile.pipeline.build.build : run the conversion pipeline
- warc_mapfile.store.reader.SortedStoreReader : look up keys in a published store
"""
__all__ = ["__version__"]
__version__ = "1.0.0"
