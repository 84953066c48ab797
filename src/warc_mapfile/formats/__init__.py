"""Supported corpus formats.

The version dispatcher lives in `warc_mapfile.formats.registry`.
"""

from .base import CorpusFormat
from .clueweb import CLUEWEB09, CLUEWEB12

__all__ = ["CorpusFormat", "CLUEWEB09", "CLUEWEB12"]
