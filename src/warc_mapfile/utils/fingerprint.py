"""Run fingerprints.

A checkpoint is reused only when the run fingerprint matches: the settings that
shape the store plus the exact split list, including each input file's size and
modification time. Any change restarts the run from the beginning.
"""

import hashlib
import json
import os
from typing import Any, Dict, Iterable


def _split_signature(split) -> Dict[str, Any]:
    st = os.stat(split.path)
    return {
        "split_id": split.split_id,
        "path": os.path.abspath(split.path),
        "start": split.start,
        "end": split.end,
        "size": st.st_size,
        "mtime_ns": st.st_mtime_ns,
    }


def run_fingerprint(settings: Dict[str, Any], splits: Iterable) -> str:
    payload = {"settings": settings, "splits": [_split_signature(s) for s in splits]}
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()
