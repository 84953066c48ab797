"""Run ID resolution: explicit, auto-generated, or derived from the input.

Resolution order:
1. `run.run_id` when set
2. `run.run_id_auto` (enabled): input name plus compact timestamp digits
3. `<format>_<input name>`, stable across invocations so a rerun finds its checkpoint

Auto-generation uses:
- prefix_digits / suffix_digits: first/last N digits of a compact timestamp
- include_input_name: name derived from the input path
"""

from __future__ import annotations
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict


def _timestamp_digits(prefix: int = 4, suffix: int = 6) -> tuple[str, str]:
    """Compact timestamp YYYYMMDDHHMMSS; return (first prefix_digits, last suffix_digits)."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")  # 14 digits
    a = ts[: min(prefix, len(ts))]
    b = ts[-min(suffix, len(ts)) :] if suffix else ""
    return (a, b)


def _input_name(cfg: Dict[str, Any]) -> str:
    """Derive a short name from the input path for use in run_id."""
    raw = str((cfg.get("input") or {}).get("path") or "").strip()
    if not raw:
        return "run"
    normalized = os.path.normpath(raw.split("*")[0] or raw)
    name = os.path.basename(normalized)
    for suffix in (".gz", ".warc"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    # Safe for run_id: alphanumeric, dash and underscore
    name = re.sub(r"[^\w\-]", "_", name)
    return name or "run"


def generate_run_id(cfg: Dict[str, Any], auto_cfg: Dict[str, Any]) -> str:
    """Build run_id from run_id_auto config and pipeline config.

    auto_cfg may contain:
    - prefix_digits: first N digits of timestamp (default 4 → year)
    - suffix_digits: last N digits of timestamp (default 6 → time-ish)
    - include_input_name: bool, include name from the input path (default True)
    - separator: string between parts (default "_")
    """
    prefix_digits = int(auto_cfg.get("prefix_digits", 4))
    suffix_digits = int(auto_cfg.get("suffix_digits", 6))
    include_input_name = auto_cfg.get("include_input_name", True)
    separator = str(auto_cfg.get("separator", "_"))

    parts: list[str] = []
    if include_input_name:
        parts.append(_input_name(cfg))
    pre, suf = _timestamp_digits(prefix_digits, suffix_digits)
    if pre:
        parts.append(pre)
    if suf:
        parts.append(suf)
    return separator.join(parts) if parts else "run"


def resolve_run_id(cfg: Dict[str, Any]) -> str:
    """Return run_id: explicit run.run_id, auto-generated from run.run_id_auto, or derived from the input."""
    run = cfg.get("run") or {}
    explicit = run.get("run_id")
    if explicit is not None and str(explicit).strip():
        return str(explicit).strip()
    auto_cfg = run.get("run_id_auto")
    if isinstance(auto_cfg, dict) and auto_cfg.get("enabled", True):
        return generate_run_id(cfg, auto_cfg)
    fmt = str((cfg.get("input") or {}).get("format") or "").strip()
    fmt = re.sub(r"[^\w\-]", "_", fmt)
    name = _input_name(cfg)
    return f"{fmt}_{name}" if fmt else name
