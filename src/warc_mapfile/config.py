"""Build configuration.

Configuration comes from an optional YAML file (same layout as `configs/build.yaml`)
with CLI flags layered on top:

    run:        run_id, run_id_auto, work_dir, log_dir, resume, keep_runs
    input:      path, format, split_size
    keys:       prefix, scope, separator, style
    records:    on_malformed
    execution:  mode, workers, max_retries, split_timeout, run_entries, progress, ray.address
    store:      output, index_interval

The malformed-record policy is a deliberate choice: DEFAULT_ON_MALFORMED ("abort")
applies when nothing is configured, and the effective value is logged at start.
"""

from __future__ import annotations
import copy
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from .errors import ArgumentError
from .mapper.keys import KeyPolicy
from .run_id import resolve_run_id
from .store.writer import DEFAULT_INDEX_INTERVAL

ON_MALFORMED_ABORT = "abort"
ON_MALFORMED_SKIP = "skip"
ON_MALFORMED_CHOICES = (ON_MALFORMED_ABORT, ON_MALFORMED_SKIP)
DEFAULT_ON_MALFORMED = ON_MALFORMED_ABORT

EXECUTION_MODES = ("local", "ray")
RESUME_MODES = ("auto", "beginning")

# (section, key) -> BuildConfig field
_FIELDS = {
    ("run", "run_id"): "run_id",
    ("run", "work_dir"): "work_dir",
    ("run", "log_dir"): "log_dir",
    ("run", "resume"): "resume",
    ("run", "keep_runs"): "keep_runs",
    ("input", "path"): "input_path",
    ("input", "format"): "format",
    ("input", "split_size"): "split_size",
    ("keys", "prefix"): "prefix",
    ("keys", "scope"): "key_scope",
    ("keys", "separator"): "key_separator",
    ("keys", "style"): "key_style",
    ("records", "on_malformed"): "on_malformed",
    ("execution", "mode"): "mode",
    ("execution", "workers"): "workers",
    ("execution", "max_retries"): "max_retries",
    ("execution", "split_timeout"): "split_timeout",
    ("execution", "run_entries"): "run_entries",
    ("execution", "progress"): "progress",
    ("store", "output"): "output",
    ("store", "index_interval"): "index_interval",
}


def load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ArgumentError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(cfg, dict):
        raise ArgumentError(f"Config file {path} must hold a mapping")
    return cfg


def set_option(cfg: Dict[str, Any], section: str, key: str, value: Any) -> None:
    """Set `cfg[section][key]` unless `value` is None (unset CLI flag)."""
    if value is None:
        return
    cfg.setdefault(section, {})
    cfg[section][key] = value


@dataclass
class BuildConfig:
    prefix: Optional[str] = None
    input_path: Optional[str] = None
    format: Optional[str] = None
    output: Optional[str] = None

    on_malformed: str = DEFAULT_ON_MALFORMED
    key_scope: str = "global"
    key_separator: str = ""
    key_style: str = "plain"
    split_size: Optional[int] = None

    mode: str = "local"
    workers: int = 1
    max_retries: int = 3
    split_timeout: Optional[float] = None
    run_entries: int = 100_000
    progress: bool = True
    ray_address: Optional[str] = None

    index_interval: int = DEFAULT_INDEX_INTERVAL

    run_id: str = "run"
    work_dir: Optional[str] = None
    log_dir: Optional[str] = None
    resume: str = "auto"
    keep_runs: bool = False

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "BuildConfig":
        cfg = copy.deepcopy(cfg or {})
        kwargs: Dict[str, Any] = {}
        for (section, key), field_name in _FIELDS.items():
            sec = cfg.get(section) or {}
            if not isinstance(sec, dict):
                raise ArgumentError(f"Config section '{section}' must be a mapping")
            if key in sec and sec[key] is not None:
                kwargs[field_name] = sec[key]
        ray_cfg = (cfg.get("execution") or {}).get("ray") or {}
        if ray_cfg.get("address"):
            kwargs["ray_address"] = ray_cfg["address"]
        kwargs["run_id"] = resolve_run_id(cfg)
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ArgumentError(f"Invalid configuration: {e}") from e

    def missing_required(self) -> list:
        names = {"prefix": "--prefix", "input_path": "--input", "format": "--format", "output": "--output"}
        return [flag for attr, flag in names.items() if getattr(self, attr) is None]

    def validate(self) -> None:
        """Raise ArgumentError on any invalid value. Touches no files."""
        missing = self.missing_required()
        if missing:
            raise ArgumentError(f"Missing required options: {', '.join(missing)}")
        if not isinstance(self.prefix, str):
            raise ArgumentError("Namespace prefix must be a string")
        if not str(self.input_path).strip():
            raise ArgumentError("Input path must not be empty")
        if not str(self.output).strip():
            raise ArgumentError("Output path must not be empty")
        if self.on_malformed not in ON_MALFORMED_CHOICES:
            raise ArgumentError(
                f"Invalid malformed-record policy '{self.on_malformed}'. Choose one of: {', '.join(ON_MALFORMED_CHOICES)}"
            )
        if self.mode not in EXECUTION_MODES:
            raise ArgumentError(f"Invalid execution mode '{self.mode}'. Choose one of: {', '.join(EXECUTION_MODES)}")
        if self.resume not in RESUME_MODES:
            raise ArgumentError(f"Invalid resume mode '{self.resume}'. Choose one of: {', '.join(RESUME_MODES)}")
        for name, minimum in (("workers", 1), ("max_retries", 0), ("run_entries", 1), ("index_interval", 1)):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                raise ArgumentError(f"'{name}' must be an integer >= {minimum}, got {value!r}")
        if self.split_size is not None and (not isinstance(self.split_size, int) or self.split_size <= 0):
            raise ArgumentError(f"'split_size' must be a positive integer, got {self.split_size!r}")
        if self.split_timeout is not None and (
            not isinstance(self.split_timeout, (int, float)) or isinstance(self.split_timeout, bool) or self.split_timeout <= 0
        ):
            raise ArgumentError(f"'split_timeout' must be a positive number of seconds, got {self.split_timeout!r}")
        self.key_policy()

    def key_policy(self) -> KeyPolicy:
        return KeyPolicy.from_values(self.key_scope, self.key_separator, self.key_style)

    def resolved_work_dir(self) -> str:
        if self.work_dir:
            return self.work_dir
        return os.path.abspath(str(self.output).rstrip("/\\")) + ".work"

    def fingerprint_dict(self) -> Dict[str, Any]:
        """Settings that change the produced store; a change invalidates checkpoints."""
        return {
            "prefix": self.prefix,
            "format": self.format,
            "on_malformed": self.on_malformed,
            "key_scope": self.key_scope,
            "key_separator": self.key_separator,
            "key_style": self.key_style,
            "split_size": self.split_size,
            "run_entries": self.run_entries,
        }

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for (section, key), field_name in _FIELDS.items():
            out.setdefault(section, {})[key] = getattr(self, field_name)
        out["execution"]["ray"] = {"address": self.ray_address}
        return out
