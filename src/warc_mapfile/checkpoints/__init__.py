"""Resumable run state."""

from .store import CheckpointStore

__all__ = ["CheckpointStore"]
