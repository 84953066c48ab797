"""Error taxonomy.

- ArgumentError: invalid or missing CLI/config input, raised before any job resource exists
- UnsupportedFormatError: format name outside the fixed registry
- MalformedRecordError: corrupt or truncated record during splitting/parsing
- MissingIdentifierError: record lacks the header used for key construction
- WorkerFailure: a split could not be processed after all retries, or its result is missing
- StoreIntegrityError: duplicate/out-of-order keys or a corrupt store file

Record-level errors carry enough context (source, offset, reason) to end up in the
rejection log. All errors survive pickling so they cross process-pool boundaries intact.
"""

from __future__ import annotations
from typing import Optional, Sequence


class MapFileError(Exception):
    """Base class for all pipeline errors."""


class ArgumentError(MapFileError):
    pass


class UnsupportedFormatError(MapFileError):
    def __init__(self, format_name: str, valid_names: Sequence[str] = ()):
        self.format_name = format_name
        self.valid_names = list(valid_names)
        super().__init__(
            f"Input format '{format_name}' is not supported. "
            f"Supported input formats are: {', '.join(self.valid_names)}"
        )

    def __reduce__(self):
        return (self.__class__, (self.format_name, self.valid_names))


class MalformedRecordError(MapFileError):
    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        offset: Optional[int] = None,
        reason: str = "MALFORMED",
    ):
        self.message = message
        self.source = source
        self.offset = offset
        self.reason = reason
        super().__init__(message)

    def __str__(self) -> str:
        if self.source is None:
            return self.message
        if self.offset is None:
            return f"{self.source}: {self.message}"
        return f"{self.source}@{self.offset}: {self.message}"

    def __reduce__(self):
        return (self.__class__, (self.message, self.source, self.offset, self.reason))


class MissingIdentifierError(MalformedRecordError):
    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        offset: Optional[int] = None,
        reason: str = "MISSING_IDENTIFIER",
    ):
        super().__init__(message, source, offset, reason)


class WorkerFailure(MapFileError):
    def __init__(self, message: str, split_id: Optional[str] = None, attempts: int = 0):
        self.split_id = split_id
        self.attempts = attempts
        super().__init__(message)

    def __reduce__(self):
        return (self.__class__, (self.args[0], self.split_id, self.attempts))


class StoreIntegrityError(MapFileError):
    pass
