"""Key construction.

Keys combine the run's namespace prefix with a record's canonical identifier:

- scope "global":   prefix + separator + identifier
- scope "per_file": prefix + group + separator + identifier
  (group = source file stem; groups records of one input file together in the
  sort order, requires a non-empty separator)

A non-empty separator is reserved: an identifier or group containing it is
rejected, so two different (group, identifier) pairs can never build the same key.

Style "uuid" replaces the plain key by its name-based UUID (uuid5 over the URL
namespace), for consumers that want fixed-width keys.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import ArgumentError, MalformedRecordError, MissingIdentifierError


class KeyScope(str, Enum):
    GLOBAL = "global"
    PER_FILE = "per_file"


class KeyStyle(str, Enum):
    PLAIN = "plain"
    UUID = "uuid"


@dataclass(frozen=True)
class KeyPolicy:
    scope: KeyScope = KeyScope.GLOBAL
    separator: str = ""
    style: KeyStyle = KeyStyle.PLAIN

    @classmethod
    def from_values(cls, scope: str = "global", separator: str = "", style: str = "plain") -> "KeyPolicy":
        try:
            policy = cls(scope=KeyScope(scope), separator=separator or "", style=KeyStyle(style))
        except ValueError as e:
            raise ArgumentError(f"Invalid key policy: {e}") from e
        policy.validate()
        return policy

    def validate(self) -> None:
        if self.scope == KeyScope.PER_FILE and not self.separator:
            raise ArgumentError("Key scope 'per_file' requires a non-empty key separator")


def make_key(
    identifier: Optional[str],
    prefix: str,
    *,
    policy: KeyPolicy = KeyPolicy(),
    group: Optional[str] = None,
    source: Optional[str] = None,
    offset: Optional[int] = None,
) -> str:
    if identifier is None or not identifier.strip():
        raise MissingIdentifierError("record has no identifier for key construction", source, offset)

    sep = policy.separator
    if sep and sep in identifier:
        raise MalformedRecordError(
            f"identifier {identifier!r} contains the reserved key separator {sep!r}",
            source, offset, "RESERVED_SEPARATOR",
        )

    if policy.scope == KeyScope.PER_FILE:
        if not group:
            raise MalformedRecordError("record has no source group for per-file keys", source, offset, "MISSING_GROUP")
        if sep in group:
            raise MalformedRecordError(
                f"source group {group!r} contains the reserved key separator {sep!r}",
                source, offset, "RESERVED_SEPARATOR",
            )
        key = f"{prefix}{group}{sep}{identifier}"
    else:
        key = f"{prefix}{sep}{identifier}"

    try:
        key.encode("utf-8")
    except UnicodeEncodeError:
        raise MalformedRecordError(
            f"identifier {identifier!r} is not valid UTF-8", source, offset, "BAD_IDENTIFIER"
        ) from None

    if policy.style == KeyStyle.UUID:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, key))
    return key
