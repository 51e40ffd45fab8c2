"""Smart Code Validator — parses business classification codes into an opaque value type.

Invariants:
    - Grammar: ^[A-Z]+(\\.[A-Z0-9_]+)+\\.v[0-9]+$ — at least one segment between prefix and version
    - validate() is PURE: returns SmartCode on success, InvalidReason on failure, never raises
    - Invalid codes are rejected, never coerced (no upper-casing, no trimming)
    - SmartCode is immutable; a new meaning is a new version (next_version), never a mutation

Design Decisions:
    - Parse once at the write boundary: downstream code holds SmartCode, never re-parses raw strings
    - InvalidReason is a closed enum so callers and tests match on cause without string parsing
"""

import re
from dataclasses import dataclass
from enum import Enum

from hera_core.core.errors import ValidationError

SMART_CODE_PATTERN = re.compile(r"^[A-Z]+(\.[A-Z0-9_]+)+\.v[0-9]+$")
_VERSION_SUFFIX = re.compile(r"\.v[0-9]+$")


class InvalidReason(str, Enum):
    NOT_A_STRING = "not_a_string"
    EMPTY = "empty"
    EMPTY_SEGMENT = "empty_segment"
    MISSING_VERSION = "missing_version"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class SmartCode:
    """A validated classification code. Construct via validate() or parse()."""
    value: str

    @property
    def segments(self) -> tuple[str, ...]:
        """Segments excluding the version suffix."""
        return tuple(self.value.split(".")[:-1])

    @property
    def prefix(self) -> str:
        return self.segments[0]

    @property
    def version(self) -> int:
        return int(self.value.rsplit(".v", 1)[1])

    def next_version(self) -> "SmartCode":
        """Successor code with the same segments and version + 1."""
        return SmartCode(f"{'.'.join(self.segments)}.v{self.version + 1}")

    def __str__(self) -> str:
        return self.value


def validate(code: object) -> SmartCode | InvalidReason:
    """Validate a raw code. Pure, never raises."""
    if not isinstance(code, str):
        return InvalidReason.NOT_A_STRING
    if not code:
        return InvalidReason.EMPTY
    if SMART_CODE_PATTERN.match(code):
        return SmartCode(code)
    if any(part == "" for part in code.split(".")):
        return InvalidReason.EMPTY_SEGMENT
    if not _VERSION_SUFFIX.search(code):
        return InvalidReason.MISSING_VERSION
    return InvalidReason.MALFORMED


def parse(code: object, field: str = "smart_code") -> SmartCode:
    """validate() for write paths: raises ValidationError instead of returning a reason."""
    result = validate(code)
    if isinstance(result, InvalidReason):
        raise ValidationError(f"invalid smart code ({result.value})", field=field)
    return result


def is_valid(code: object) -> bool:
    return isinstance(validate(code), SmartCode)
