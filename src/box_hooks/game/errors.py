from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    INVALID_PLACEMENT = "invalidPlacement"
    INSUFFICIENT_POWER_UP = "insufficientPowerUp"
    CORRUPT_SNAPSHOT = "corruptSnapshot"
    INVARIANT_VIOLATION = "invariantViolation"
    INVALID_ACTION = "invalidAction"


# Numeric codes are stable for external callers (analytics, UI lookups)
ERROR_CODES: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_PLACEMENT: 100,
    ErrorKind.INSUFFICIENT_POWER_UP: 200,
    ErrorKind.CORRUPT_SNAPSHOT: 300,
    ErrorKind.INVARIANT_VIOLATION: 400,
    ErrorKind.INVALID_ACTION: 500,
}


class GameError(Exception):
    """Single engine error type, discriminated by ``kind``.

    Rejected actions carry a ``GameError`` in their result instead of raising;
    only snapshot restoration raises it directly.
    """

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    @property
    def code(self) -> int:
        return ERROR_CODES[self.kind]

    @property
    def is_fatal(self) -> bool:
        return self.kind is ErrorKind.INVARIANT_VIOLATION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }

    def __repr__(self) -> str:
        return f"GameError({self.kind.name}, {self.message!r})"


def invalid_placement(message: str, **details: Any) -> GameError:
    return GameError(ErrorKind.INVALID_PLACEMENT, message, details)


def insufficient_power_up(message: str, **details: Any) -> GameError:
    return GameError(ErrorKind.INSUFFICIENT_POWER_UP, message, details)


def corrupt_snapshot(message: str, **details: Any) -> GameError:
    return GameError(ErrorKind.CORRUPT_SNAPSHOT, message, details)


def invariant_violation(message: str, **details: Any) -> GameError:
    return GameError(ErrorKind.INVARIANT_VIOLATION, message, details)


def invalid_action(message: str, **details: Any) -> GameError:
    return GameError(ErrorKind.INVALID_ACTION, message, details)
