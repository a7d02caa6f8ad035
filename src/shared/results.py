"""
Result types shared by validation and persistence code.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ContractResult(Generic[T]):
    """Success-with-value or failure-with-errors."""
    value: Optional[T] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    @classmethod
    def success(cls, value: T) -> "ContractResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, errors: List[str]) -> "ContractResult[T]":
        return cls(value=None, errors=list(errors))


class WriteStatus(str, Enum):
    """Outcome of a best-effort persistence operation."""
    OK = "ok"
    FAILED = "failed"  # logged, batch continues
    FATAL = "fatal"  # batch must stop


@dataclass(frozen=True)
class WriteOutcome:
    """Result of a memory, archive, or audit write."""
    status: WriteStatus
    error: Optional[str] = None
    path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.OK

    @classmethod
    def success(cls, path: Optional[Path] = None) -> "WriteOutcome":
        return cls(status=WriteStatus.OK, path=path)

    @classmethod
    def failed(cls, error: str, fatal: bool = False) -> "WriteOutcome":
        return cls(status=WriteStatus.FATAL if fatal else WriteStatus.FAILED, error=error)
