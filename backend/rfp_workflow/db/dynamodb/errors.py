from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class DdbError(Exception):
    """Base persistence error for DynamoDB operations.

    Write paths let these propagate to the caller; read paths that promise a
    safe fallback catch them, log, and return an empty result instead.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class DdbConflict(DdbError):
    pass


@dataclass(slots=True)
class DdbValidation(DdbError):
    pass


@dataclass(slots=True)
class DdbThrottled(DdbError):
    pass


@dataclass(slots=True)
class DdbUnavailable(DdbError):
    pass


@dataclass(slots=True)
class DdbInternal(DdbError):
    pass


@dataclass(slots=True)
class PartialDeleteError(DdbError):
    """A cascading delete removed some child rows but not the parent.

    Reported to the caller instead of retried; `deleted` lists the child
    rows (as sort keys) that are already gone.
    """

    rfp_id: str | None = None
    deleted: list[str] = field(default_factory=list)
