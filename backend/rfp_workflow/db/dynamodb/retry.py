from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from ...observability.logging import get_logger
from .errors import (
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")

log = get_logger("ddb_retry")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay_s: float = 0.05
    max_delay_s: float = 1.5


_RETRYABLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    # Returned directly by TransactWriteItems under contention.
    "TransactionConflictException",
}

# Per-item cancellation reason codes (no "Exception" suffix).
_TRANSACTION_RETRYABLE_CODES = {
    "TransactionConflict",
    "ThrottlingError",
    "ProvisionedThroughputExceeded",
}


def _backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    # Full jitter exponential backoff.
    exp = min(policy.max_delay_s, policy.base_delay_s * (2 ** max(0, attempt - 1)))
    return random.random() * exp


def _client_error_field(e: ClientError, section: str, name: str) -> str | None:
    try:
        return (e.response or {}).get(section, {}).get(name)
    except Exception:
        return None


def _cancellation_codes(e: ClientError) -> list[str]:
    try:
        reasons = (e.response or {}).get("CancellationReasons") or []
        return [str((r or {}).get("Code") or "None") for r in reasons]
    except Exception:
        return []


def _is_retryable_client_error(e: ClientError) -> bool:
    code = _client_error_field(e, "Error", "Code") or ""
    if code in _RETRYABLE_CODES:
        return True
    # TransactWriteItems cancels with per-item reasons; only contention is retryable.
    if code == "TransactionCanceledException":
        return any(c in _TRANSACTION_RETRYABLE_CODES for c in _cancellation_codes(e))
    return False


def _map_botocore_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    ctx: dict[str, Any] = {"operation": operation, "table_name": table_name, "key": key, "cause": exc}

    if isinstance(exc, ClientError):
        code = _client_error_field(exc, "Error", "Code") or ""
        ctx["aws_request_id"] = _client_error_field(exc, "ResponseMetadata", "RequestId")

        if code == "ConditionalCheckFailedException":
            return DdbConflict(message="DynamoDB conditional check failed", retryable=False, **ctx)

        # A transaction whose only failures are condition checks is a conflict, not an outage.
        if code == "TransactionCanceledException" and not _is_retryable_client_error(exc):
            codes = _cancellation_codes(exc)
            if "ConditionalCheckFailed" in codes:
                return DdbConflict(message="DynamoDB transaction condition failed", retryable=False, **ctx)

        if code in ("ValidationException", "ParamValidationError"):
            return DdbValidation(message="DynamoDB request validation failed", retryable=False, **ctx)

        if code in ("AccessDeniedException", "UnrecognizedClientException", "ResourceNotFoundException"):
            return DdbUnavailable(message=f"DynamoDB unavailable ({code})", retryable=False, **ctx)

        if _is_retryable_client_error(exc):
            return DdbThrottled(message="DynamoDB request throttled or unavailable", retryable=True, **ctx)

        return DdbInternal(message=f"DynamoDB request failed ({code or 'ClientError'})", retryable=False, **ctx)

    if isinstance(exc, BotoCoreError):
        return DdbUnavailable(message="DynamoDB client error", retryable=True, **ctx)

    return DdbInternal(message="Unexpected DynamoDB error", retryable=False, **ctx)


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            mapped = _map_botocore_error(operation=operation, table_name=table_name, key=key, exc=e)

            # Never retry validation/conflict errors.
            if not mapped.retryable or attempt >= attempts:
                if mapped is e:
                    raise
                raise mapped from e

            delay = _backoff_delay(policy, attempt)
            log.info(
                "ddb_call_retry",
                operation=operation,
                table_name=table_name,
                attempt=attempt,
                delay_s=round(delay, 3),
                error=mapped.message,
            )
            sleep(delay)

    raise DdbInternal(message="DynamoDB request failed", operation=operation, table_name=table_name, key=key)
