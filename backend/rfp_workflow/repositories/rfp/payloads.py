from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ...observability.logging import get_logger

log = get_logger("rfp_payloads")

M = TypeVar("M", bound=BaseModel)


def _json_default(value: Any) -> Any:
    # Numbers read back from DynamoDB arrive as Decimal.
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_json(value: Any) -> str | None:
    """Structured payloads are stored as JSON text; None stays None."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", exclude_none=True)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def parse_json_object(value: Any) -> dict[str, Any] | None:
    if not value:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def parse_json_list(value: Any) -> list[Any]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def parse_string_list(value: Any) -> list[str]:
    return [str(x) for x in parse_json_list(value) if x is not None and str(x).strip()]


def parse_model(model: type[M], value: Any, *, field: str, record_id: str | None = None) -> M | None:
    """
    Decode a stored payload into `model`; anything malformed becomes None.

    These payloads are enrichments, never identity, so a bad one must not
    make the whole record unreadable.
    """
    obj = parse_json_object(value)
    if obj is None:
        if value:
            log.warning("rfp_payload_malformed", field=field, record_id=record_id, reason="not_a_json_object")
        return None
    try:
        return model.model_validate(obj)
    except ValidationError as e:
        log.warning("rfp_payload_malformed", field=field, record_id=record_id, errors=e.error_count())
        return None
