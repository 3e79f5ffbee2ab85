from __future__ import annotations

from typing import Any

from ...db.dynamodb.errors import DdbConflict, DdbError
from ...db.dynamodb.table import get_main_table
from ...modules.rfp.rfp_schemas import RfpBindings, RfpBindingsInput
from ...observability.logging import get_logger
from .expressions import build_set_update
from .payloads import dump_json, parse_string_list
from .rfp_keys import bindings_id_for, bindings_key, now_iso, strip_keys

log = get_logger("rfp_bindings_repo")

_LIST_FIELDS = ("teamMemberIds", "caseStudyIds", "referenceIds")
_ID_FIELDS = ("pricingTemplateId", "planTemplateId")


def _clean_ids(values: Any) -> list[str]:
    # Keep first occurrence order; drop blanks and duplicates.
    seen: dict[str, None] = {}
    for v in values or []:
        s = str(v or "").strip()
        if s:
            seen.setdefault(s, None)
    return list(seen)


def build_bindings_item(inp: RfpBindingsInput, *, now: str) -> dict[str, Any]:
    item: dict[str, Any] = {
        **bindings_key(inp.rfpId),
        "entityType": "RfpBindings",
        "bindingsId": bindings_id_for(inp.rfpId),
        "rfpId": inp.rfpId,
        "teamMemberIds": dump_json(_clean_ids(inp.teamMemberIds)),
        "caseStudyIds": dump_json(_clean_ids(inp.caseStudyIds)),
        "referenceIds": dump_json(_clean_ids(inp.referenceIds)),
        "pricingTemplateId": (inp.pricingTemplateId or "").strip() or None,
        "planTemplateId": (inp.planTemplateId or "").strip() or None,
        "createdAt": now,
        "updatedAt": now,
    }
    return {k: v for k, v in item.items() if v is not None}


def normalize_bindings(item: dict[str, Any] | None) -> RfpBindings | None:
    if not item:
        return None
    obj = strip_keys(item)
    rid = str(obj.get("rfpId") or "").strip()
    return RfpBindings(
        id=str(obj.get("bindingsId") or "") or bindings_id_for(rid),
        rfpId=rid,
        teamMemberIds=parse_string_list(obj.get("teamMemberIds")),
        caseStudyIds=parse_string_list(obj.get("caseStudyIds")),
        referenceIds=parse_string_list(obj.get("referenceIds")),
        pricingTemplateId=obj.get("pricingTemplateId") or None,
        planTemplateId=obj.get("planTemplateId") or None,
        createdAt=obj.get("createdAt"),
        updatedAt=obj.get("updatedAt"),
    )


def get_rfp_bindings(rfp_id: str) -> RfpBindings | None:
    if not str(rfp_id or "").strip():
        return None
    try:
        item = get_main_table().get_item(key=bindings_key(rfp_id))
    except DdbError as e:
        log.warning("rfp_bindings_read_failed", rfp_id=rfp_id, error=str(e))
        return None
    return normalize_bindings(item)


def create_rfp_bindings(inp: RfpBindingsInput) -> RfpBindings:
    """Create the bindings row for an RFP. A second create raises DdbConflict."""
    item = build_bindings_item(inp, now=now_iso())
    get_main_table().put_item(item=item, condition_expression="attribute_not_exists(pk)")
    return normalize_bindings(item)  # type: ignore[return-value]


def update_rfp_bindings(rfp_id: str, updates_obj: dict[str, Any]) -> RfpBindings | None:
    """
    Replace the given binding fields in place; None when the RFP has no
    bindings row. Bindings are not versioned: sections that depended on the
    old set pick the change up through staleness.
    """
    if not str(rfp_id or "").strip():
        return None

    updates: dict[str, Any] = {}
    for k in _LIST_FIELDS:
        if k in (updates_obj or {}):
            updates[k] = dump_json(_clean_ids(updates_obj[k]))
    for k in _ID_FIELDS:
        if k in (updates_obj or {}):
            updates[k] = str(updates_obj[k] or "").strip() or None

    expr, names, values = build_set_update(updates, now=now_iso())
    try:
        updated = get_main_table().update_item(
            key=bindings_key(rfp_id),
            update_expression=expr,
            expression_attribute_names=names,
            expression_attribute_values=values,
            condition_expression="attribute_exists(pk)",
            return_values="ALL_NEW",
        )
    except DdbConflict:
        return None
    return normalize_bindings(updated)
