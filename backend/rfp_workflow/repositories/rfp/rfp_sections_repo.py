from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key
from pydantic import ValidationError

from ...db.dynamodb.errors import DdbConflict, DdbError
from ...db.dynamodb.table import get_main_table
from ...modules.rfp.rfp_schemas import GenerationProvenance, RfpSection
from ...modules.rfp.sections import SECTION_LABELS, SECTION_ORDER, is_section_key, sort_sections
from ...observability.logging import get_logger
from .expressions import build_set_update
from .payloads import dump_json, parse_model
from .rfp_keys import (
    now_iso,
    parse_section_id,
    rfp_pk,
    section_id_for,
    section_id_index_pk,
    section_item_key,
    strip_keys,
)

log = get_logger("rfp_sections_repo")

_SECTION_STATUSES = {"empty", "drafted", "approved"}
_SOURCE_TYPES = {"generated", "manual"}

# rfpId/sectionKey are fixed at creation; isStale/staleReason are only
# written through update_section_staleness.
_UPDATABLE_FIELDS = {
    "title",
    "status",
    "contentWorking",
    "contentApproved",
    "sourceType",
    "generatedUsing",
    "needsReview",
    "lastGeneratedAt",
    "reviewNotes",
}


def build_section_item(*, rfp_id: str, key: str, now: str) -> dict[str, Any]:
    sid = section_id_for(rfp_id, key)
    return {
        **section_item_key(rfp_id, key),
        "entityType": "RfpSection",
        "sectionId": sid,
        "rfpId": rfp_id,
        "sectionKey": key,
        "title": SECTION_LABELS[key],
        "status": "empty",
        "needsReview": False,
        "isStale": False,
        "createdAt": now,
        "updatedAt": now,
        # GSI1 resolves a bare section id back to its row.
        "gsi1pk": section_id_index_pk(sid),
        "gsi1sk": "PROFILE",
    }


def build_section_items(*, rfp_id: str, now: str) -> list[dict[str, Any]]:
    return [build_section_item(rfp_id=rfp_id, key=k, now=now) for k in SECTION_ORDER]


def normalize_section(item: dict[str, Any] | None) -> RfpSection | None:
    if not item:
        return None

    obj = strip_keys(item)
    sid = str(obj.get("sectionId") or "").strip()
    key = obj.get("sectionKey")
    if not sid or not is_section_key(key):
        log.warning("rfp_section_unreadable", section_id=sid or None, section_key=key)
        return None

    status = obj.get("status")
    source_type = obj.get("sourceType")
    try:
        return RfpSection(
            id=sid,
            rfpId=str(obj.get("rfpId") or ""),
            sectionKey=key,
            title=str(obj.get("title") or ""),
            status=status if status in _SECTION_STATUSES else "empty",
            contentWorking=obj.get("contentWorking"),
            contentApproved=obj.get("contentApproved"),
            sourceType=source_type if source_type in _SOURCE_TYPES else None,
            generatedUsing=parse_model(
                GenerationProvenance, obj.get("generatedUsing"), field="generatedUsing", record_id=sid
            ),
            needsReview=bool(obj.get("needsReview")),
            lastGeneratedAt=obj.get("lastGeneratedAt"),
            isStale=bool(obj.get("isStale")),
            staleReason=obj.get("staleReason"),
            reviewNotes=obj.get("reviewNotes"),
            createdAt=obj.get("createdAt"),
            updatedAt=obj.get("updatedAt"),
        )
    except ValidationError as e:
        log.warning("rfp_section_unreadable", section_id=sid, errors=e.error_count())
        return None


def list_section_items(rfp_id: str) -> list[dict[str, Any]]:
    """Raw section rows for an RFP (store order). Errors propagate."""
    return get_main_table().query_all(
        key_condition_expression=Key("pk").eq(rfp_pk(rfp_id)) & Key("sk").begins_with("SECTION#"),
        scan_index_forward=True,
        page_size=50,
    )


def get_sections(rfp_id: str) -> list[RfpSection]:
    """All sections of an RFP in SECTION_ORDER. Store failures yield []."""
    if not str(rfp_id or "").strip():
        return []
    try:
        items = list_section_items(rfp_id)
    except DdbError as e:
        log.warning("rfp_sections_read_failed", rfp_id=rfp_id, error=str(e))
        return []

    out = [s for s in (normalize_section(it) for it in items) if s]
    return sort_sections(out)


def get_section_by_key(rfp_id: str, key: str) -> RfpSection | None:
    if not str(rfp_id or "").strip() or not is_section_key(key):
        return None
    try:
        item = get_main_table().get_item(key=section_item_key(rfp_id, key))
    except DdbError as e:
        log.warning("rfp_section_read_failed", rfp_id=rfp_id, section_key=key, error=str(e))
        return None
    return normalize_section(item)


def get_section_by_id(section_id: str) -> RfpSection | None:
    """
    Resolve a section id. Ids minted here encode their row key and are read
    with a consistent GetItem; anything else falls back to the GSI1 lookup.
    """
    sid = str(section_id or "").strip()
    if not sid:
        return None

    parsed = parse_section_id(sid)
    if parsed is not None and is_section_key(parsed[1]):
        rid, key = parsed
        try:
            item = get_main_table().get_item(key=section_item_key(rid, key), consistent_read=True)
        except DdbError as e:
            log.warning("rfp_section_read_failed", section_id=sid, error=str(e))
            return None
        if item and item.get("sectionId") == sid:
            return normalize_section(item)

    try:
        pg = get_main_table().query_page(
            index_name="GSI1",
            key_condition_expression=Key("gsi1pk").eq(section_id_index_pk(sid)),
            limit=1,
        )
    except DdbError as e:
        log.warning("rfp_section_read_failed", section_id=sid, error=str(e))
        return None
    return normalize_section(pg.items[0]) if pg.items else None


def _update_section_row(section: RfpSection, fields: dict[str, Any]) -> RfpSection | None:
    expr, names, values = build_set_update(fields, now=now_iso())
    names["#sid"] = "sectionId"
    values[":sid"] = section.id
    try:
        updated = get_main_table().update_item(
            key=section_item_key(section.rfpId, section.sectionKey),
            update_expression=expr,
            expression_attribute_names=names,
            expression_attribute_values=values,
            # Update only; never upsert a section row for a deleted RFP.
            condition_expression="attribute_exists(pk) AND #sid = :sid",
            return_values="ALL_NEW",
        )
    except DdbConflict:
        return None
    return normalize_section(updated)


def _prepare_updates(updates_obj: dict[str, Any]) -> dict[str, Any]:
    updates: dict[str, Any] = {k: v for k, v in (updates_obj or {}).items() if k in _UPDATABLE_FIELDS}

    if "status" in updates and updates["status"] not in _SECTION_STATUSES:
        raise ValueError(f"status must be one of {sorted(_SECTION_STATUSES)}")
    if updates.get("sourceType") is not None and updates["sourceType"] not in _SOURCE_TYPES:
        raise ValueError(f"sourceType must be one of {sorted(_SOURCE_TYPES)}")

    if "generatedUsing" in updates:
        updates["generatedUsing"] = dump_json(updates["generatedUsing"])
    if "lastGeneratedAt" in updates:
        updates["isStale"] = False
        updates["staleReason"] = None
    return updates


def update_section(
    section_id: str,
    updates_obj: dict[str, Any],
    *,
    section: RfpSection | None = None,
) -> RfpSection | None:
    """
    Merge `updates_obj` into a section; None when the section is unknown.
    Pass `section` when already loaded to skip the id lookup.

    Stamping `lastGeneratedAt` (new generation, or reset to None) clears
    staleness: fresh content is never stale and ungenerated content is empty.
    Invalid `status` / `sourceType` values raise ValueError.
    """
    updates = _prepare_updates(updates_obj)

    target = section if section is not None and section.id == section_id else get_section_by_id(section_id)
    if target is None:
        return None

    return _update_section_row(target, updates)


def update_section_staleness(
    section_id: str,
    is_stale: bool,
    stale_reason: str | None,
    *,
    section: RfpSection | None = None,
) -> RfpSection | None:
    """
    Persist a staleness verdict. Pass `section` when already loaded to skip
    the id lookup.
    """
    if is_stale and not (stale_reason or "").strip():
        raise ValueError("stale_reason is required when is_stale is true")

    target = section if section is not None and section.id == section_id else get_section_by_id(section_id)
    if target is None:
        return None

    return _update_section_row(
        target,
        {"isStale": bool(is_stale), "staleReason": stale_reason if is_stale else None},
    )
