from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key
from pydantic import ValidationError

from ...db.dynamodb.errors import DdbConflict, DdbError, PartialDeleteError
from ...db.dynamodb.table import get_main_table
from ...modules.rfp.rfp_schemas import (
    RFP_STATUSES,
    Rfp,
    RfpBindingsInput,
    RfpInput,
    RfpWithDetails,
    SubmissionSnapshot,
)
from ...modules.rfp.sections import SECTION_ORDER
from ...observability.logging import get_logger
from .expressions import build_set_update
from .payloads import dump_json, parse_json_list, parse_json_object, parse_model, parse_string_list
from .rfp_bindings_repo import build_bindings_item, get_rfp_bindings
from .rfp_keys import (
    bindings_key,
    new_id,
    now_iso,
    rfp_index_keys,
    rfp_key,
    section_item_key,
    strip_keys,
)
from .rfp_sections_repo import build_section_items, get_sections, list_section_items

log = get_logger("rfps_repo")

_SELECTED_PATHS = {"project", "retainer"}

# companyId is part of the GSI2 key and never changes after create.
_ALLOWED_UPDATES = {
    "title",
    "status",
    "dueDate",
    "scopeSummary",
    "sourceDocUrl",
    "sourceText",
    "requirementsChecklist",
    "selectedPath",
    "opportunityId",
    "parsedRequirements",
    "competitors",
    "winStrategy",
    "submissionSnapshot",
}
_JSON_FIELDS = {"requirementsChecklist", "parsedRequirements", "competitors", "winStrategy", "submissionSnapshot"}


def _has_id(rfp_id: str | None) -> bool:
    return bool(str(rfp_id or "").strip())


def _check_status(status: Any) -> None:
    # Vocabulary only; transitions between statuses are not enforced here.
    if status not in RFP_STATUSES:
        raise ValueError(f"status must be one of {list(RFP_STATUSES)}")


def normalize_rfp(item: dict[str, Any] | None) -> Rfp | None:
    if not item:
        return None

    obj = strip_keys(item)
    rid = str(obj.get("rfpId") or "").strip()
    if not rid:
        return None

    path = obj.get("selectedPath")
    return Rfp(
        id=rid,
        companyId=str(obj.get("companyId") or ""),
        opportunityId=obj.get("opportunityId"),
        title=str(obj.get("title") or ""),
        status=str(obj.get("status") or "intake"),
        dueDate=obj.get("dueDate"),
        scopeSummary=obj.get("scopeSummary"),
        sourceDocUrl=obj.get("sourceDocUrl"),
        sourceText=obj.get("sourceText"),
        requirementsChecklist=parse_json_list(obj.get("requirementsChecklist")),
        selectedPath=path if path in _SELECTED_PATHS else "project",
        parsedRequirements=parse_json_object(obj.get("parsedRequirements")),
        competitors=parse_string_list(obj.get("competitors")),
        winStrategy=parse_json_object(obj.get("winStrategy")),
        submissionSnapshot=parse_model(
            SubmissionSnapshot, obj.get("submissionSnapshot"), field="submissionSnapshot", record_id=rid
        ),
        createdBy=obj.get("createdBy"),
        createdAt=obj.get("createdAt"),
        updatedAt=obj.get("updatedAt"),
    )


def build_rfp_item(*, rfp_id: str, inp: RfpInput, now: str) -> dict[str, Any]:
    item: dict[str, Any] = {
        **rfp_key(rfp_id),
        "entityType": "RFP",
        "rfpId": rfp_id,
        "companyId": inp.companyId,
        "opportunityId": inp.opportunityId or None,
        "title": inp.title,
        "status": inp.status or "intake",
        "dueDate": inp.dueDate or None,
        "scopeSummary": inp.scopeSummary or None,
        "sourceDocUrl": inp.sourceDocUrl or None,
        "sourceText": inp.sourceText or None,
        "requirementsChecklist": dump_json(inp.requirementsChecklist or []),
        "selectedPath": inp.selectedPath or "project",
        "parsedRequirements": dump_json(inp.parsedRequirements),
        "competitors": dump_json(inp.competitors or []),
        "winStrategy": dump_json(inp.winStrategy),
        "createdBy": inp.createdBy or None,
        "createdAt": now,
        "updatedAt": now,
        **rfp_index_keys(rfp_id=rfp_id, company_id=inp.companyId, created_at=now),
    }
    return {k: v for k, v in item.items() if v is not None}


def create_rfp(input_obj: RfpInput | dict[str, Any]) -> Rfp:
    """
    Create an RFP with its seven empty sections and empty bindings.

    All nine rows go in one TransactWriteItems call: either all exist
    afterwards or none do. Store failures propagate as DdbError.
    """
    inp = input_obj if isinstance(input_obj, RfpInput) else RfpInput.model_validate(input_obj)
    _check_status(inp.status)
    rfp_id = new_id("rfp")
    now = now_iso()

    item = build_rfp_item(rfp_id=rfp_id, inp=inp, now=now)
    children = build_section_items(rfp_id=rfp_id, now=now)
    children.append(build_bindings_item(RfpBindingsInput(rfpId=rfp_id), now=now))

    t = get_main_table()
    try:
        t.transact_write(
            puts=[
                t.tx_put(item=it, condition_expression="attribute_not_exists(pk) AND attribute_not_exists(sk)")
                for it in [item, *children]
            ]
        )
    except DdbError as e:
        log.error("rfp_create_failed", rfp_id=rfp_id, company_id=inp.companyId, error=str(e))
        raise

    log.info("rfp_created", rfp_id=rfp_id, company_id=inp.companyId, sections=len(SECTION_ORDER))
    return normalize_rfp(item)  # type: ignore[return-value]


def ensure_rfp_children(rfp_id: str) -> int:
    """
    Seed whichever sections / bindings row an RFP is missing.

    Safe to call repeatedly: rows are addressed by deterministic keys and
    written with conditional puts, so existing rows are never duplicated or
    overwritten. Returns the number of rows created.
    """
    if not _has_id(rfp_id):
        return 0
    t = get_main_table()
    if not t.get_item(key=rfp_key(rfp_id), consistent_read=True):
        log.warning("rfp_children_seed_skipped", rfp_id=rfp_id, reason="rfp_not_found")
        return 0

    now = now_iso()
    rows = build_section_items(rfp_id=rfp_id, now=now)
    rows.append(build_bindings_item(RfpBindingsInput(rfpId=rfp_id), now=now))

    created = 0
    for row in rows:
        try:
            t.put_item(item=row, condition_expression="attribute_not_exists(pk) AND attribute_not_exists(sk)")
            created += 1
        except DdbConflict:
            continue

    if created:
        log.info("rfp_children_seeded", rfp_id=rfp_id, created=created)
    return created


def get_rfp_by_id(rfp_id: str) -> Rfp | None:
    if not _has_id(rfp_id):
        return None
    try:
        item = get_main_table().get_item(key=rfp_key(rfp_id))
    except DdbError as e:
        log.warning("rfp_read_failed", rfp_id=rfp_id, error=str(e))
        return None
    return normalize_rfp(item)


def list_rfps_for_company(company_id: str) -> list[Rfp]:
    """Newest first. Store failures yield []."""
    cid = str(company_id or "").strip()
    if not cid:
        return []
    try:
        items = get_main_table().query_all(
            index_name="GSI2",
            key_condition_expression=Key("gsi2pk").eq(f"COMPANY#{cid}#RFP"),
            scan_index_forward=False,
        )
    except DdbError as e:
        log.warning("rfp_list_failed", company_id=cid, error=str(e))
        return []
    return [r for r in (normalize_rfp(it) for it in items) if r]


def get_rfp_with_details(rfp_id: str) -> RfpWithDetails | None:
    rfp = get_rfp_by_id(rfp_id)
    if rfp is None:
        return None
    return RfpWithDetails(rfp=rfp, sections=get_sections(rfp_id), bindings=get_rfp_bindings(rfp_id))


def _prepare_updates(updates_obj: dict[str, Any]) -> dict[str, Any]:
    updates = {k: v for k, v in (updates_obj or {}).items() if k in _ALLOWED_UPDATES}

    if "status" in updates:
        _check_status(updates["status"])
    if "selectedPath" in updates and updates["selectedPath"] not in _SELECTED_PATHS:
        raise ValueError(f"selectedPath must be one of {sorted(_SELECTED_PATHS)}")
    if updates.get("submissionSnapshot") is not None:
        try:
            updates["submissionSnapshot"] = SubmissionSnapshot.model_validate(updates["submissionSnapshot"])
        except ValidationError as e:
            raise ValueError(f"invalid submissionSnapshot: {e.error_count()} error(s)") from e

    for k in _JSON_FIELDS & updates.keys():
        updates[k] = dump_json(updates[k])
    return updates


def update_rfp(rfp_id: str, updates_obj: dict[str, Any]) -> Rfp | None:
    """
    Merge the provided fields; `updatedAt` always moves. None when unknown.

    `submissionSnapshot` is write-once: recording a second one raises
    DdbConflict.
    """
    if not _has_id(rfp_id):
        return None
    updates = _prepare_updates(updates_obj)
    expr, names, values = build_set_update(updates, now=now_iso())

    condition = "attribute_exists(pk)"
    if "submissionSnapshot" in updates:
        names["#snap"] = "submissionSnapshot"
        values[":nullType"] = "NULL"
        condition += " AND (attribute_not_exists(#snap) OR attribute_type(#snap, :nullType))"

    t = get_main_table()
    try:
        updated = t.update_item(
            key=rfp_key(rfp_id),
            update_expression=expr,
            expression_attribute_names=names,
            expression_attribute_values=values,
            condition_expression=condition,
            return_values="ALL_NEW",
        )
    except DdbConflict:
        if "submissionSnapshot" in updates and t.get_item(key=rfp_key(rfp_id), consistent_read=True):
            log.warning("rfp_snapshot_already_recorded", rfp_id=rfp_id)
            raise DdbConflict(
                message="submissionSnapshot is already recorded for this RFP",
                operation="UpdateItem",
                table_name=t.table_name,
                key=rfp_key(rfp_id),
            )
        return None

    return normalize_rfp(updated)


def _child_keys(rfp_id: str) -> list[dict[str, str]]:
    keys = [section_item_key(rfp_id, k) for k in SECTION_ORDER]
    known = {k["sk"] for k in keys}
    # Pick up section rows outside the fixed seven (legacy keys) as well.
    for it in list_section_items(rfp_id):
        sk = str(it.get("sk") or "")
        if sk and sk not in known:
            keys.append({"pk": it["pk"], "sk": sk})
            known.add(sk)
    keys.append(bindings_key(rfp_id))
    return keys


def delete_rfp(rfp_id: str) -> bool:
    """
    Delete an RFP and its children: sections and bindings first, then the
    RFP row. False when the RFP does not exist.

    There is no retry loop here; a failure after some children are gone is
    logged and raised as PartialDeleteError listing what was removed.
    """
    if not _has_id(rfp_id):
        return False

    t = get_main_table()
    if not t.get_item(key=rfp_key(rfp_id), consistent_read=True):
        return False

    deleted: list[str] = []
    try:
        for key in _child_keys(rfp_id):
            t.delete_item(key=key)
            deleted.append(key["sk"])
        t.delete_item(key=rfp_key(rfp_id))
    except DdbError as e:
        if not deleted:
            log.error("rfp_delete_failed", rfp_id=rfp_id, error=str(e))
            raise
        log.error("rfp_delete_partial_failure", rfp_id=rfp_id, deleted=deleted, error=str(e))
        raise PartialDeleteError(
            message=f"RFP {rfp_id} was only partially deleted",
            operation=e.operation,
            table_name=t.table_name,
            key=rfp_key(rfp_id),
            cause=e,
            rfp_id=rfp_id,
            deleted=deleted,
        ) from e

    log.info("rfp_deleted", rfp_id=rfp_id, children_deleted=len(deleted))
    return True
