from __future__ import annotations

import uuid
from datetime import datetime, timezone

# Child rows (sections, bindings) get ids derived from the RFP id, so
# re-seeding after a partial failure addresses the same rows.
# RFP ids are `rfp_<uuid4>` and section keys are snake_case, so "__" never
# appears inside either part of a section id.
_CHILD_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "rfp-workflow/rfp-children")

_SECTION_ID_PREFIX = "rfpsec_"
_SECTION_ID_SEP = "__"


def now_iso() -> str:
    # Fixed width so GSI sort keys built from it compare correctly as strings.
    return format_iso(datetime.now(timezone.utc))


def format_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


def type_pk(t: str) -> str:
    return f"TYPE#{t}"


def _require(value: str | None, name: str) -> str:
    v = str(value or "").strip()
    if not v:
        raise ValueError(f"{name} is required")
    return v


def rfp_pk(rfp_id: str) -> str:
    return f"RFP#{_require(rfp_id, 'rfp_id')}"


def rfp_key(rfp_id: str) -> dict[str, str]:
    return {"pk": rfp_pk(rfp_id), "sk": "PROFILE"}


def rfp_index_keys(*, rfp_id: str, company_id: str, created_at: str) -> dict[str, str]:
    # GSI1: firm-wide listing by creation time. GSI2: per-company listing.
    return {
        "gsi1pk": type_pk("RFP"),
        "gsi1sk": f"{created_at}#{rfp_id}",
        "gsi2pk": f"COMPANY#{_require(company_id, 'company_id')}#RFP",
        "gsi2sk": f"{created_at}#{rfp_id}",
    }


def section_id_for(rfp_id: str, key: str) -> str:
    # Carries its own base-table key, so lookups by id need no GSI read.
    return f"{_SECTION_ID_PREFIX}{_require(rfp_id, 'rfp_id')}{_SECTION_ID_SEP}{_require(key, 'section_key')}"


def parse_section_id(section_id: str) -> tuple[str, str] | None:
    """(rfp_id, section_key) encoded in a section id; None for foreign or legacy ids."""
    sid = str(section_id or "").strip()
    if not sid.startswith(_SECTION_ID_PREFIX):
        return None
    rid, sep, key = sid[len(_SECTION_ID_PREFIX) :].rpartition(_SECTION_ID_SEP)
    if not sep or not rid.strip() or not key.strip():
        return None
    return rid, key


def section_item_key(rfp_id: str, key: str) -> dict[str, str]:
    return {"pk": rfp_pk(rfp_id), "sk": f"SECTION#{_require(key, 'section_key')}"}


def section_id_index_pk(section_id: str) -> str:
    return f"RFPSECTION#{_require(section_id, 'section_id')}"


def bindings_id_for(rfp_id: str) -> str:
    rid = _require(rfp_id, "rfp_id")
    return f"rfpbind_{uuid.uuid5(_CHILD_ID_NAMESPACE, f'{rid}:bindings').hex}"


def bindings_key(rfp_id: str) -> dict[str, str]:
    return {"pk": rfp_pk(rfp_id), "sk": "BINDINGS"}


def strip_keys(item: dict) -> dict:
    out = dict(item)
    for k in ("pk", "sk", "gsi1pk", "gsi1sk", "gsi2pk", "gsi2sk", "entityType"):
        out.pop(k, None)
    return out
