from __future__ import annotations

from datetime import datetime, timedelta, timezone

from boto3.dynamodb.conditions import Attr, Key

from ...db.dynamodb.errors import DdbError
from ...db.dynamodb.table import get_main_table
from ...modules.rfp.rfp_schemas import DECIDED_STATUSES, RfpOutcome, SubmissionSnapshot
from ...modules.rfp.staleness import parse_timestamp
from ...observability.logging import get_logger
from ...settings import settings
from .payloads import parse_model
from .rfp_keys import format_iso, type_pk

log = get_logger("rfp_outcomes_repo")

TIME_RANGE_DAYS: dict[str, int | None] = {
    "90d": 90,
    "180d": 180,
    "365d": 365,
    "all": None,
}


def _cutoff(time_range: str, now: datetime) -> datetime | None:
    if time_range not in TIME_RANGE_DAYS:
        raise ValueError(f"time_range must be one of {list(TIME_RANGE_DAYS)}")
    days = TIME_RANGE_DAYS[time_range]
    return None if days is None else now - timedelta(days=days)


def list_firm_outcomes(time_range: str = "all", *, now: datetime | None = None) -> list[RfpOutcome]:
    """
    Decided RFPs (won/lost) that carry a submission snapshot, newest first.

    Firm-wide: not scoped to a company. Store failures are logged and give [].
    """
    cutoff = _cutoff(time_range, now or datetime.now(timezone.utc))

    key_cond = Key("gsi1pk").eq(type_pk("RFP"))
    if cutoff is not None:
        # gsi1sk is "{createdAt}#{rfpId}", so a bare timestamp is a lower bound.
        key_cond = key_cond & Key("gsi1sk").gte(format_iso(cutoff))

    try:
        items = get_main_table().query_all(
            index_name="GSI1",
            key_condition_expression=key_cond,
            filter_expression=Attr("status").is_in(sorted(DECIDED_STATUSES)) & Attr("submissionSnapshot").exists(),
            page_size=settings.rfp_outcomes_page_size,
            scan_index_forward=False,
        )
    except DdbError as e:
        log.warning("rfp_outcomes_read_failed", time_range=time_range, error=str(e))
        return []

    out: list[RfpOutcome] = []
    for it in items:
        rid = str(it.get("rfpId") or "").strip()
        status = it.get("status")
        created = parse_timestamp(it.get("createdAt"))
        if not rid or status not in DECIDED_STATUSES or created is None:
            continue
        if cutoff is not None and created < cutoff:
            continue
        snap = parse_model(SubmissionSnapshot, it.get("submissionSnapshot"), field="submissionSnapshot", record_id=rid)
        if snap is None:
            continue
        out.append(RfpOutcome(id=rid, status=status, submissionSnapshot=snap, createdAt=str(it["createdAt"])))

    out.sort(key=lambda o: parse_timestamp(o.createdAt), reverse=True)
    log.info("rfp_outcomes_listed", time_range=time_range, count=len(out))
    return out
