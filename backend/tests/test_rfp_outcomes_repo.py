from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from rfp_workflow.repositories.rfp import rfp_outcomes_repo, rfps_repo
from rfp_workflow.repositories.rfp.rfp_keys import rfp_key

NOW = datetime(2024, 12, 31, 12, 0, tzinfo=timezone.utc)
SNAPSHOT = json.dumps({"score": 74, "recommendation": "conditional", "risksAcknowledged": True})


def _seed(fake_table, rfp_id: str, *, status: str, created_at: str, snapshot: str | None = SNAPSHOT):
    item = {
        **rfp_key(rfp_id),
        "rfpId": rfp_id,
        "companyId": "co_1",
        "status": status,
        "createdAt": created_at,
        "gsi1pk": "TYPE#RFP",
        "gsi1sk": f"{created_at}#{rfp_id}",
    }
    if snapshot is not None:
        item["submissionSnapshot"] = snapshot
    fake_table.seed(item)


@pytest.fixture
def seeded(fake_table):
    _seed(fake_table, "rfp_won_recent", status="won", created_at="2024-12-01T00:00:00.000Z")
    _seed(fake_table, "rfp_lost_old", status="lost", created_at="2024-03-01T00:00:00.000Z")
    _seed(fake_table, "rfp_won_ancient", status="won", created_at="2022-01-01T00:00:00.000Z")
    _seed(fake_table, "rfp_open", status="in_progress", created_at="2024-12-10T00:00:00.000Z")
    _seed(fake_table, "rfp_won_no_snapshot", status="won", created_at="2024-12-05T00:00:00.000Z", snapshot=None)
    _seed(fake_table, "rfp_lost_bad_snapshot", status="lost", created_at="2024-12-06T00:00:00.000Z", snapshot="{x")
    return fake_table


def test_all_time_outcomes_newest_first(seeded):
    out = rfp_outcomes_repo.list_firm_outcomes("all", now=NOW)
    assert [o.id for o in out] == ["rfp_won_recent", "rfp_lost_old", "rfp_won_ancient"]
    assert all(o.status in ("won", "lost") for o in out)
    assert all(o.submissionSnapshot is not None for o in out)
    assert out[0].submissionSnapshot.recommendation == "conditional"


@pytest.mark.parametrize(
    "time_range,expected",
    [
        ("90d", ["rfp_won_recent"]),
        ("365d", ["rfp_won_recent", "rfp_lost_old"]),
    ],
)
def test_time_range_bounds_created_at(seeded, time_range, expected):
    assert [o.id for o in rfp_outcomes_repo.list_firm_outcomes(time_range, now=NOW)] == expected


def test_default_range_is_all(seeded):
    assert len(rfp_outcomes_repo.list_firm_outcomes(now=NOW)) == 3


def test_unknown_time_range_is_rejected(seeded):
    with pytest.raises(ValueError):
        rfp_outcomes_repo.list_firm_outcomes("30d", now=NOW)


def test_store_failure_is_empty(seeded):
    seeded.fail_queries = True
    assert rfp_outcomes_repo.list_firm_outcomes("all", now=NOW) == []


def test_decided_rfp_shows_up_after_snapshot(fake_table):
    rfp = rfps_repo.create_rfp({"companyId": "co_9", "title": "Annual report"})
    assert rfp_outcomes_repo.list_firm_outcomes() == []

    rfps_repo.update_rfp(rfp.id, {"status": "lost", "submissionSnapshot": {"score": 40, "summary": "Priced out"}})
    out = rfp_outcomes_repo.list_firm_outcomes()
    assert [o.id for o in out] == [rfp.id]
    assert out[0].submissionSnapshot.summary == "Priced out"
