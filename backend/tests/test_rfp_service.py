from __future__ import annotations

from rfp_workflow.modules.rfp import rfp_service
from rfp_workflow.modules.rfp.fingerprint import hash_string
from rfp_workflow.modules.rfp.rfp_schemas import DependencyTimestamps
from rfp_workflow.repositories.rfp import rfp_bindings_repo, rfp_sections_repo, rfps_repo

T0 = "2024-04-01T09:00:00.000Z"
T1 = "2024-04-03T09:00:00.000Z"


def _generate(rfp_id: str, key: str, scope: str, **kw):
    sec = rfp_sections_repo.get_section_by_key(rfp_id, key)
    return rfp_service.record_section_generation(
        sec, content=f"{key} draft", scope_summary=scope, generated_at=T0, **kw
    )


def test_record_section_generation_stamps_provenance(fake_table):
    rfp = rfps_repo.create_rfp({"companyId": "co_1", "title": "T", "scopeSummary": "Redesign homepage"})
    sec = _generate(rfp.id, "approach", "Redesign homepage", strategy_version="v2", bound_artifact_ids={"x": 1})

    assert sec.status == "drafted"
    assert sec.sourceType == "generated"
    assert sec.needsReview is True
    assert sec.lastGeneratedAt == T0
    assert sec.generatedUsing.scopeSummaryHash == hash_string("Redesign homepage")
    assert sec.generatedUsing.strategyVersion == "v2"
    assert sec.generatedUsing.boundArtifactIds == {"x": 1}


def test_refresh_writes_back_only_changed_verdicts(fake_table, monkeypatch):
    rfp = rfps_repo.create_rfp({"companyId": "co_1", "title": "T", "scopeSummary": "Redesign homepage"})
    rfp_bindings_repo.update_rfp_bindings(rfp.id, {"teamMemberIds": ["m1", "m2"]})
    _generate(rfp.id, "approach", "Redesign homepage")
    _generate(rfp.id, "team", "Redesign homepage")
    rfps_repo.update_rfp(rfp.id, {"scopeSummary": "Redesign homepage and checkout"})

    writes: list[str] = []
    real_update = rfp_sections_repo.update_section_staleness

    def spy(section_id, is_stale, stale_reason, *, section=None):
        writes.append(section_id)
        return real_update(section_id, is_stale, stale_reason, section=section)

    monkeypatch.setattr(rfp_service, "update_section_staleness", spy)
    deps = DependencyTimestamps(teamMemberUpdatedAts={"m3": T1})
    results = rfp_service.refresh_rfp_staleness(rfp.id, deps)
    again = rfp_service.refresh_rfp_staleness(rfp.id, deps)

    by_key = {r.sectionKey: r for r in results}
    assert by_key["approach"].isStale is True
    assert by_key["approach"].staleReason == "Scope summary changed"
    assert by_key["team"].isStale is False
    assert sum(r.isStale for r in results) == 1

    approach = rfp_sections_repo.get_section_by_key(rfp.id, "approach")
    assert approach.isStale is True
    assert writes == [approach.id]
    assert [r.model_dump() for r in again] == [r.model_dump() for r in results]


def test_refresh_clears_staleness_once_dependencies_settle(fake_table):
    rfp = rfps_repo.create_rfp({"companyId": "co_1", "title": "T"})
    rfp_bindings_repo.update_rfp_bindings(rfp.id, {"teamMemberIds": ["m1"]})
    _generate(rfp.id, "team", "")

    stale = rfp_service.refresh_rfp_staleness(rfp.id, {"teamMemberUpdatedAts": {"m1": T1}})
    assert [r.sectionKey for r in stale if r.isStale] == ["team"]

    fresh = rfp_service.refresh_rfp_staleness(rfp.id, {"teamMemberUpdatedAts": {"m1": T0}})
    assert not any(r.isStale for r in fresh)
    assert rfp_sections_repo.get_section_by_key(rfp.id, "team").staleReason is None


def test_refresh_unknown_rfp(fake_table):
    assert rfp_service.refresh_rfp_staleness("rfp_missing") is None


def test_record_section_generation_does_not_wait_for_the_index(fake_table, monkeypatch):
    from rfp_workflow.db.dynamodb.table import Page

    rfp = rfps_repo.create_rfp({"companyId": "co_1", "title": "T", "scopeSummary": "Scope"})
    sec = rfp_sections_repo.get_section_by_key(rfp.id, "pricing")
    monkeypatch.setattr(fake_table, "query_page", lambda **_: Page(items=[], next_token=None))

    out = rfp_service.record_section_generation(sec, content="Pricing draft", scope_summary="Scope")
    assert out is not None
    assert out.contentWorking == "Pricing draft"
    assert out.generatedUsing.scopeSummaryHash == hash_string("Scope")
