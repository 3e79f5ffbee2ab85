from __future__ import annotations

from typing import Any

from ...observability.logging import get_logger
from ...repositories.rfp.rfp_bindings_repo import get_rfp_bindings
from ...repositories.rfp.rfp_keys import now_iso
from ...repositories.rfp.rfp_sections_repo import get_sections, update_section, update_section_staleness
from ...repositories.rfp.rfps_repo import get_rfp_by_id
from .fingerprint import hash_string
from .rfp_schemas import (
    DependencyTimestamps,
    GenerationProvenance,
    RfpSection,
    SectionStalenessResult,
    StalenessCheckInput,
)
from .staleness import check_section_staleness

log = get_logger("rfp_service")


def refresh_rfp_staleness(
    rfp_id: str, dependencies: DependencyTimestamps | dict[str, Any] | None = None
) -> list[SectionStalenessResult] | None:
    """
    Recompute staleness for every section of an RFP and persist changes.

    Only sections whose verdict differs from what is stored are written.
    Returns the per-section results in section order, or None when the RFP
    does not exist.
    """
    rfp = get_rfp_by_id(rfp_id)
    if rfp is None:
        return None

    deps = (
        dependencies
        if isinstance(dependencies, DependencyTimestamps)
        else DependencyTimestamps.model_validate(dependencies or {})
    )
    inputs = StalenessCheckInput(rfp=rfp, bindings=get_rfp_bindings(rfp_id), **deps.model_dump())

    results: list[SectionStalenessResult] = []
    changed = 0
    for section in get_sections(rfp_id):
        res = check_section_staleness(section, inputs)
        results.append(res)
        if res.isStale == section.isStale and res.staleReason == section.staleReason:
            continue
        update_section_staleness(section.id, res.isStale, res.staleReason, section=section)
        changed += 1

    log.info(
        "rfp_staleness_refreshed",
        rfp_id=rfp_id,
        sections=len(results),
        stale=sum(1 for r in results if r.isStale),
        changed=changed,
    )
    return results


def record_section_generation(
    section: RfpSection,
    *,
    content: str,
    scope_summary: str | None,
    strategy_version: str | int | None = None,
    bound_artifact_ids: dict[str, Any] | None = None,
    generated_at: str | None = None,
) -> RfpSection | None:
    """Store freshly generated content with the provenance later staleness checks compare against."""
    provenance = GenerationProvenance(
        scopeSummaryHash=hash_string(scope_summary or ""),
        strategyVersion=strategy_version,
        boundArtifactIds=dict(bound_artifact_ids or {}),
    )
    return update_section(
        section.id,
        {
            "contentWorking": content,
            "sourceType": "generated",
            "status": "drafted",
            "needsReview": True,
            "generatedUsing": provenance,
            "lastGeneratedAt": generated_at or now_iso(),
        },
        section=section,
    )
