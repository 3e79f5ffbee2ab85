from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Mapping

from .fingerprint import hash_string
from .rfp_schemas import RfpSection, SectionStalenessResult, StalenessCheckInput

REASON_AGENCY_PROFILE = "Agency Profile updated"
REASON_TEAM_MEMBER = "Team member updated"
REASON_CASE_STUDY = "Case study updated"
REASON_REFERENCE = "Reference updated"
REASON_PRICING_TEMPLATE = "Pricing template updated"
REASON_PLAN_TEMPLATE = "Plan template updated"
REASON_SCOPE_SUMMARY = "Scope summary changed"
REASON_STRATEGY = "Strategy updated"

AGENCY_PROFILE_SECTIONS = frozenset({"agency_overview", "approach"})
# Sections whose content is derived from the RFP scope and win strategy.
SCOPE_SECTIONS = frozenset({"approach", "plan_timeline", "pricing"})


def parse_timestamp(value: object) -> datetime | None:
    """ISO-8601 string (or datetime) -> timezone-aware datetime; None if unusable."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z") or raw.endswith("z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _is_newer(updated_at: object, generated_at: datetime | None) -> bool:
    # Strictly newer only: an update at the generation instant counts as seen.
    if generated_at is None:
        return False
    ts = parse_timestamp(updated_at)
    return ts is not None and ts > generated_at


def _any_newer(ids: Iterable[str], updated_ats: Mapping[str, str], generated_at: datetime | None) -> bool:
    return any(_is_newer(updated_ats.get(i), generated_at) for i in ids)


def check_section_staleness(section: RfpSection, inputs: StalenessCheckInput) -> SectionStalenessResult:
    """
    Decide whether a section's generated content is out of date, and why.

    Pure: reads the section's generation provenance and the current state of
    its dependencies, returns a verdict, never touches the store and never
    raises on missing optional data. Every applicable reason is reported,
    in a fixed order, joined with ", ".
    """
    key = section.sectionKey
    provenance = section.generatedUsing

    # Never generated: the section is empty, not stale.
    if not section.lastGeneratedAt or provenance is None:
        return SectionStalenessResult(sectionId=section.id, sectionKey=key, isStale=False, staleReason=None)

    generated_at = parse_timestamp(section.lastGeneratedAt)
    bindings = inputs.bindings
    reasons: list[str] = []

    if key in AGENCY_PROFILE_SECTIONS and _is_newer(inputs.agencyProfileUpdatedAt, generated_at):
        reasons.append(REASON_AGENCY_PROFILE)

    if bindings is not None:
        if key == "team" and _any_newer(bindings.teamMemberIds, inputs.teamMemberUpdatedAts, generated_at):
            reasons.append(REASON_TEAM_MEMBER)

        if key == "work_samples" and _any_newer(bindings.caseStudyIds, inputs.caseStudyUpdatedAts, generated_at):
            reasons.append(REASON_CASE_STUDY)

        if key == "references" and _any_newer(bindings.referenceIds, inputs.referenceUpdatedAts, generated_at):
            reasons.append(REASON_REFERENCE)

        if key == "pricing" and bindings.pricingTemplateId:
            if _is_newer(inputs.pricingTemplateUpdatedAt, generated_at):
                reasons.append(REASON_PRICING_TEMPLATE)

        if key == "plan_timeline" and bindings.planTemplateId:
            if _is_newer(inputs.planTemplateUpdatedAt, generated_at):
                reasons.append(REASON_PLAN_TEMPLATE)

    if key in SCOPE_SECTIONS:
        # Sections generated before scope tracking carry no hash; skip them.
        recorded = provenance.scopeSummaryHash
        if recorded and recorded != hash_string(inputs.rfp.scopeSummary or ""):
            reasons.append(REASON_SCOPE_SUMMARY)

        if provenance.strategyVersion and _is_newer(inputs.strategyUpdatedAt, generated_at):
            reasons.append(REASON_STRATEGY)

    is_stale = bool(reasons)
    return SectionStalenessResult(
        sectionId=section.id,
        sectionKey=key,
        isStale=is_stale,
        staleReason=", ".join(reasons) if is_stale else None,
    )


def check_sections_staleness(
    sections: Iterable[RfpSection], inputs: StalenessCheckInput
) -> list[SectionStalenessResult]:
    return [check_section_staleness(s, inputs) for s in sections]
