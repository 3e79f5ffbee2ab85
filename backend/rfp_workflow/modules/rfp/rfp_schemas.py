from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Writes must use one of these; only the decided/undecided split carries
# behavior, and transitions between them are not enforced.
RFP_STATUSES = ("intake", "in_progress", "submitted", "won", "lost")
DECIDED_STATUSES = frozenset({"won", "lost"})

SectionKey = Literal[
    "agency_overview",
    "approach",
    "team",
    "work_samples",
    "plan_timeline",
    "pricing",
    "references",
]
SectionStatus = Literal["empty", "drafted", "approved"]
SectionSourceType = Literal["generated", "manual"]
SelectedPath = Literal["project", "retainer"]
OutcomeStatus = Literal["won", "lost"]
OutcomeTimeRange = Literal["90d", "180d", "365d", "all"]
Severity = Literal["low", "medium", "high", "critical"]
Recommendation = Literal["go", "conditional", "no_go"]


class GenerationProvenance(BaseModel):
    """What a section's content was generated from (stamped at generation time)."""

    model_config = ConfigDict(extra="allow")

    scopeSummaryHash: str | None = None
    strategyVersion: str | int | None = None
    boundArtifactIds: dict[str, Any] = Field(default_factory=dict)


class AcknowledgedRisk(BaseModel):
    model_config = ConfigDict(extra="allow")

    category: str | None = None
    severity: Severity | None = None
    description: str | None = None


class SubmissionSnapshot(BaseModel):
    """Readiness state captured once, when an RFP's outcome was decided."""

    model_config = ConfigDict(extra="allow")

    score: float | None = None
    recommendation: Recommendation | None = None
    summary: str | None = None
    acknowledgedRisks: list[AcknowledgedRisk] = Field(default_factory=list)
    risksAcknowledged: bool = False
    submittedAt: str | None = None
    submittedBy: str | None = None


class Rfp(BaseModel):
    id: str
    companyId: str = ""
    opportunityId: str | None = None
    title: str = ""
    status: str = "intake"
    dueDate: str | None = None
    scopeSummary: str | None = None
    sourceDocUrl: str | None = None
    sourceText: str | None = None
    requirementsChecklist: list[Any] = Field(default_factory=list)
    selectedPath: SelectedPath = "project"
    parsedRequirements: dict[str, Any] | None = None
    competitors: list[str] = Field(default_factory=list)
    winStrategy: dict[str, Any] | None = None
    submissionSnapshot: SubmissionSnapshot | None = None
    createdBy: str | None = None
    createdAt: str | None = None
    updatedAt: str | None = None

    @property
    def is_decided(self) -> bool:
        return self.status in DECIDED_STATUSES


class RfpInput(BaseModel):
    """Create payload. Status and timestamps are assigned by the repository."""

    companyId: str
    title: str
    opportunityId: str | None = None
    status: str = "intake"
    dueDate: str | None = None
    scopeSummary: str | None = None
    sourceDocUrl: str | None = None
    sourceText: str | None = None
    requirementsChecklist: list[Any] = Field(default_factory=list)
    selectedPath: SelectedPath = "project"
    parsedRequirements: dict[str, Any] | None = None
    competitors: list[str] = Field(default_factory=list)
    winStrategy: dict[str, Any] | None = None
    createdBy: str | None = None


class RfpSection(BaseModel):
    id: str
    rfpId: str
    sectionKey: SectionKey
    title: str = ""
    status: SectionStatus = "empty"
    contentWorking: str | None = None
    contentApproved: str | None = None
    sourceType: SectionSourceType | None = None
    generatedUsing: GenerationProvenance | None = None
    needsReview: bool = False
    lastGeneratedAt: str | None = None
    isStale: bool = False
    staleReason: str | None = None
    reviewNotes: str | None = None
    createdAt: str | None = None
    updatedAt: str | None = None


class RfpBindings(BaseModel):
    id: str
    rfpId: str
    teamMemberIds: list[str] = Field(default_factory=list)
    caseStudyIds: list[str] = Field(default_factory=list)
    referenceIds: list[str] = Field(default_factory=list)
    pricingTemplateId: str | None = None
    planTemplateId: str | None = None
    createdAt: str | None = None
    updatedAt: str | None = None


class RfpBindingsInput(BaseModel):
    rfpId: str
    teamMemberIds: list[str] = Field(default_factory=list)
    caseStudyIds: list[str] = Field(default_factory=list)
    referenceIds: list[str] = Field(default_factory=list)
    pricingTemplateId: str | None = None
    planTemplateId: str | None = None


class RfpWithDetails(BaseModel):
    rfp: Rfp
    sections: list[RfpSection] = Field(default_factory=list)
    bindings: RfpBindings | None = None


class RfpOutcome(BaseModel):
    """Minimal firm-wide record for outcome (win/loss) analysis."""

    id: str
    status: OutcomeStatus
    submissionSnapshot: SubmissionSnapshot
    createdAt: str


class DependencyTimestamps(BaseModel):
    """Current `updatedAt` of everything a section can be generated from.

    Callers fetch these fresh before a staleness pass; a missing entry means
    "no signal", never "changed".
    """

    agencyProfileUpdatedAt: str | None = None
    teamMemberUpdatedAts: dict[str, str] = Field(default_factory=dict)
    caseStudyUpdatedAts: dict[str, str] = Field(default_factory=dict)
    referenceUpdatedAts: dict[str, str] = Field(default_factory=dict)
    pricingTemplateUpdatedAt: str | None = None
    planTemplateUpdatedAt: str | None = None
    strategyUpdatedAt: str | None = None


class StalenessCheckInput(DependencyTimestamps):
    rfp: Rfp
    bindings: RfpBindings | None = None


class SectionStalenessResult(BaseModel):
    sectionId: str
    sectionKey: SectionKey
    isStale: bool = False
    staleReason: str | None = None
