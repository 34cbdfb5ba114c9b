from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from caseflow.models.case import (
    AuditAction,
    CaseCategory,
    CaseDocumentType,
    CaseStatus,
    EscalationPriority,
    RecommendedAction,
)


# ---------------------------------------------------------------------------
# Case
# ---------------------------------------------------------------------------


class CaseBase(BaseModel):
    category: str = "conflict"
    incident_date: date
    location: str = ""
    department: str = ""
    shift: str | None = None
    supervisor_notes: str | None = None


class CaseCreate(CaseBase):
    case_number: str | None = None
    created_by: str = ""


class CaseUpdate(BaseModel):
    category: str | None = None
    incident_date: date | None = None
    location: str | None = None
    department: str | None = None
    shift: str | None = None
    supervisor_notes: str | None = None


# ---------------------------------------------------------------------------
# Involved employees
# ---------------------------------------------------------------------------


class InvolvedEmployeeBase(BaseModel):
    name: str = Field(min_length=1)
    role: str = ""
    department: str = ""
    employee_number: str | None = None
    is_complainant: bool = False


class InvolvedEmployeeCreate(InvolvedEmployeeBase):
    pass


class InvolvedEmployeeRead(InvolvedEmployeeBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    position: int
    created_at: datetime


# ---------------------------------------------------------------------------
# Case documents
# ---------------------------------------------------------------------------


class CaseDocumentBase(BaseModel):
    document_type: str
    original_text: str = ""
    translated_text: str | None = None
    cleaned_text: str = ""
    detected_language: str | None = None
    is_handwritten: bool | None = None
    page_count: int = Field(default=1, ge=1)
    employee_id: UUID | None = None
    submitted_by: str | None = None
    employee_review_at: datetime | None = None
    employee_signed_at: datetime | None = None
    supervisor_certified_at: datetime | None = None
    supervisor_id: str | None = None
    supervisor_name: str | None = None
    version_hash: str | None = None


class CaseDocumentCreate(CaseDocumentBase):
    pass


class CaseDocumentRead(CaseDocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    document_type: CaseDocumentType
    created_at: datetime


class ScannedDocumentCreate(BaseModel):
    """Images are base64 encoded page scans handed to the OCR service."""

    document_type: str
    images: list[str] = Field(min_length=1)
    source_language: str | None = None
    employee_id: UUID | None = None
    submitted_by: str | None = None


# ---------------------------------------------------------------------------
# Derived artifacts
# ---------------------------------------------------------------------------


class ComparisonResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    analysis_version: int
    evidence_revision: int
    agreement_points: list[str]
    contradictions: list[str]
    unclear_items: list[str]
    timeline_differences: list[str]
    emotional_language: list[str]
    missing_details: list[str]
    side_by_side: list[dict]
    neutral_summary: str
    party_a_name: str
    party_b_name: str
    generated_at: datetime


class PolicyMatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    analysis_version: int
    policy_id: UUID | None = None
    section_number: str
    section_title: str
    relevance_explanation: str
    match_confidence: float


class RecommendationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    analysis_version: int
    action: RecommendedAction
    reasoning: str
    risk_assessment: str
    suggested_next_steps: list[str]
    confidence: float
    is_selected: bool


class DocumentSectionRead(BaseModel):
    id: str
    title: str
    content: str


class GeneratedDocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recommendation_id: UUID
    analysis_version: int
    action: RecommendedAction
    title: str
    sections: list[DocumentSectionRead]
    talking_points: list[str] | None = None
    policy_references: list[str] | None = None
    follow_up_timeline: str | None = None
    is_approved: bool
    approved_at: datetime | None = None
    approved_by: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Case reads
# ---------------------------------------------------------------------------


class CaseSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_number: str
    category: CaseCategory
    status: CaseStatus
    incident_date: date
    location: str
    department: str
    analysis_version: int
    created_at: datetime
    updated_at: datetime


class CaseRead(CaseSummaryRead):
    shift: str | None = None
    supervisor_notes: str | None = None
    created_by: str
    evidence_revision: int
    auto_run_policy_alignment: bool
    auto_run_decision_support: bool
    reanalysis_required: bool
    closed_at: datetime | None = None
    finalized_by: str | None = None
    review_bypassed: bool
    bypass_reason: str | None = None
    escalated_at: datetime | None = None
    escalation_priority: EscalationPriority | None = None
    escalation_recipients: list[str] | None = None
    escalation_message: str | None = None
    involved_employees: list[InvolvedEmployeeRead]
    documents: list[CaseDocumentRead]
    comparison_result: ComparisonResultRead | None = None
    policy_matches: list[PolicyMatchRead]
    recommendations: list[RecommendationRead]
    generated_document: GeneratedDocumentRead | None = None


class CaseStatsRead(BaseModel):
    total: int
    open: int
    draft: int
    closed: int
    escalated: int


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    sequence: int
    action: AuditAction
    detail: str
    actor: str | None = None
    previous_value: str | None = None
    new_value: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Readiness & workflow requests
# ---------------------------------------------------------------------------


class GateResultRead(BaseModel):
    ready: bool
    reason: str | None = None


class ReadinessRead(BaseModel):
    case_id: UUID
    status: CaseStatus
    analysis_version: int
    reanalysis_required: bool
    can_run_analysis: GateResultRead
    can_run_policy_alignment: GateResultRead
    can_run_decision_support: GateResultRead
    can_generate_action: GateResultRead
    can_finalize: GateResultRead


class ActorRequest(BaseModel):
    actor: str | None = None


class SelectRecommendationRequest(ActorRequest):
    recommendation_id: UUID


class FinalizeRequest(ActorRequest):
    actor_role: str | None = None
    bypass_review: bool = False
    bypass_reason: str | None = None


class EscalateRequest(ActorRequest):
    priority: str = "standard"
    recipients: list[str] = Field(default_factory=list)
    message: str = ""
    confirm_accuracy: bool = False
    confirm_transfer: bool = False
