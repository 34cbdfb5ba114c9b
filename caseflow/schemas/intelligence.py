"""Wire models exchanged with the case intelligence services."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from caseflow.models.case import RecommendedAction


# ---------------------------------------------------------------------------
# Shared fragments
# ---------------------------------------------------------------------------


class PartyInput(BaseModel):
    name: str
    role: str = ""
    department: str = ""
    employee_number: str | None = None


class StatementInput(BaseModel):
    text: str
    detected_language: str | None = None


class WitnessStatementInput(BaseModel):
    witness_name: str
    text: str


class PriorHistoryInput(BaseModel):
    type: str
    document_date: str
    summary: str
    employee_name: str | None = None


class CaseDetailsInput(BaseModel):
    case_number: str
    category: str
    incident_date: str
    location: str = ""
    department: str = ""


class SideBySideItem(BaseModel):
    topic: str
    party_a_version: str = ""
    party_b_version: str = ""
    status: str = "unclear"


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


class ComparisonRequest(BaseModel):
    complaint_a: StatementInput
    complainant_a: PartyInput
    complaint_b: StatementInput
    complainant_b: PartyInput
    case_details: CaseDetailsInput
    witness_statements: list[WitnessStatementInput] = Field(default_factory=list)
    prior_history: list[PriorHistoryInput] = Field(default_factory=list)


class ComparisonPayload(BaseModel):
    agreement_points: list[str] = Field(default_factory=list)
    contradictions: list[str] = Field(default_factory=list)
    unclear_items: list[str] = Field(default_factory=list)
    timeline_differences: list[str] = Field(default_factory=list)
    emotional_language: list[str] = Field(default_factory=list)
    missing_details: list[str] = Field(default_factory=list)
    side_by_side: list[SideBySideItem] = Field(default_factory=list)
    neutral_summary: str = ""
    party_a_name: str = ""
    party_b_name: str = ""


# ---------------------------------------------------------------------------
# Policy matching
# ---------------------------------------------------------------------------


class PolicySectionInput(BaseModel):
    id: UUID
    section_number: str
    title: str
    content: str
    section_type: str


class PolicyInput(BaseModel):
    id: UUID
    title: str
    version: str
    sections: list[PolicySectionInput]


class PolicyMatchRequest(BaseModel):
    policy: PolicyInput
    comparison: ComparisonPayload
    case_details: CaseDetailsInput


class PolicyMatchPayload(BaseModel):
    policy_section_id: UUID | None = None
    section_number: str
    section_title: str
    relevance_explanation: str = ""
    match_confidence: float = Field(default=0.0, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Decision support
# ---------------------------------------------------------------------------


class RecommendationRequest(BaseModel):
    case_details: CaseDetailsInput
    comparison: ComparisonPayload
    policy_matches: list[PolicyMatchPayload] | None = None
    prior_history: list[PriorHistoryInput] | None = None


class RecommendationOptionPayload(BaseModel):
    action: RecommendedAction
    reasoning: str = ""
    risk_assessment: str = ""
    suggested_next_steps: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class RecommendationPayload(BaseModel):
    recommendations: list[RecommendationOptionPayload]


# ---------------------------------------------------------------------------
# Action document generation
# ---------------------------------------------------------------------------


class ActionDocumentRequest(BaseModel):
    case_details: CaseDetailsInput
    recommendation: RecommendationOptionPayload
    comparison: ComparisonPayload
    complainants: list[PartyInput]
    policy_matches: list[PolicyMatchPayload] | None = None


class DocumentSectionPayload(BaseModel):
    id: str
    title: str
    content: str = ""


class GeneratedDocumentPayload(BaseModel):
    title: str
    sections: list[DocumentSectionPayload]
    talking_points: list[str] | None = None
    policy_references: list[str] | None = None
    follow_up_timeline: str | None = None


# ---------------------------------------------------------------------------
# OCR
# ---------------------------------------------------------------------------


class ExtractTextRequest(BaseModel):
    images: list[str]
    document_type: str
    source_language: str | None = None


class ExtractedText(BaseModel):
    original_text: str
    translated_text: str | None = None
    cleaned_text: str = ""
    detected_language: str | None = None
    is_handwritten: bool | None = None
    page_count: int = 1
