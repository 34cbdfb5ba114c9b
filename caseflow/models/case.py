import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from caseflow.db import Base


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CaseCategory(enum.Enum):
    conflict = "conflict"
    conduct = "conduct"
    safety = "safety"
    other = "other"


class CaseStatus(enum.Enum):
    draft = "draft"
    in_progress = "in_progress"
    pending_review = "pending_review"
    awaiting_action = "awaiting_action"
    closed = "closed"
    escalated = "escalated"


TERMINAL_STATUSES = frozenset({CaseStatus.closed, CaseStatus.escalated})


class CaseDocumentType(enum.Enum):
    complaint_a = "complaint_a"
    complaint_b = "complaint_b"
    witness_statement = "witness_statement"
    evidence = "evidence"
    prior_record = "prior_record"
    counseling_record = "counseling_record"
    warning_document = "warning_document"
    other = "other"


PRIOR_HISTORY_TYPES = frozenset(
    {
        CaseDocumentType.prior_record,
        CaseDocumentType.counseling_record,
        CaseDocumentType.warning_document,
    }
)

# At most one complaint per side; other document types may repeat.
COMPLAINT_DOCUMENT_FILTER = "document_type IN ('complaint_a', 'complaint_b')"


class RecommendedAction(enum.Enum):
    coaching = "coaching"
    counseling = "counseling"
    written_warning = "written_warning"
    escalate_to_hr = "escalate_to_hr"


class ReviewStatus(enum.Enum):
    pending = "pending"
    in_review = "in_review"
    changes_requested = "changes_requested"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


OPEN_REVIEW_STATUSES = frozenset(
    {ReviewStatus.pending, ReviewStatus.in_review, ReviewStatus.changes_requested}
)


class EscalationPriority(enum.Enum):
    critical = "critical"
    high = "high"
    standard = "standard"
    informational = "informational"


class AuditAction(enum.Enum):
    case_created = "case_created"
    case_updated = "case_updated"
    case_status_changed = "case_status_changed"
    case_closed = "case_closed"
    case_escalated = "case_escalated"
    person_added = "person_added"
    person_removed = "person_removed"
    document_uploaded = "document_uploaded"
    document_removed = "document_removed"
    analysis_performed = "analysis_performed"
    policy_match_completed = "policy_match_completed"
    recommendation_generated = "recommendation_generated"
    action_selected = "action_selected"
    action_generated = "action_generated"
    supervisor_review_started = "supervisor_review_started"
    review_changes_requested = "review_changes_requested"
    review_comment_resolved = "review_comment_resolved"
    document_edited = "document_edited"
    supervisor_review_approved = "supervisor_review_approved"
    supervisor_review_rejected = "supervisor_review_rejected"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


class Case(Base):
    __tablename__ = "cases"
    __table_args__ = (
        Index("ix_cases_case_number", "case_number", unique=True),
        Index("ix_cases_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_number: Mapped[str] = mapped_column(String(40), nullable=False)
    category: Mapped[CaseCategory] = mapped_column(
        Enum(CaseCategory), default=CaseCategory.conflict
    )
    status: Mapped[CaseStatus] = mapped_column(
        Enum(CaseStatus), default=CaseStatus.draft
    )
    incident_date: Mapped[date] = mapped_column(Date, nullable=False)
    location: Mapped[str] = mapped_column(String(255), default="")
    department: Mapped[str] = mapped_column(String(255), default="")
    shift: Mapped[str | None] = mapped_column(String(80))
    supervisor_notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(String(255), default="")

    # Workflow bookkeeping
    analysis_version: Mapped[int] = mapped_column(Integer, default=0)
    evidence_revision: Mapped[int] = mapped_column(Integer, default=0)
    auto_run_policy_alignment: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_run_decision_support: Mapped[bool] = mapped_column(Boolean, default=False)

    # Finalization / escalation
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finalized_by: Mapped[str | None] = mapped_column(String(255))
    review_bypassed: Mapped[bool] = mapped_column(Boolean, default=False)
    bypass_reason: Mapped[str | None] = mapped_column(Text)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    escalation_priority: Mapped[EscalationPriority | None] = mapped_column(
        Enum(EscalationPriority)
    )
    escalation_recipients: Mapped[list | None] = mapped_column(JSON)
    escalation_message: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    involved_employees = relationship(
        "InvolvedEmployee",
        back_populates="case",
        order_by="InvolvedEmployee.position",
        cascade="all, delete-orphan",
    )
    documents = relationship(
        "CaseDocument",
        back_populates="case",
        order_by="CaseDocument.created_at",
        cascade="all, delete-orphan",
    )
    comparison_results = relationship(
        "ComparisonResult",
        back_populates="case",
        order_by="ComparisonResult.analysis_version",
        cascade="all, delete-orphan",
    )
    policy_match_history = relationship(
        "PolicyMatch", back_populates="case", cascade="all, delete-orphan"
    )
    recommendation_history = relationship(
        "Recommendation", back_populates="case", cascade="all, delete-orphan"
    )
    generated_documents = relationship(
        "GeneratedDocument",
        back_populates="case",
        order_by="GeneratedDocument.created_at",
        cascade="all, delete-orphan",
    )
    review_sessions = relationship(
        "ReviewSession",
        back_populates="case",
        order_by="ReviewSession.created_at",
        cascade="all, delete-orphan",
    )
    audit_entries = relationship(
        "AuditEntry",
        back_populates="case",
        order_by="AuditEntry.sequence",
        cascade="all, delete-orphan",
    )

    @validates("case_number")
    def _validate_case_number(self, key, value):
        if self.case_number and value != self.case_number:
            raise ValueError("case_number is immutable once assigned")
        return value

    # -- derived views -----------------------------------------------------

    @property
    def is_locked(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def complainants(self) -> list["InvolvedEmployee"]:
        return [e for e in self.involved_employees if e.is_complainant]

    @property
    def witnesses(self) -> list["InvolvedEmployee"]:
        return [e for e in self.involved_employees if not e.is_complainant]

    @property
    def complainant_a(self) -> "InvolvedEmployee | None":
        complainants = self.complainants
        return complainants[0] if complainants else None

    @property
    def complainant_b(self) -> "InvolvedEmployee | None":
        complainants = self.complainants
        return complainants[1] if len(complainants) > 1 else None

    def documents_of_type(self, document_type: CaseDocumentType) -> list["CaseDocument"]:
        return [d for d in self.documents if d.document_type == document_type]

    @property
    def complaint_a(self) -> "CaseDocument | None":
        docs = self.documents_of_type(CaseDocumentType.complaint_a)
        return docs[0] if docs else None

    @property
    def complaint_b(self) -> "CaseDocument | None":
        docs = self.documents_of_type(CaseDocumentType.complaint_b)
        return docs[0] if docs else None

    @property
    def comparison_result(self) -> "ComparisonResult | None":
        for result in self.comparison_results:
            if result.is_active:
                return result
        return None

    @property
    def policy_matches(self) -> list["PolicyMatch"]:
        return [m for m in self.policy_match_history if m.is_active]

    @property
    def recommendations(self) -> list["Recommendation"]:
        return [r for r in self.recommendation_history if r.is_active]

    @property
    def selected_recommendation(self) -> "Recommendation | None":
        for rec in self.recommendations:
            if rec.is_selected:
                return rec
        return None

    @property
    def generated_document(self) -> "GeneratedDocument | None":
        for doc in self.generated_documents:
            if doc.is_active:
                return doc
        return None

    @property
    def review_session(self) -> "ReviewSession | None":
        generated = self.generated_document
        if generated is None:
            return None
        for session in reversed(self.review_sessions):
            if session.generated_document_id == generated.id:
                return session
        return None

    @property
    def reanalysis_required(self) -> bool:
        result = self.comparison_result
        return result is not None and result.evidence_revision != self.evidence_revision


# ---------------------------------------------------------------------------
# Involved employees
# ---------------------------------------------------------------------------


class InvolvedEmployee(Base):
    __tablename__ = "case_employees"
    __table_args__ = (Index("ix_case_employees_case_id", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(255), default="")
    department: Mapped[str] = mapped_column(String(255), default="")
    employee_number: Mapped[str | None] = mapped_column(String(80))
    is_complainant: Mapped[bool] = mapped_column(Boolean, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="involved_employees")


# ---------------------------------------------------------------------------
# Case documents
# ---------------------------------------------------------------------------


class CaseDocument(Base):
    __tablename__ = "case_documents"
    __table_args__ = (
        Index("ix_case_documents_case_id", "case_id"),
        Index("ix_case_documents_employee_id", "employee_id"),
        Index(
            "uq_case_documents_complaint",
            "case_id",
            "document_type",
            unique=True,
            postgresql_where=text(COMPLAINT_DOCUMENT_FILTER),
            sqlite_where=text(COMPLAINT_DOCUMENT_FILTER),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    document_type: Mapped[CaseDocumentType] = mapped_column(
        Enum(CaseDocumentType), nullable=False
    )
    original_text: Mapped[str] = mapped_column(Text, default="")
    translated_text: Mapped[str | None] = mapped_column(Text)
    cleaned_text: Mapped[str] = mapped_column(Text, default="")
    detected_language: Mapped[str | None] = mapped_column(String(20))
    is_handwritten: Mapped[bool | None] = mapped_column(Boolean)
    page_count: Mapped[int] = mapped_column(Integer, default=1)
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("case_employees.id")
    )
    submitted_by: Mapped[str | None] = mapped_column(String(255))

    # Employee review & signature trail
    employee_review_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    employee_signed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    supervisor_certified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    supervisor_id: Mapped[str | None] = mapped_column(String(80))
    supervisor_name: Mapped[str | None] = mapped_column(String(255))
    version_hash: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="documents")
    employee = relationship("InvolvedEmployee")

    @property
    def text(self) -> str:
        """Best available text: cleaned, then translated, then raw OCR."""
        return self.cleaned_text or self.translated_text or self.original_text or ""


# ---------------------------------------------------------------------------
# Derived artifacts: comparison, policy matches, recommendations
# ---------------------------------------------------------------------------


class ComparisonResult(Base):
    __tablename__ = "comparison_results"
    __table_args__ = (Index("ix_comparison_results_case_id", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    analysis_version: Mapped[int] = mapped_column(Integer, nullable=False)
    evidence_revision: Mapped[int] = mapped_column(Integer, nullable=False)
    agreement_points: Mapped[list] = mapped_column(JSON, default=list)
    contradictions: Mapped[list] = mapped_column(JSON, default=list)
    unclear_items: Mapped[list] = mapped_column(JSON, default=list)
    timeline_differences: Mapped[list] = mapped_column(JSON, default=list)
    emotional_language: Mapped[list] = mapped_column(JSON, default=list)
    missing_details: Mapped[list] = mapped_column(JSON, default=list)
    side_by_side: Mapped[list] = mapped_column(JSON, default=list)
    neutral_summary: Mapped[str] = mapped_column(Text, default="")
    party_a_name: Mapped[str] = mapped_column(String(255), default="")
    party_b_name: Mapped[str] = mapped_column(String(255), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="comparison_results")


class PolicyMatch(Base):
    __tablename__ = "policy_matches"
    __table_args__ = (Index("ix_policy_matches_case_id", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    analysis_version: Mapped[int] = mapped_column(Integer, nullable=False)
    policy_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workplace_policies.id")
    )
    section_number: Mapped[str] = mapped_column(String(40), default="")
    section_title: Mapped[str] = mapped_column(String(500), default="")
    relevance_explanation: Mapped[str] = mapped_column(Text, default="")
    match_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="policy_match_history")


class Recommendation(Base):
    __tablename__ = "recommendations"
    __table_args__ = (Index("ix_recommendations_case_id", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    analysis_version: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[RecommendedAction] = mapped_column(
        Enum(RecommendedAction), nullable=False
    )
    reasoning: Mapped[str] = mapped_column(Text, default="")
    risk_assessment: Mapped[str] = mapped_column(Text, default="")
    suggested_next_steps: Mapped[list] = mapped_column(JSON, default=list)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="recommendation_history")


# ---------------------------------------------------------------------------
# Generated action documents & supervisor review
# ---------------------------------------------------------------------------


class GeneratedDocument(Base):
    __tablename__ = "generated_documents"
    __table_args__ = (Index("ix_generated_documents_case_id", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    recommendation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("recommendations.id"), nullable=False
    )
    analysis_version: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[RecommendedAction] = mapped_column(
        Enum(RecommendedAction), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    # Ordered [{"id": ..., "title": ..., "content": ...}]
    sections: Mapped[list] = mapped_column(JSON, default=list)
    talking_points: Mapped[list | None] = mapped_column(JSON)
    policy_references: Mapped[list | None] = mapped_column(JSON)
    follow_up_timeline: Mapped[str | None] = mapped_column(Text)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="generated_documents")
    recommendation = relationship("Recommendation")

    def section(self, section_id: str) -> dict | None:
        for section in self.sections or []:
            if section.get("id") == section_id:
                return section
        return None


class ReviewSession(Base):
    __tablename__ = "review_sessions"
    __table_args__ = (
        Index("ix_review_sessions_case_id", "case_id"),
        Index("ix_review_sessions_generated_document_id", "generated_document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    generated_document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("generated_documents.id"), nullable=False
    )
    status: Mapped[ReviewStatus] = mapped_column(
        Enum(ReviewStatus), default=ReviewStatus.pending
    )
    reviewer: Mapped[str | None] = mapped_column(String(255))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    case = relationship("Case", back_populates="review_sessions")
    generated_document = relationship("GeneratedDocument")
    comments = relationship(
        "ReviewComment",
        back_populates="session",
        order_by="ReviewComment.created_at",
        cascade="all, delete-orphan",
    )
    edits = relationship(
        "DocumentEdit",
        back_populates="session",
        order_by="DocumentEdit.sequence",
        cascade="all, delete-orphan",
    )

    @property
    def unresolved_comments(self) -> list["ReviewComment"]:
        return [c for c in self.comments if not c.is_resolved]


class ReviewComment(Base):
    __tablename__ = "review_comments"
    __table_args__ = (Index("ix_review_comments_session_id", "session_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("review_sessions.id"), nullable=False
    )
    section_id: Mapped[str] = mapped_column(String(80), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    session = relationship("ReviewSession", back_populates="comments")


class DocumentEdit(Base):
    """Edit ledger entry (immutable, no updated_at)."""

    __tablename__ = "document_edits"
    __table_args__ = (Index("ix_document_edits_session_id", "session_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("review_sessions.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    section_id: Mapped[str] = mapped_column(String(80), nullable=False)
    section_title: Mapped[str] = mapped_column(String(500), default="")
    original_content: Mapped[str] = mapped_column(Text, default="")
    new_content: Mapped[str] = mapped_column(Text, default="")
    edited_by: Mapped[str] = mapped_column(String(255), nullable=False)
    edited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    session = relationship("ReviewSession", back_populates="edits")


# ---------------------------------------------------------------------------
# Audit trail (append-only)
# ---------------------------------------------------------------------------


class AuditEntry(Base):
    __tablename__ = "case_audit_entries"
    __table_args__ = (Index("ix_case_audit_entries_case_id", "case_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False)
    detail: Mapped[str] = mapped_column(Text, default="")
    actor: Mapped[str | None] = mapped_column(String(255))
    previous_value: Mapped[str | None] = mapped_column(String(255))
    new_value: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    case = relationship("Case", back_populates="audit_entries")
