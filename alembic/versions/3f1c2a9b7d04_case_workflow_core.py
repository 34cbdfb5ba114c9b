"""case workflow core

Revision ID: 3f1c2a9b7d04
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "3f1c2a9b7d04"
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "casecategory": ("conflict", "conduct", "safety", "other"),
    "casestatus": (
        "draft",
        "in_progress",
        "pending_review",
        "awaiting_action",
        "closed",
        "escalated",
    ),
    "casedocumenttype": (
        "complaint_a",
        "complaint_b",
        "witness_statement",
        "evidence",
        "prior_record",
        "counseling_record",
        "warning_document",
        "other",
    ),
    "recommendedaction": (
        "coaching",
        "counseling",
        "written_warning",
        "escalate_to_hr",
    ),
    "reviewstatus": (
        "pending",
        "in_review",
        "changes_requested",
        "approved",
        "rejected",
        "cancelled",
    ),
    "escalationpriority": ("critical", "high", "standard", "informational"),
    "auditaction": (
        "case_created",
        "case_updated",
        "case_status_changed",
        "case_closed",
        "case_escalated",
        "person_added",
        "person_removed",
        "document_uploaded",
        "document_removed",
        "analysis_performed",
        "policy_match_completed",
        "recommendation_generated",
        "action_selected",
        "action_generated",
        "supervisor_review_started",
        "review_changes_requested",
        "review_comment_resolved",
        "document_edited",
        "supervisor_review_approved",
        "supervisor_review_rejected",
    ),
    "policystatus": ("draft", "active", "superseded", "archived"),
    "policysectiontype": (
        "definition",
        "procedure",
        "conduct",
        "discipline",
        "escalation",
        "general",
    ),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # --- Enums ---
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- Workplace policies ---
    op.create_table(
        "workplace_policies",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("version", sa.String(length=40), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("status", _enum("policystatus"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_workplace_policies_status", "workplace_policies", ["status"]
    )

    op.create_table(
        "policy_sections",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("policy_id", sa.UUID(), nullable=False),
        sa.Column("section_number", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("section_type", _enum("policysectiontype"), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["policy_id"], ["workplace_policies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_policy_sections_policy_id", "policy_sections", ["policy_id"])

    # --- Cases ---
    op.create_table(
        "cases",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_number", sa.String(length=40), nullable=False),
        sa.Column("category", _enum("casecategory"), nullable=False),
        sa.Column("status", _enum("casestatus"), nullable=False),
        sa.Column("incident_date", sa.Date(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=False),
        sa.Column("shift", sa.String(length=80), nullable=True),
        sa.Column("supervisor_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("analysis_version", sa.Integer(), nullable=False),
        sa.Column("evidence_revision", sa.Integer(), nullable=False),
        sa.Column("auto_run_policy_alignment", sa.Boolean(), nullable=False),
        sa.Column("auto_run_decision_support", sa.Boolean(), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_by", sa.String(length=255), nullable=True),
        sa.Column("review_bypassed", sa.Boolean(), nullable=False),
        sa.Column("bypass_reason", sa.Text(), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "escalation_priority", _enum("escalationpriority"), nullable=True
        ),
        sa.Column("escalation_recipients", sa.JSON(), nullable=True),
        sa.Column("escalation_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cases_case_number", "cases", ["case_number"], unique=True)
    op.create_index("ix_cases_status", "cases", ["status"])

    op.create_table(
        "case_employees",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=False),
        sa.Column("employee_number", sa.String(length=80), nullable=True),
        sa.Column("is_complainant", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_case_employees_case_id", "case_employees", ["case_id"])

    op.create_table(
        "case_documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("document_type", _enum("casedocumenttype"), nullable=False),
        sa.Column("original_text", sa.Text(), nullable=False),
        sa.Column("translated_text", sa.Text(), nullable=True),
        sa.Column("cleaned_text", sa.Text(), nullable=False),
        sa.Column("detected_language", sa.String(length=20), nullable=True),
        sa.Column("is_handwritten", sa.Boolean(), nullable=True),
        sa.Column("page_count", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.UUID(), nullable=True),
        sa.Column("submitted_by", sa.String(length=255), nullable=True),
        sa.Column("employee_review_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("employee_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "supervisor_certified_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("supervisor_id", sa.String(length=80), nullable=True),
        sa.Column("supervisor_name", sa.String(length=255), nullable=True),
        sa.Column("version_hash", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["employee_id"], ["case_employees.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_case_documents_case_id", "case_documents", ["case_id"])
    op.create_index(
        "ix_case_documents_employee_id", "case_documents", ["employee_id"]
    )
    op.create_index(
        "uq_case_documents_complaint",
        "case_documents",
        ["case_id", "document_type"],
        unique=True,
        postgresql_where=sa.text(
            "document_type IN ('complaint_a', 'complaint_b')"
        ),
    )

    # --- Derived artifacts ---
    op.create_table(
        "comparison_results",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("analysis_version", sa.Integer(), nullable=False),
        sa.Column("evidence_revision", sa.Integer(), nullable=False),
        sa.Column("agreement_points", sa.JSON(), nullable=False),
        sa.Column("contradictions", sa.JSON(), nullable=False),
        sa.Column("unclear_items", sa.JSON(), nullable=False),
        sa.Column("timeline_differences", sa.JSON(), nullable=False),
        sa.Column("emotional_language", sa.JSON(), nullable=False),
        sa.Column("missing_details", sa.JSON(), nullable=False),
        sa.Column("side_by_side", sa.JSON(), nullable=False),
        sa.Column("neutral_summary", sa.Text(), nullable=False),
        sa.Column("party_a_name", sa.String(length=255), nullable=False),
        sa.Column("party_b_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_comparison_results_case_id", "comparison_results", ["case_id"]
    )

    op.create_table(
        "policy_matches",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("analysis_version", sa.Integer(), nullable=False),
        sa.Column("policy_id", sa.UUID(), nullable=True),
        sa.Column("section_number", sa.String(length=40), nullable=False),
        sa.Column("section_title", sa.String(length=500), nullable=False),
        sa.Column("relevance_explanation", sa.Text(), nullable=False),
        sa.Column("match_confidence", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["policy_id"], ["workplace_policies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_policy_matches_case_id", "policy_matches", ["case_id"])

    op.create_table(
        "recommendations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("analysis_version", sa.Integer(), nullable=False),
        sa.Column("action", _enum("recommendedaction"), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=False),
        sa.Column("risk_assessment", sa.Text(), nullable=False),
        sa.Column("suggested_next_steps", sa.JSON(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("is_selected", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recommendations_case_id", "recommendations", ["case_id"])

    # --- Generated documents & review ---
    op.create_table(
        "generated_documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("recommendation_id", sa.UUID(), nullable=False),
        sa.Column("analysis_version", sa.Integer(), nullable=False),
        sa.Column("action", _enum("recommendedaction"), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("talking_points", sa.JSON(), nullable=True),
        sa.Column("policy_references", sa.JSON(), nullable=True),
        sa.Column("follow_up_timeline", sa.Text(), nullable=True),
        sa.Column("is_approved", sa.Boolean(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["recommendation_id"], ["recommendations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_generated_documents_case_id", "generated_documents", ["case_id"]
    )

    op.create_table(
        "review_sessions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("generated_document_id", sa.UUID(), nullable=False),
        sa.Column("status", _enum("reviewstatus"), nullable=False),
        sa.Column("reviewer", sa.String(length=255), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(
            ["generated_document_id"], ["generated_documents.id"]
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_review_sessions_case_id", "review_sessions", ["case_id"])
    op.create_index(
        "ix_review_sessions_generated_document_id",
        "review_sessions",
        ["generated_document_id"],
    )

    op.create_table(
        "review_comments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.UUID(), nullable=False),
        sa.Column("section_id", sa.String(length=80), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("author", sa.String(length=255), nullable=False),
        sa.Column("is_resolved", sa.Boolean(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["review_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_review_comments_session_id", "review_comments", ["session_id"]
    )

    op.create_table(
        "document_edits",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.UUID(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.String(length=80), nullable=False),
        sa.Column("section_title", sa.String(length=500), nullable=False),
        sa.Column("original_content", sa.Text(), nullable=False),
        sa.Column("new_content", sa.Text(), nullable=False),
        sa.Column("edited_by", sa.String(length=255), nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["review_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_document_edits_session_id", "document_edits", ["session_id"])

    # --- Audit trail ---
    op.create_table(
        "case_audit_entries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("case_id", sa.UUID(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("action", _enum("auditaction"), nullable=False),
        sa.Column("detail", sa.Text(), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.Column("previous_value", sa.String(length=255), nullable=True),
        sa.Column("new_value", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_case_audit_entries_case_id", "case_audit_entries", ["case_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_case_audit_entries_case_id", table_name="case_audit_entries")
    op.drop_table("case_audit_entries")

    op.drop_index("ix_document_edits_session_id", table_name="document_edits")
    op.drop_table("document_edits")
    op.drop_index("ix_review_comments_session_id", table_name="review_comments")
    op.drop_table("review_comments")
    op.drop_index(
        "ix_review_sessions_generated_document_id", table_name="review_sessions"
    )
    op.drop_index("ix_review_sessions_case_id", table_name="review_sessions")
    op.drop_table("review_sessions")
    op.drop_index("ix_generated_documents_case_id", table_name="generated_documents")
    op.drop_table("generated_documents")

    op.drop_index("ix_recommendations_case_id", table_name="recommendations")
    op.drop_table("recommendations")
    op.drop_index("ix_policy_matches_case_id", table_name="policy_matches")
    op.drop_table("policy_matches")
    op.drop_index("ix_comparison_results_case_id", table_name="comparison_results")
    op.drop_table("comparison_results")

    op.drop_index("uq_case_documents_complaint", table_name="case_documents")
    op.drop_index("ix_case_documents_employee_id", table_name="case_documents")
    op.drop_index("ix_case_documents_case_id", table_name="case_documents")
    op.drop_table("case_documents")
    op.drop_index("ix_case_employees_case_id", table_name="case_employees")
    op.drop_table("case_employees")
    op.drop_index("ix_cases_status", table_name="cases")
    op.drop_index("ix_cases_case_number", table_name="cases")
    op.drop_table("cases")

    op.drop_index("ix_policy_sections_policy_id", table_name="policy_sections")
    op.drop_table("policy_sections")
    op.drop_index("ix_workplace_policies_status", table_name="workplace_policies")
    op.drop_table("workplace_policies")

    for enum_name in ENUMS:
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
