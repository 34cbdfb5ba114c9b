"""Supervisor review of generated action documents.

A review session is opened in ``pending`` whenever a document is generated.
``approved`` and ``rejected`` are final for the session; every transition
writes exactly one audit entry.
"""

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.errors import InvalidStateTransition
from caseflow.models.case import (
    OPEN_REVIEW_STATUSES,
    AuditAction,
    Case,
    CaseStatus,
    DocumentEdit,
    ReviewComment,
    ReviewSession,
    ReviewStatus,
)
from caseflow.schemas.review import DocumentEditCreate, ReviewCommentCreate
from caseflow.services.case_audit import CaseAudit
from caseflow.services.case_locks import case_locks
from caseflow.services.case_status import clear_selection, transition
from caseflow.services.case_store import ensure_mutable, load_case
from caseflow.services.common import coerce_uuid
from caseflow.services.event import EventType, publish_event

logger = logging.getLogger(__name__)


def _open_session(case: Case, allowed=OPEN_REVIEW_STATUSES) -> ReviewSession:
    session = case.review_session
    if session is None:
        raise HTTPException(status_code=404, detail="No review session for this case")
    if session.status not in allowed:
        raise InvalidStateTransition(
            f"Review session is {session.status.value}",
            details={
                "from": session.status.value,
                "allowed": sorted(status.value for status in allowed),
            },
        )
    return session


def _require_section(case: Case, section_id: str) -> dict:
    section = case.generated_document.section(section_id)
    if section is None:
        raise HTTPException(status_code=404, detail="Document section not found")
    return section


class CaseReview:
    @staticmethod
    def get_session(db: Session, case_id: str) -> ReviewSession:
        case = load_case(db, case_id)
        session = case.review_session
        if session is None:
            raise HTTPException(status_code=404, detail="No review session for this case")
        return session

    @staticmethod
    def history(db: Session, case_id: str) -> list[ReviewSession]:
        return list(load_case(db, case_id).review_sessions)

    @staticmethod
    def start_review(db: Session, case_id: str, reviewer: str) -> ReviewSession:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            session = _open_session(case, allowed=frozenset({ReviewStatus.pending}))
            session.status = ReviewStatus.in_review
            session.reviewer = reviewer
            CaseAudit.append(
                case,
                AuditAction.supervisor_review_started,
                f"Supervisor review started by {reviewer}",
                actor=reviewer,
            )
            db.commit()
            db.refresh(session)
        logger.info("Review %s started for case %s", session.id, case.id)
        publish_event(
            EventType.review_started,
            entity_type="review_session",
            entity_id=session.id,
            actor=reviewer,
            case_id=case.id,
        )
        return session

    @staticmethod
    def add_comment(
        db: Session, case_id: str, payload: ReviewCommentCreate
    ) -> ReviewComment:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            session = _open_session(case)
            _require_section(case, payload.section_id)
            comment = ReviewComment(**payload.model_dump())
            session.comments.append(comment)
            previous = session.status
            session.status = ReviewStatus.changes_requested
            CaseAudit.append(
                case,
                AuditAction.review_changes_requested,
                f"Changes requested on section {payload.section_id}",
                actor=payload.author,
                previous_value=previous.value,
                new_value=session.status.value,
            )
            db.commit()
            db.refresh(comment)
        logger.info("Comment %s added to review %s", comment.id, session.id)
        publish_event(
            EventType.review_changes_requested,
            entity_type="review_session",
            entity_id=session.id,
            actor=payload.author,
            case_id=case.id,
            payload={"section_id": payload.section_id},
        )
        return comment

    @staticmethod
    def resolve_comment(
        db: Session, case_id: str, comment_id: str, actor: str | None = None
    ) -> ReviewComment:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            session = _open_session(case)
            comment = db.get(ReviewComment, coerce_uuid(comment_id))
            if not comment or comment.session_id != session.id:
                raise HTTPException(status_code=404, detail="Review comment not found")
            if comment.is_resolved:
                return comment
            comment.is_resolved = True
            comment.resolved_at = datetime.now(timezone.utc)
            CaseAudit.append(
                case,
                AuditAction.review_comment_resolved,
                f"Resolved comment on section {comment.section_id}",
                actor=actor,
            )
            db.commit()
            db.refresh(comment)
        logger.info("Resolved comment %s on review %s", comment.id, session.id)
        return comment

    @staticmethod
    def edit_section(
        db: Session, case_id: str, payload: DocumentEditCreate
    ) -> DocumentEdit:
        """Replace a section's visible content and append the change to the ledger."""
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            session = _open_session(case)
            section = _require_section(case, payload.section_id)
            edit = DocumentEdit(
                sequence=len(session.edits) + 1,
                section_id=payload.section_id,
                section_title=section.get("title", ""),
                original_content=section.get("content", ""),
                new_content=payload.new_content,
                edited_by=payload.edited_by,
            )
            session.edits.append(edit)

            generated = case.generated_document
            sections = []
            for item in generated.sections:
                item = dict(item)
                if item.get("id") == payload.section_id:
                    item["content"] = payload.new_content
                sections.append(item)
            # Reassign so the JSON column is flagged as changed.
            generated.sections = sections

            CaseAudit.append(
                case,
                AuditAction.document_edited,
                f"Edited section {edit.section_title or payload.section_id}",
                actor=payload.edited_by,
            )
            db.commit()
            db.refresh(edit)
        logger.info(
            "Section %s of document %s edited (edit #%d)",
            payload.section_id,
            generated.id,
            edit.sequence,
        )
        return edit

    @staticmethod
    def approve(db: Session, case_id: str, approved_by: str) -> ReviewSession:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            session = _open_session(case)
            now = datetime.now(timezone.utc)
            previous = session.status
            session.status = ReviewStatus.approved
            session.decided_at = now
            session.reviewer = session.reviewer or approved_by
            generated = case.generated_document
            generated.is_approved = True
            generated.approved_at = now
            generated.approved_by = approved_by
            CaseAudit.append(
                case,
                AuditAction.supervisor_review_approved,
                f"Action document approved by {approved_by}",
                actor=approved_by,
                previous_value=previous.value,
                new_value=session.status.value,
            )
            db.commit()
            db.refresh(session)
        logger.info("Review %s approved for case %s", session.id, case.id)
        publish_event(
            EventType.review_approved,
            entity_type="review_session",
            entity_id=session.id,
            actor=approved_by,
            case_id=case.id,
        )
        return session

    @staticmethod
    def reject(
        db: Session, case_id: str, reason: str, rejected_by: str
    ) -> ReviewSession:
        """Reject the document and send the case back to decision support."""
        reason = (reason or "").strip()
        if not reason:
            raise HTTPException(status_code=400, detail="A rejection reason is required")
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            session = _open_session(case)
            previous = session.status
            session.status = ReviewStatus.rejected
            session.rejection_reason = reason
            session.decided_at = datetime.now(timezone.utc)
            session.reviewer = session.reviewer or rejected_by
            case.generated_document.is_active = False
            clear_selection(case)
            if case.status == CaseStatus.awaiting_action:
                transition(
                    case, CaseStatus.pending_review, actor=rejected_by, audit=False
                )
            CaseAudit.append(
                case,
                AuditAction.supervisor_review_rejected,
                f"Action document rejected: {reason}",
                actor=rejected_by,
                previous_value=previous.value,
                new_value=session.status.value,
            )
            db.commit()
            db.refresh(session)
        logger.info("Review %s rejected for case %s", session.id, case.id)
        publish_event(
            EventType.review_rejected,
            entity_type="review_session",
            entity_id=session.id,
            actor=rejected_by,
            case_id=case.id,
            payload={"reason": reason},
        )
        return session


case_review = CaseReview()
