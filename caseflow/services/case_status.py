import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.errors import InvalidStateTransition, ReadinessNotMet
from caseflow.models.case import (
    OPEN_REVIEW_STATUSES,
    AuditAction,
    Case,
    CaseStatus,
    Recommendation,
    ReviewStatus,
)
from caseflow.services.case_audit import CaseAudit
from caseflow.services.case_locks import case_locks
from caseflow.services.case_store import ensure_mutable, load_case
from caseflow.services.common import coerce_uuid
from caseflow.services.event import EventType, publish_event

logger = logging.getLogger(__name__)


TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    CaseStatus.draft: frozenset({CaseStatus.in_progress, CaseStatus.pending_review}),
    CaseStatus.in_progress: frozenset({CaseStatus.pending_review}),
    CaseStatus.pending_review: frozenset(
        {CaseStatus.pending_review, CaseStatus.awaiting_action}
    ),
    CaseStatus.awaiting_action: frozenset(
        {CaseStatus.pending_review, CaseStatus.closed, CaseStatus.escalated}
    ),
    CaseStatus.closed: frozenset(),
    CaseStatus.escalated: frozenset(),
}


def can_transition(current: CaseStatus, target: CaseStatus) -> bool:
    return target in TRANSITIONS[current]


def transition(
    case: Case,
    target: CaseStatus,
    detail: str = "",
    actor: str | None = None,
    audit: bool = True,
) -> None:
    """Move ``case`` to ``target`` and stage the audit entry; no commit.

    Guards specific to a transition are checked by the calling service.
    Pass ``audit=False`` when the caller records the change in its own entry.
    """
    ensure_mutable(case)
    current = case.status
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot move case from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
    case.status = target
    logger.info("Case %s status %s -> %s", case.id, current.value, target.value)
    if not audit:
        return
    action = AuditAction.case_status_changed
    if target == CaseStatus.closed:
        action = AuditAction.case_closed
    elif target == CaseStatus.escalated:
        action = AuditAction.case_escalated
    CaseAudit.append(
        case,
        action,
        detail or f"Status changed to {target.value}",
        actor=actor,
        previous_value=current.value,
        new_value=target.value,
    )


def retire_generated_document(case: Case, reason: str) -> bool:
    """Deactivate the active generated document and cancel its open review."""
    generated = case.generated_document
    if generated is None:
        return False
    session = case.review_session
    if session is not None and session.status in OPEN_REVIEW_STATUSES:
        session.status = ReviewStatus.cancelled
        session.rejection_reason = reason
    generated.is_active = False
    return True


def clear_selection(case: Case) -> bool:
    cleared = False
    for rec in case.recommendation_history:
        if rec.is_selected:
            rec.is_selected = False
            cleared = True
    return cleared


class CaseStatusMachine:
    @staticmethod
    def select_recommendation(
        db: Session,
        case_id: str,
        recommendation_id: str,
        actor: str | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            if case.status not in (
                CaseStatus.pending_review,
                CaseStatus.awaiting_action,
            ):
                raise InvalidStateTransition(
                    f"Cannot select an action while case is {case.status.value}",
                    details={"from": case.status.value, "to": "awaiting_action"},
                )
            rec = db.get(Recommendation, coerce_uuid(recommendation_id))
            if not rec or rec.case_id != case.id:
                raise HTTPException(status_code=404, detail="Recommendation not found")
            if not rec.is_active or rec.analysis_version != case.analysis_version:
                raise ReadinessNotMet(
                    "Recommendation was produced for an earlier analysis",
                    details={
                        "recommendation_version": rec.analysis_version,
                        "analysis_version": case.analysis_version,
                    },
                )
            if rec.is_selected:
                return case

            if clear_selection(case):
                retire_generated_document(case, "Selected action changed")
            rec.is_selected = True
            CaseAudit.append(
                case,
                AuditAction.action_selected,
                f"Selected action {rec.action.value}",
                actor=actor,
                new_value=rec.action.value,
            )
            if case.status == CaseStatus.pending_review:
                transition(
                    case,
                    CaseStatus.awaiting_action,
                    "Recommended action selected",
                    actor=actor,
                )
            db.commit()
            db.refresh(case)
        logger.info("Selected recommendation %s for case %s", rec.id, case.id)
        publish_event(
            EventType.action_selected,
            entity_type="recommendation",
            entity_id=rec.id,
            actor=actor,
            case_id=case.id,
            payload={"action": rec.action.value},
        )
        return case


case_status = CaseStatusMachine()
