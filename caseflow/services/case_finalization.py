import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.config import settings
from caseflow.errors import IntegrityViolation, InvalidStateTransition
from caseflow.models.case import AuditAction, Case, CaseStatus, EscalationPriority
from caseflow.schemas.case import EscalateRequest, FinalizeRequest
from caseflow.services.case_audit import CaseAudit
from caseflow.services.case_locks import case_locks
from caseflow.services.case_status import transition
from caseflow.services.case_store import ensure_mutable, load_case
from caseflow.services.event import EventType, publish_event
from caseflow.services.readiness import can_finalize

logger = logging.getLogger(__name__)


def _bypass_roles() -> set[str]:
    return {
        role.strip().lower()
        for role in settings.review_bypass_roles.split(",")
        if role.strip()
    }


def _validate_priority(priority: str) -> EscalationPriority:
    try:
        return EscalationPriority(priority)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid priority: {priority}")


class CaseFinalization:
    @staticmethod
    def finalize(db: Session, case_id: str, payload: FinalizeRequest) -> Case:
        """Close the case once its action document has passed supervisor review.

        Roles in ``REVIEW_BYPASS_ROLES`` may close without an approved review;
        the bypass and its reason are kept on the case and in the audit trail.
        """
        bypass = payload.bypass_review
        if bypass:
            role = (payload.actor_role or "").strip().lower()
            if role not in _bypass_roles():
                raise HTTPException(
                    status_code=403,
                    detail=f"Role {payload.actor_role or 'unknown'} may not bypass review",
                )
            if not (payload.bypass_reason or "").strip():
                raise HTTPException(
                    status_code=400, detail="A reason is required to bypass review"
                )

        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            can_finalize(case, bypass=bypass).require()
            detail = "Case closed"
            if bypass:
                case.review_bypassed = True
                case.bypass_reason = payload.bypass_reason.strip()
                detail = (
                    f"Case closed without supervisor review by {payload.actor_role}: "
                    f"{case.bypass_reason}"
                )
            case.closed_at = datetime.now(timezone.utc)
            case.finalized_by = payload.actor
            transition(case, CaseStatus.closed, detail, actor=payload.actor)
            db.commit()
            db.refresh(case)
        logger.info("Closed case %s (review bypassed: %s)", case.id, bypass)
        publish_event(
            EventType.case_closed,
            entity_type="case",
            entity_id=case.id,
            actor=payload.actor,
            case_id=case.id,
            payload={"review_bypassed": bypass},
        )
        return case

    @staticmethod
    def escalate(db: Session, case_id: str, payload: EscalateRequest) -> Case:
        """Hand the case over to HR; the case is locked afterwards."""
        priority = _validate_priority(payload.priority)
        recipients = [r.strip() for r in payload.recipients if r.strip()]
        if not recipients:
            raise HTTPException(
                status_code=400, detail="At least one escalation recipient is required"
            )
        if not (payload.confirm_accuracy and payload.confirm_transfer):
            raise IntegrityViolation(
                "Escalation requires both the accuracy and transfer attestations",
                details={
                    "confirm_accuracy": payload.confirm_accuracy,
                    "confirm_transfer": payload.confirm_transfer,
                },
            )

        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            if case.status != CaseStatus.awaiting_action:
                raise InvalidStateTransition(
                    f"Cannot escalate a case that is {case.status.value}",
                    details={"from": case.status.value, "to": "escalated"},
                )
            case.escalated_at = datetime.now(timezone.utc)
            case.escalation_priority = priority
            case.escalation_recipients = recipients
            case.escalation_message = payload.message or None
            transition(
                case,
                CaseStatus.escalated,
                f"Escalated ({priority.value}) to {', '.join(recipients)}",
                actor=payload.actor,
            )
            db.commit()
            db.refresh(case)
        logger.info(
            "Escalated case %s with %s priority to %d recipient(s)",
            case.id,
            priority.value,
            len(recipients),
        )
        publish_event(
            EventType.case_escalated,
            entity_type="case",
            entity_id=case.id,
            actor=payload.actor,
            case_id=case.id,
            payload={"priority": priority.value, "recipients": recipients},
        )
        return case


case_finalization = CaseFinalization()
