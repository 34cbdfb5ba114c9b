import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.models.case import AuditAction, AuditEntry, Case
from caseflow.services.common import apply_pagination, coerce_uuid
from caseflow.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


def _validate_action(action: str) -> None:
    try:
        AuditAction(action)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid action: {action}")


class CaseAudit(ListResponseMixin):
    @staticmethod
    def append(
        case: Case,
        action: AuditAction,
        detail: str = "",
        actor: str | None = None,
        previous_value: str | None = None,
        new_value: str | None = None,
    ) -> AuditEntry:
        """Stage an audit entry on ``case``; the caller's commit persists it.

        Appending is the one mutation allowed on a locked case.
        """
        entry = AuditEntry(
            sequence=len(case.audit_entries) + 1,
            action=action,
            detail=detail,
            actor=actor,
            previous_value=previous_value,
            new_value=new_value,
        )
        case.audit_entries.append(entry)
        logger.debug("Audit %s on case %s: %s", action.value, case.id, detail)
        return entry

    @staticmethod
    def record(
        db: Session,
        case_id: str,
        action: str,
        detail: str = "",
        actor: str | None = None,
    ) -> AuditEntry:
        case = db.get(Case, coerce_uuid(case_id))
        if not case:
            raise HTTPException(status_code=404, detail="Case not found")
        _validate_action(action)
        entry = CaseAudit.append(case, AuditAction(action), detail, actor)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def list(
        db: Session,
        case_id: str,
        action: str | None,
        limit: int,
        offset: int,
    ) -> list[AuditEntry]:
        if not db.get(Case, coerce_uuid(case_id)):
            raise HTTPException(status_code=404, detail="Case not found")
        query = db.query(AuditEntry).filter(
            AuditEntry.case_id == coerce_uuid(case_id)
        )
        if action is not None:
            _validate_action(action)
            query = query.filter(AuditEntry.action == AuditAction(action))
        query = query.order_by(AuditEntry.sequence.asc())
        return apply_pagination(query, limit, offset).all()


case_audit = CaseAudit()
