import logging
import random
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from caseflow.errors import CaseLocked
from caseflow.models.case import (
    TERMINAL_STATUSES,
    AuditAction,
    Case,
    CaseCategory,
    CaseStatus,
)
from caseflow.schemas.case import CaseCreate, CaseUpdate
from caseflow.services.case_audit import CaseAudit
from caseflow.services.case_locks import case_locks
from caseflow.services.common import apply_ordering, apply_pagination, coerce_uuid
from caseflow.services.event import EventType, publish_event
from caseflow.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

_CASE_NUMBER_ATTEMPTS = 10


def _validate_category(category: str) -> None:
    try:
        CaseCategory(category)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid category: {category}")


def _validate_status(status: str) -> None:
    try:
        CaseStatus(status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")


def generate_case_number(today: datetime | None = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"CR-{today:%Y%m%d}-{random.randint(1000, 9999):04d}"


def load_case(db: Session, case_id) -> Case:
    case = db.get(Case, coerce_uuid(case_id))
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    return case


def ensure_mutable(case: Case) -> None:
    if case.status in TERMINAL_STATUSES:
        raise CaseLocked(
            f"Case {case.case_number} is {case.status.value} and cannot be modified",
            details={"case_id": str(case.id), "status": case.status.value},
        )


class Cases(ListResponseMixin):
    @staticmethod
    def create(db: Session, payload: CaseCreate) -> Case:
        _validate_category(payload.category)
        data = payload.model_dump()
        data["category"] = CaseCategory(data["category"])
        case_number = data.pop("case_number") or Cases._unused_case_number(db)
        if db.query(Case).filter(Case.case_number == case_number).first():
            raise HTTPException(
                status_code=409, detail=f"Case number {case_number} already exists"
            )
        case = Case(case_number=case_number, status=CaseStatus.draft, **data)
        db.add(case)
        CaseAudit.append(
            case,
            AuditAction.case_created,
            f"Case {case_number} created",
            actor=payload.created_by or None,
        )
        db.commit()
        db.refresh(case)
        logger.info("Created case %s (%s)", case.id, case.case_number)
        publish_event(
            EventType.case_created,
            entity_type="case",
            entity_id=case.id,
            actor=payload.created_by or None,
            case_id=case.id,
        )
        return case

    @staticmethod
    def _unused_case_number(db: Session) -> str:
        for _ in range(_CASE_NUMBER_ATTEMPTS):
            candidate = generate_case_number()
            if not db.query(Case).filter(Case.case_number == candidate).first():
                return candidate
        raise HTTPException(status_code=503, detail="Could not allocate a case number")

    @staticmethod
    def get(db: Session, case_id: str) -> Case:
        return load_case(db, case_id)

    @staticmethod
    def update(db: Session, case_id: str, payload: CaseUpdate) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            data = payload.model_dump(exclude_unset=True)
            if data.get("category") is not None:
                _validate_category(data["category"])
                data["category"] = CaseCategory(data["category"])
            changed = sorted(key for key, value in data.items() if value is not None)
            if not changed:
                db.rollback()
                db.refresh(case)
                return case
            for key, value in data.items():
                if value is not None:
                    setattr(case, key, value)
            CaseAudit.append(
                case, AuditAction.case_updated, f"Updated {', '.join(changed)}"
            )
            db.commit()
            db.refresh(case)
        logger.info("Updated case %s", case.id)
        publish_event(
            EventType.case_updated, entity_type="case", entity_id=case.id, case_id=case.id
        )
        return case

    @staticmethod
    def delete(db: Session, case_id: str) -> None:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.delete(case)
            db.commit()
        logger.info("Deleted case %s with all owned records", case_id)
        publish_event(
            EventType.case_deleted, entity_type="case", entity_id=case_id, case_id=case_id
        )

    @staticmethod
    def stats(db: Session) -> dict:
        rows = db.query(Case.status, func.count(Case.id)).group_by(Case.status).all()
        counts = {status: count for status, count in rows}
        total = sum(counts.values())
        closed = counts.get(CaseStatus.closed, 0)
        return {
            "total": total,
            "open": total - closed,
            "draft": counts.get(CaseStatus.draft, 0),
            "closed": closed,
            "escalated": counts.get(CaseStatus.escalated, 0),
        }

    @staticmethod
    def list(
        db: Session,
        status: str | None,
        category: str | None,
        department: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Case]:
        query = db.query(Case)
        if status is not None:
            _validate_status(status)
            query = query.filter(Case.status == CaseStatus(status))
        if category is not None:
            _validate_category(category)
            query = query.filter(Case.category == CaseCategory(category))
        if department is not None:
            query = query.filter(Case.department == department)
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Case.created_at,
                "updated_at": Case.updated_at,
                "incident_date": Case.incident_date,
                "case_number": Case.case_number,
            },
        )
        return apply_pagination(query, limit, offset).all()


cases = Cases()
