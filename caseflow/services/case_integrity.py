import asyncio
import logging
from collections.abc import Callable

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.errors import IntegrityViolation
from caseflow.models.case import (
    AuditAction,
    Case,
    CaseDocument,
    CaseDocumentType,
    CaseStatus,
    InvolvedEmployee,
)
from caseflow.schemas.case import (
    CaseDocumentCreate,
    InvolvedEmployeeCreate,
    ScannedDocumentCreate,
)
from caseflow.services.case_audit import CaseAudit
from caseflow.services.case_locks import case_locks
from caseflow.services.case_status import transition
from caseflow.services.case_store import ensure_mutable, load_case
from caseflow.services.common import coerce_uuid
from caseflow.services.event import EventType, publish_event

logger = logging.getLogger(__name__)

MAX_COMPLAINANTS = 2

SINGLETON_DOCUMENT_TYPES = frozenset(
    {CaseDocumentType.complaint_a, CaseDocumentType.complaint_b}
)


def _validate_document_type(document_type: str) -> CaseDocumentType:
    try:
        return CaseDocumentType(document_type)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Invalid document_type: {document_type}"
        )


def _only(employee: InvolvedEmployee | None) -> list[InvolvedEmployee]:
    return [employee] if employee is not None else []


_ELIGIBILITY: dict[CaseDocumentType, Callable[[Case], list[InvolvedEmployee]]] = {
    CaseDocumentType.complaint_a: lambda case: _only(case.complainant_a),
    CaseDocumentType.complaint_b: lambda case: _only(case.complainant_b),
    CaseDocumentType.witness_statement: lambda case: case.witnesses,
}


def eligible_people_for(
    document_type: CaseDocumentType, case: Case
) -> list[InvolvedEmployee]:
    """People a document of ``document_type`` may be attributed to."""
    selector = _ELIGIBILITY.get(document_type)
    if selector is None:
        return list(case.involved_employees)
    return selector(case)


def complaint_type_for(case: Case, employee: InvolvedEmployee) -> CaseDocumentType | None:
    """complaint_a for the first complainant, complaint_b for the second."""
    for ordinal, complainant in enumerate(case.complainants):
        if complainant.id == employee.id:
            if ordinal == 0:
                return CaseDocumentType.complaint_a
            return CaseDocumentType.complaint_b
    return None


def check_document_attribution(
    case: Case, document_type: CaseDocumentType, employee_id
) -> InvolvedEmployee | None:
    if document_type in SINGLETON_DOCUMENT_TYPES and case.documents_of_type(
        document_type
    ):
        raise IntegrityViolation(
            f"Case already has a {document_type.value} document",
            details={"document_type": document_type.value},
        )
    if employee_id is None:
        if document_type == CaseDocumentType.witness_statement:
            raise IntegrityViolation(
                "A witness statement must reference a registered witness",
                details={"document_type": document_type.value},
            )
        return None
    employee_id = coerce_uuid(employee_id)
    eligible = eligible_people_for(document_type, case)
    for person in eligible:
        if person.id == employee_id:
            return person
    raise IntegrityViolation(
        f"Employee {employee_id} cannot be attributed a {document_type.value} document",
        details={
            "document_type": document_type.value,
            "employee_id": str(employee_id),
            "eligible": [str(p.id) for p in eligible],
        },
    )


def _check_scan_target(
    db: Session, case_id, document_type: CaseDocumentType, employee_id
) -> None:
    case = load_case(db, case_id)
    ensure_mutable(case)
    check_document_attribution(case, document_type, employee_id)


class CaseIntegrity:
    @staticmethod
    def add_person(
        db: Session,
        case_id: str,
        payload: InvolvedEmployeeCreate,
        actor: str | None = None,
    ) -> InvolvedEmployee:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            if payload.is_complainant and len(case.complainants) >= MAX_COMPLAINANTS:
                raise IntegrityViolation(
                    f"A case admits at most {MAX_COMPLAINANTS} complainants",
                    details={"complainants": [str(c.id) for c in case.complainants]},
                )
            position = max((e.position for e in case.involved_employees), default=0)
            employee = InvolvedEmployee(position=position + 1, **payload.model_dump())
            case.involved_employees.append(employee)
            role = "complainant" if employee.is_complainant else "witness"
            CaseAudit.append(
                case,
                AuditAction.person_added,
                f"Added {role} {employee.name}",
                actor=actor,
            )
            db.commit()
            db.refresh(employee)
        logger.info("Added %s %s to case %s", role, employee.id, case.id)
        publish_event(
            EventType.person_added,
            entity_type="person",
            entity_id=employee.id,
            actor=actor,
            case_id=case.id,
        )
        return employee

    @staticmethod
    def remove_person(
        db: Session,
        case_id: str,
        employee_id: str,
        actor: str | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            employee = db.get(InvolvedEmployee, coerce_uuid(employee_id))
            if not employee or employee.case_id != case.id:
                raise HTTPException(status_code=404, detail="Involved employee not found")

            if employee.is_complainant:
                complaint_type = complaint_type_for(case, employee)
                dependent = case.documents_of_type(complaint_type)
            else:
                dependent = [
                    d
                    for d in case.documents_of_type(CaseDocumentType.witness_statement)
                    if d.employee_id == employee.id
                ]
            for document in dependent:
                case.documents.remove(document)
            for document in case.documents:
                if document.employee_id == employee.id:
                    document.employee_id = None
            if dependent:
                case.evidence_revision += 1

            case.involved_employees.remove(employee)
            CaseAudit.append(
                case,
                AuditAction.person_removed,
                f"Removed {employee.name} and {len(dependent)} dependent document(s)",
                actor=actor,
            )
            db.commit()
            db.refresh(case)
        logger.info(
            "Removed employee %s from case %s (%d documents cascaded)",
            employee_id,
            case.id,
            len(dependent),
        )
        publish_event(
            EventType.person_removed,
            entity_type="person",
            entity_id=employee_id,
            actor=actor,
            case_id=case.id,
            payload={"documents_removed": len(dependent)},
        )
        return case

    @staticmethod
    def add_document(
        db: Session,
        case_id: str,
        payload: CaseDocumentCreate,
        actor: str | None = None,
    ) -> CaseDocument:
        document_type = _validate_document_type(payload.document_type)
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            check_document_attribution(case, document_type, payload.employee_id)

            data = payload.model_dump()
            data["document_type"] = document_type
            document = CaseDocument(**data)
            case.documents.append(document)
            case.evidence_revision += 1
            CaseAudit.append(
                case,
                AuditAction.document_uploaded,
                f"Uploaded {document_type.value} document",
                actor=actor,
            )
            if case.status == CaseStatus.draft:
                transition(
                    case, CaseStatus.in_progress, "Evidence intake started", actor=actor
                )
            db.commit()
            db.refresh(document)
        logger.info(
            "Added %s document %s to case %s", document_type.value, document.id, case.id
        )
        publish_event(
            EventType.document_added,
            entity_type="document",
            entity_id=document.id,
            actor=actor,
            case_id=case.id,
            payload={"document_type": document_type.value},
        )
        return document

    @staticmethod
    async def add_scanned_document(
        db: Session,
        case_id: str,
        payload: ScannedDocumentCreate,
        intelligence,
        actor: str | None = None,
    ) -> CaseDocument:
        """OCR the scanned pages, then attach the text as a case document."""
        document_type = _validate_document_type(payload.document_type)
        await asyncio.to_thread(
            _check_scan_target, db, case_id, document_type, payload.employee_id
        )
        extracted = await intelligence.extract_document_text(
            payload.images, document_type.value, payload.source_language
        )
        return await asyncio.to_thread(
            CaseIntegrity.add_document,
            db,
            case_id,
            CaseDocumentCreate(
                document_type=document_type.value,
                original_text=extracted.original_text,
                translated_text=extracted.translated_text,
                cleaned_text=extracted.cleaned_text,
                detected_language=extracted.detected_language,
                is_handwritten=extracted.is_handwritten,
                page_count=max(extracted.page_count, len(payload.images)),
                employee_id=payload.employee_id,
                submitted_by=payload.submitted_by,
            ),
            actor=actor,
        )

    @staticmethod
    def remove_document(
        db: Session,
        case_id: str,
        document_id: str,
        actor: str | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            document = db.get(CaseDocument, coerce_uuid(document_id))
            if not document or document.case_id != case.id:
                raise HTTPException(status_code=404, detail="Document not found")
            case.documents.remove(document)
            case.evidence_revision += 1
            CaseAudit.append(
                case,
                AuditAction.document_removed,
                f"Removed {document.document_type.value} document",
                actor=actor,
            )
            db.commit()
            db.refresh(case)
        logger.info("Removed document %s from case %s", document_id, case.id)
        publish_event(
            EventType.document_removed,
            entity_type="document",
            entity_id=document_id,
            actor=actor,
            case_id=case.id,
        )
        return case

    @staticmethod
    def eligible_people(db: Session, case_id: str, document_type: str):
        document_type = _validate_document_type(document_type)
        return eligible_people_for(document_type, load_case(db, case_id))


case_integrity = CaseIntegrity()
