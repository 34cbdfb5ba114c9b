from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from caseflow.db import SessionLocal
from caseflow.schemas.case import (
    AuditEntryRead,
    CaseCreate,
    CaseDocumentCreate,
    CaseDocumentRead,
    CaseRead,
    CaseStatsRead,
    CaseSummaryRead,
    CaseUpdate,
    EscalateRequest,
    FinalizeRequest,
    InvolvedEmployeeCreate,
    InvolvedEmployeeRead,
    ReadinessRead,
    ScannedDocumentCreate,
    SelectRecommendationRequest,
)
from caseflow.schemas.common import ListResponse
from caseflow.services import case_analysis as analysis_service
from caseflow.services import case_audit as audit_service
from caseflow.services import case_finalization as finalization_service
from caseflow.services import case_integrity as integrity_service
from caseflow.services import case_status as status_service
from caseflow.services import case_store as case_service
from caseflow.services import readiness
from caseflow.services.intelligence import CaseIntelligence, get_intelligence

router = APIRouter(prefix="/cases", tags=["cases"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ------------------------------------------------------------------
# Case CRUD
# ------------------------------------------------------------------


@router.post("", response_model=CaseRead, status_code=status.HTTP_201_CREATED)
def create_case(payload: CaseCreate, db: Session = Depends(get_db)):
    return case_service.cases.create(db, payload)


@router.get("", response_model=ListResponse[CaseSummaryRead])
def list_cases(
    status: str | None = None,
    category: str | None = None,
    department: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return case_service.cases.list_response(
        db, status, category, department, order_by, order_dir, limit, offset
    )


@router.get("/stats", response_model=CaseStatsRead)
def case_stats(db: Session = Depends(get_db)):
    return case_service.cases.stats(db)


@router.get("/{case_id}", response_model=CaseRead)
def get_case(case_id: str, db: Session = Depends(get_db)):
    return case_service.cases.get(db, case_id)


@router.patch("/{case_id}", response_model=CaseRead)
def update_case(case_id: str, payload: CaseUpdate, db: Session = Depends(get_db)):
    return case_service.cases.update(db, case_id, payload)


@router.delete("/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_case(case_id: str, db: Session = Depends(get_db)):
    case_service.cases.delete(db, case_id)


# ------------------------------------------------------------------
# People & documents
# ------------------------------------------------------------------


@router.post(
    "/{case_id}/people",
    response_model=InvolvedEmployeeRead,
    status_code=status.HTTP_201_CREATED,
)
def add_person(
    case_id: str,
    payload: InvolvedEmployeeCreate,
    actor: str | None = None,
    db: Session = Depends(get_db),
):
    return integrity_service.case_integrity.add_person(db, case_id, payload, actor)


@router.delete("/{case_id}/people/{employee_id}", response_model=CaseRead)
def remove_person(
    case_id: str,
    employee_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
):
    return integrity_service.case_integrity.remove_person(
        db, case_id, employee_id, actor
    )


@router.get(
    "/{case_id}/eligible-people", response_model=list[InvolvedEmployeeRead]
)
def eligible_people(
    case_id: str, document_type: str = Query(), db: Session = Depends(get_db)
):
    return integrity_service.case_integrity.eligible_people(db, case_id, document_type)


@router.post(
    "/{case_id}/documents",
    response_model=CaseDocumentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_document(
    case_id: str,
    payload: CaseDocumentCreate,
    actor: str | None = None,
    db: Session = Depends(get_db),
):
    return integrity_service.case_integrity.add_document(db, case_id, payload, actor)


@router.post(
    "/{case_id}/documents/scan",
    response_model=CaseDocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_scanned_document(
    case_id: str,
    payload: ScannedDocumentCreate,
    actor: str | None = None,
    db: Session = Depends(get_db),
    intelligence: CaseIntelligence = Depends(get_intelligence),
):
    return await integrity_service.case_integrity.add_scanned_document(
        db, case_id, payload, intelligence, actor
    )


@router.delete("/{case_id}/documents/{document_id}", response_model=CaseRead)
def remove_document(
    case_id: str,
    document_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
):
    return integrity_service.case_integrity.remove_document(
        db, case_id, document_id, actor
    )


# ------------------------------------------------------------------
# Readiness & audit trail
# ------------------------------------------------------------------


@router.get("/{case_id}/readiness", response_model=ReadinessRead)
def get_readiness(case_id: str, db: Session = Depends(get_db)):
    return readiness.evaluate(case_service.cases.get(db, case_id))


@router.get("/{case_id}/audit", response_model=ListResponse[AuditEntryRead])
def list_audit_entries(
    case_id: str,
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return audit_service.case_audit.list_response(db, case_id, action, limit, offset)


# ------------------------------------------------------------------
# Analysis phases
# ------------------------------------------------------------------


@router.post("/{case_id}/analysis", response_model=CaseRead)
async def run_analysis(
    case_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
    intelligence: CaseIntelligence = Depends(get_intelligence),
):
    return await analysis_service.case_analysis.run_analysis(
        db, case_id, intelligence, actor
    )


@router.post("/{case_id}/policy-alignment", response_model=CaseRead)
async def run_policy_alignment(
    case_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
    intelligence: CaseIntelligence = Depends(get_intelligence),
):
    return await analysis_service.case_analysis.run_policy_alignment(
        db, case_id, intelligence, actor
    )


@router.post("/{case_id}/decision-support", response_model=CaseRead)
async def run_decision_support(
    case_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
    intelligence: CaseIntelligence = Depends(get_intelligence),
):
    return await analysis_service.case_analysis.run_decision_support(
        db, case_id, intelligence, actor
    )


@router.post("/{case_id}/pending-phases", response_model=CaseRead)
async def run_pending_phases(
    case_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
    intelligence: CaseIntelligence = Depends(get_intelligence),
):
    return await analysis_service.case_analysis.run_pending_phases(
        db, case_id, intelligence, actor
    )


@router.post("/{case_id}/selection", response_model=CaseRead)
def select_recommendation(
    case_id: str,
    payload: SelectRecommendationRequest,
    db: Session = Depends(get_db),
):
    return status_service.case_status.select_recommendation(
        db, case_id, str(payload.recommendation_id), payload.actor
    )


@router.post("/{case_id}/action-document", response_model=CaseRead)
async def generate_action(
    case_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
    intelligence: CaseIntelligence = Depends(get_intelligence),
):
    return await analysis_service.case_analysis.generate_action(
        db, case_id, intelligence, actor
    )


# ------------------------------------------------------------------
# Finalization
# ------------------------------------------------------------------


@router.post("/{case_id}/finalize", response_model=CaseRead)
def finalize_case(
    case_id: str, payload: FinalizeRequest, db: Session = Depends(get_db)
):
    return finalization_service.case_finalization.finalize(db, case_id, payload)


@router.post("/{case_id}/escalate", response_model=CaseRead)
def escalate_case(
    case_id: str, payload: EscalateRequest, db: Session = Depends(get_db)
):
    return finalization_service.case_finalization.escalate(db, case_id, payload)
