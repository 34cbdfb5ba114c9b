from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from caseflow.db import SessionLocal
from caseflow.schemas.review import (
    DocumentEditCreate,
    DocumentEditRead,
    ReviewApproveRequest,
    ReviewCommentCreate,
    ReviewCommentRead,
    ReviewRejectRequest,
    ReviewSessionRead,
    ReviewStartRequest,
)
from caseflow.services import case_review as review_service

router = APIRouter(prefix="/cases/{case_id}/review", tags=["case-reviews"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("", response_model=ReviewSessionRead)
def get_review(case_id: str, db: Session = Depends(get_db)):
    return review_service.case_review.get_session(db, case_id)


@router.get("/history", response_model=list[ReviewSessionRead])
def review_history(case_id: str, db: Session = Depends(get_db)):
    return review_service.case_review.history(db, case_id)


@router.post("/start", response_model=ReviewSessionRead)
def start_review(
    case_id: str, payload: ReviewStartRequest, db: Session = Depends(get_db)
):
    return review_service.case_review.start_review(db, case_id, payload.reviewer)


@router.post(
    "/comments",
    response_model=ReviewCommentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    case_id: str, payload: ReviewCommentCreate, db: Session = Depends(get_db)
):
    return review_service.case_review.add_comment(db, case_id, payload)


@router.post("/comments/{comment_id}/resolve", response_model=ReviewCommentRead)
def resolve_comment(
    case_id: str,
    comment_id: str,
    actor: str | None = None,
    db: Session = Depends(get_db),
):
    return review_service.case_review.resolve_comment(db, case_id, comment_id, actor)


@router.post(
    "/edits",
    response_model=DocumentEditRead,
    status_code=status.HTTP_201_CREATED,
)
def edit_section(
    case_id: str, payload: DocumentEditCreate, db: Session = Depends(get_db)
):
    return review_service.case_review.edit_section(db, case_id, payload)


@router.post("/approve", response_model=ReviewSessionRead)
def approve_review(
    case_id: str, payload: ReviewApproveRequest, db: Session = Depends(get_db)
):
    return review_service.case_review.approve(db, case_id, payload.approved_by)


@router.post("/reject", response_model=ReviewSessionRead)
def reject_review(
    case_id: str, payload: ReviewRejectRequest, db: Session = Depends(get_db)
):
    return review_service.case_review.reject(
        db, case_id, payload.reason, payload.rejected_by
    )
