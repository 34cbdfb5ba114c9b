from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from caseflow.db import SessionLocal
from caseflow.schemas.common import ListResponse
from caseflow.schemas.policy import (
    PolicySectionCreate,
    PolicySectionRead,
    WorkplacePolicyCreate,
    WorkplacePolicyRead,
    WorkplacePolicyUpdate,
)
from caseflow.services import workplace_policy as policy_service

router = APIRouter(prefix="/policies", tags=["workplace-policies"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.post(
    "", response_model=WorkplacePolicyRead, status_code=status.HTTP_201_CREATED
)
def create_policy(payload: WorkplacePolicyCreate, db: Session = Depends(get_db)):
    return policy_service.workplace_policies.create(db, payload)


@router.get("", response_model=ListResponse[WorkplacePolicyRead])
def list_policies(
    status: str | None = None,
    is_active: bool | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return policy_service.workplace_policies.list_response(
        db, status, is_active, order_by, order_dir, limit, offset
    )


@router.get("/{policy_id}", response_model=WorkplacePolicyRead)
def get_policy(policy_id: str, db: Session = Depends(get_db)):
    return policy_service.workplace_policies.get(db, policy_id)


@router.patch("/{policy_id}", response_model=WorkplacePolicyRead)
def update_policy(
    policy_id: str, payload: WorkplacePolicyUpdate, db: Session = Depends(get_db)
):
    return policy_service.workplace_policies.update(db, policy_id, payload)


@router.delete("/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_policy(policy_id: str, db: Session = Depends(get_db)):
    policy_service.workplace_policies.delete(db, policy_id)


@router.post("/{policy_id}/activate", response_model=WorkplacePolicyRead)
def activate_policy(policy_id: str, db: Session = Depends(get_db)):
    return policy_service.workplace_policies.activate(db, policy_id)


@router.post(
    "/{policy_id}/sections",
    response_model=PolicySectionRead,
    status_code=status.HTTP_201_CREATED,
)
def add_section(
    policy_id: str, payload: PolicySectionCreate, db: Session = Depends(get_db)
):
    return policy_service.workplace_policies.add_section(db, policy_id, payload)


@router.delete(
    "/{policy_id}/sections/{section_id}", status_code=status.HTTP_204_NO_CONTENT
)
def remove_section(policy_id: str, section_id: str, db: Session = Depends(get_db)):
    policy_service.workplace_policies.remove_section(db, policy_id, section_id)
