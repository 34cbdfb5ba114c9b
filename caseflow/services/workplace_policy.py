import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.models.policy import (
    PolicySection,
    PolicySectionType,
    PolicyStatus,
    WorkplacePolicy,
)
from caseflow.schemas.policy import (
    PolicySectionCreate,
    WorkplacePolicyCreate,
    WorkplacePolicyUpdate,
)
from caseflow.services.common import apply_ordering, apply_pagination, coerce_uuid
from caseflow.services.event import EventType, publish_event
from caseflow.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


def _validate_section_type(section_type: str) -> PolicySectionType:
    try:
        return PolicySectionType(section_type)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Invalid section_type: {section_type}"
        )


def _validate_status(status: str) -> PolicyStatus:
    try:
        return PolicyStatus(status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")


def _build_section(payload: PolicySectionCreate, position: int) -> PolicySection:
    data = payload.model_dump()
    data["section_type"] = _validate_section_type(data["section_type"])
    return PolicySection(position=position, **data)


def _get_policy(db: Session, policy_id: str) -> WorkplacePolicy:
    policy = db.get(WorkplacePolicy, coerce_uuid(policy_id))
    if not policy or not policy.is_active:
        raise HTTPException(status_code=404, detail="Workplace policy not found")
    return policy


class WorkplacePolicies(ListResponseMixin):
    @staticmethod
    def create(db: Session, payload: WorkplacePolicyCreate) -> WorkplacePolicy:
        data = payload.model_dump(exclude={"sections"})
        policy = WorkplacePolicy(status=PolicyStatus.draft, **data)
        for position, section in enumerate(payload.sections, start=1):
            policy.sections.append(_build_section(section, position))
        db.add(policy)
        db.commit()
        db.refresh(policy)
        logger.info("Created workplace policy %s (%s)", policy.id, policy.version)
        return policy

    @staticmethod
    def get(db: Session, policy_id: str) -> WorkplacePolicy:
        return _get_policy(db, policy_id)

    @staticmethod
    def get_active(db: Session) -> WorkplacePolicy | None:
        """The policy currently used for case alignment, if any."""
        return (
            db.query(WorkplacePolicy)
            .filter(WorkplacePolicy.status == PolicyStatus.active)
            .filter(WorkplacePolicy.is_active.is_(True))
            .order_by(WorkplacePolicy.updated_at.desc())
            .first()
        )

    @staticmethod
    def update(
        db: Session, policy_id: str, payload: WorkplacePolicyUpdate
    ) -> WorkplacePolicy:
        policy = _get_policy(db, policy_id)
        data = payload.model_dump(exclude_unset=True)
        for key, value in data.items():
            if value is not None:
                setattr(policy, key, value)
        db.commit()
        db.refresh(policy)
        logger.info("Updated workplace policy %s", policy.id)
        return policy

    @staticmethod
    def add_section(
        db: Session, policy_id: str, payload: PolicySectionCreate
    ) -> PolicySection:
        policy = _get_policy(db, policy_id)
        position = max((s.position for s in policy.sections), default=0) + 1
        section = _build_section(payload, position)
        policy.sections.append(section)
        db.commit()
        db.refresh(section)
        logger.info("Added section %s to policy %s", section.section_number, policy.id)
        return section

    @staticmethod
    def remove_section(db: Session, policy_id: str, section_id: str) -> None:
        policy = _get_policy(db, policy_id)
        section = db.get(PolicySection, coerce_uuid(section_id))
        if not section or section.policy_id != policy.id:
            raise HTTPException(status_code=404, detail="Policy section not found")
        policy.sections.remove(section)
        db.commit()
        logger.info("Removed section %s from policy %s", section_id, policy.id)

    @staticmethod
    def activate(db: Session, policy_id: str) -> WorkplacePolicy:
        """Make ``policy_id`` the active policy, superseding the current one."""
        policy = _get_policy(db, policy_id)
        if not policy.sections:
            raise HTTPException(
                status_code=400, detail="A policy needs sections before activation"
            )
        previous = (
            db.query(WorkplacePolicy)
            .filter(WorkplacePolicy.status == PolicyStatus.active)
            .filter(WorkplacePolicy.id != policy.id)
            .all()
        )
        for other in previous:
            other.status = PolicyStatus.superseded
        policy.status = PolicyStatus.active
        db.commit()
        db.refresh(policy)
        logger.info(
            "Activated workplace policy %s (superseded %d)", policy.id, len(previous)
        )
        publish_event(
            EventType.policy_activated,
            entity_type="policy",
            entity_id=policy.id,
            payload={"superseded": [str(p.id) for p in previous]},
        )
        return policy

    @staticmethod
    def delete(db: Session, policy_id: str) -> None:
        policy = _get_policy(db, policy_id)
        policy.is_active = False
        policy.status = PolicyStatus.archived
        db.commit()
        logger.info("Archived workplace policy %s", policy_id)

    @staticmethod
    def list(
        db: Session,
        status: str | None,
        is_active: bool | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[WorkplacePolicy]:
        query = db.query(WorkplacePolicy)
        if status is not None:
            query = query.filter(WorkplacePolicy.status == _validate_status(status))
        if is_active is None:
            query = query.filter(WorkplacePolicy.is_active.is_(True))
        else:
            query = query.filter(WorkplacePolicy.is_active == is_active)
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": WorkplacePolicy.created_at,
                "title": WorkplacePolicy.title,
                "effective_date": WorkplacePolicy.effective_date,
            },
        )
        return apply_pagination(query, limit, offset).all()


workplace_policies = WorkplacePolicies()
