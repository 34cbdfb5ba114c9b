from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from caseflow.models.policy import PolicySectionType, PolicyStatus


class PolicySectionBase(BaseModel):
    section_number: str
    title: str
    content: str = ""
    section_type: str = "general"
    keywords: list[str] = Field(default_factory=list)


class PolicySectionCreate(PolicySectionBase):
    pass


class PolicySectionRead(PolicySectionBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    section_type: PolicySectionType
    position: int


class WorkplacePolicyBase(BaseModel):
    title: str
    version: str = "1.0"
    description: str | None = None
    effective_date: date | None = None


class WorkplacePolicyCreate(WorkplacePolicyBase):
    sections: list[PolicySectionCreate] = Field(default_factory=list)


class WorkplacePolicyUpdate(BaseModel):
    title: str | None = None
    version: str | None = None
    description: str | None = None
    effective_date: date | None = None


class WorkplacePolicyRead(WorkplacePolicyBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: PolicyStatus
    is_active: bool
    sections: list[PolicySectionRead]
    created_at: datetime
    updated_at: datetime
