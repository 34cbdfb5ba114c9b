from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from caseflow.models.case import ReviewStatus


class ReviewCommentCreate(BaseModel):
    section_id: str
    body: str = Field(min_length=1)
    author: str


class ReviewCommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    section_id: str
    body: str
    author: str
    is_resolved: bool
    resolved_at: datetime | None = None
    created_at: datetime


class DocumentEditCreate(BaseModel):
    section_id: str
    new_content: str
    edited_by: str


class DocumentEditRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sequence: int
    section_id: str
    section_title: str
    original_content: str
    new_content: str
    edited_by: str
    edited_at: datetime


class ReviewSessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    generated_document_id: UUID
    status: ReviewStatus
    reviewer: str | None = None
    rejection_reason: str | None = None
    decided_at: datetime | None = None
    comments: list[ReviewCommentRead]
    edits: list[DocumentEditRead]
    created_at: datetime
    updated_at: datetime


class ReviewStartRequest(BaseModel):
    reviewer: str


class ReviewApproveRequest(BaseModel):
    approved_by: str


class ReviewRejectRequest(BaseModel):
    reason: str = Field(min_length=1)
    rejected_by: str
