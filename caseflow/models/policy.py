import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseflow.db import Base


class PolicyStatus(enum.Enum):
    draft = "draft"
    active = "active"
    superseded = "superseded"
    archived = "archived"


class PolicySectionType(enum.Enum):
    definition = "definition"
    procedure = "procedure"
    conduct = "conduct"
    discipline = "discipline"
    escalation = "escalation"
    general = "general"


class WorkplacePolicy(Base):
    __tablename__ = "workplace_policies"
    __table_args__ = (Index("ix_workplace_policies_status", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[str] = mapped_column(String(40), default="1.0")
    description: Mapped[str | None] = mapped_column(Text)
    effective_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[PolicyStatus] = mapped_column(
        Enum(PolicyStatus), default=PolicyStatus.draft
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    sections = relationship(
        "PolicySection",
        back_populates="policy",
        order_by="PolicySection.position",
        cascade="all, delete-orphan",
    )


class PolicySection(Base):
    __tablename__ = "policy_sections"
    __table_args__ = (Index("ix_policy_sections_policy_id", "policy_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workplace_policies.id"), nullable=False
    )
    section_number: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    section_type: Mapped[PolicySectionType] = mapped_column(
        Enum(PolicySectionType), default=PolicySectionType.general
    )
    keywords: Mapped[list] = mapped_column(JSON, default=list)
    position: Mapped[int] = mapped_column(Integer, default=0)

    policy = relationship("WorkplacePolicy", back_populates="sections")
