from caseflow.models.case import (  # noqa: F401
    AuditAction,
    AuditEntry,
    Case,
    CaseCategory,
    CaseDocument,
    CaseDocumentType,
    CaseStatus,
    ComparisonResult,
    DocumentEdit,
    EscalationPriority,
    GeneratedDocument,
    InvolvedEmployee,
    PolicyMatch,
    Recommendation,
    RecommendedAction,
    ReviewComment,
    ReviewSession,
    ReviewStatus,
)
from caseflow.models.policy import (  # noqa: F401
    PolicySection,
    PolicySectionType,
    PolicyStatus,
    WorkplacePolicy,
)
