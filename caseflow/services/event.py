import enum
import logging
import uuid

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    case_created = "case.created"
    case_updated = "case.updated"
    case_deleted = "case.deleted"
    case_status_changed = "case.status_changed"
    case_closed = "case.closed"
    case_escalated = "case.escalated"

    person_added = "person.added"
    person_removed = "person.removed"

    document_added = "document.added"
    document_removed = "document.removed"

    analysis_completed = "analysis.completed"
    policy_alignment_completed = "analysis.policy_alignment_completed"
    decision_support_completed = "analysis.decision_support_completed"

    action_selected = "action.selected"
    action_generated = "action.generated"

    review_started = "review.started"
    review_changes_requested = "review.changes_requested"
    review_approved = "review.approved"
    review_rejected = "review.rejected"

    policy_activated = "policy.activated"


def publish_event(
    event_type: EventType,
    entity_type: str,
    entity_id: str | uuid.UUID,
    actor: str | None = None,
    case_id: str | uuid.UUID | None = None,
    payload: dict | None = None,
) -> None:
    """Fire-and-forget event publishing.

    Queues a Celery task that forwards the event to the configured case-events
    webhook. Never raises; failures are logged.
    """
    try:
        from caseflow.tasks.events import process_event

        process_event.delay(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor=actor,
            case_id=str(case_id) if case_id else None,
            payload=payload or {},
        )
        logger.debug(
            "Published event %s for %s/%s", event_type.value, entity_type, entity_id
        )
    except Exception as e:
        logger.exception("Failed to publish event %s: %s", event_type.value, e)
