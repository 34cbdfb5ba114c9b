import uuid
from unittest.mock import MagicMock, patch

from caseflow.services.event import EventType, publish_event


class TestEventType:
    def test_all_event_types_have_dotted_values(self) -> None:
        for et in EventType:
            assert "." in et.value, f"{et.name} value should contain a dot"

    def test_case_events(self) -> None:
        assert EventType.case_created.value == "case.created"
        assert EventType.case_closed.value == "case.closed"
        assert EventType.case_escalated.value == "case.escalated"

    def test_analysis_events(self) -> None:
        assert EventType.analysis_completed.value == "analysis.completed"
        assert (
            EventType.policy_alignment_completed.value
            == "analysis.policy_alignment_completed"
        )
        assert (
            EventType.decision_support_completed.value
            == "analysis.decision_support_completed"
        )

    def test_review_events(self) -> None:
        assert EventType.review_started.value == "review.started"
        assert EventType.review_approved.value == "review.approved"
        assert EventType.review_rejected.value == "review.rejected"


class TestPublishEvent:
    @patch("caseflow.tasks.events.process_event.delay")
    def test_publish_event_calls_delay(self, mock_delay: MagicMock) -> None:
        entity_id = uuid.uuid4()
        case_id = uuid.uuid4()
        publish_event(
            EventType.document_added,
            entity_type="document",
            entity_id=entity_id,
            actor="sup@example.com",
            case_id=case_id,
            payload={"document_type": "complaint_a"},
        )
        mock_delay.assert_called_once_with(
            event_type="document.added",
            entity_type="document",
            entity_id=str(entity_id),
            actor="sup@example.com",
            case_id=str(case_id),
            payload={"document_type": "complaint_a"},
        )

    @patch("caseflow.tasks.events.process_event.delay")
    def test_publish_event_none_actor_and_case(self, mock_delay: MagicMock) -> None:
        entity_id = uuid.uuid4()
        publish_event(
            EventType.policy_activated,
            entity_type="policy",
            entity_id=entity_id,
        )
        mock_delay.assert_called_once_with(
            event_type="policy.activated",
            entity_type="policy",
            entity_id=str(entity_id),
            actor=None,
            case_id=None,
            payload={},
        )

    @patch("caseflow.tasks.events.process_event.delay", side_effect=RuntimeError("down"))
    def test_publish_event_never_raises(self, mock_delay: MagicMock) -> None:
        publish_event(
            EventType.case_created,
            entity_type="case",
            entity_id=uuid.uuid4(),
        )
        # Should not raise
