import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import caseflow.models  # noqa: E402,F401
from caseflow.db import Base  # noqa: E402
from caseflow.models.case import RecommendedAction  # noqa: E402
from caseflow.schemas.case import (  # noqa: E402
    CaseCreate,
    CaseDocumentCreate,
    InvolvedEmployeeCreate,
)
from caseflow.schemas.intelligence import (  # noqa: E402
    ComparisonPayload,
    DocumentSectionPayload,
    ExtractedText,
    GeneratedDocumentPayload,
    PolicyMatchPayload,
    RecommendationOptionPayload,
    RecommendationPayload,
    SideBySideItem,
)
from caseflow.schemas.policy import (  # noqa: E402
    PolicySectionCreate,
    WorkplacePolicyCreate,
)


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class Payloads:
    @staticmethod
    def comparison(**overrides) -> ComparisonPayload:
        data = {
            "agreement_points": ["Both were on the loading dock at 14:00"],
            "contradictions": ["Who raised their voice first"],
            "unclear_items": ["Whether a supervisor was present"],
            "timeline_differences": ["Start of the argument differs by 10 minutes"],
            "emotional_language": ["'completely unacceptable'"],
            "missing_details": ["Names of bystanders"],
            "side_by_side": [
                SideBySideItem(
                    topic="Start of argument",
                    party_a_version="B shouted first",
                    party_b_version="A shouted first",
                    status="contradiction",
                )
            ],
            "neutral_summary": "Two employees disagree about a shift handover.",
            "party_a_name": "Dana Reyes",
            "party_b_name": "Sam Okafor",
        }
        data.update(overrides)
        return ComparisonPayload(**data)

    @staticmethod
    def policy_matches() -> list[PolicyMatchPayload]:
        return [
            PolicyMatchPayload(
                section_number="4.2",
                section_title="Respectful communication",
                relevance_explanation="Raised voices on the floor",
                match_confidence=0.82,
            )
        ]

    @staticmethod
    def recommendations(*actions: RecommendedAction) -> RecommendationPayload:
        actions = actions or (RecommendedAction.coaching, RecommendedAction.counseling)
        return RecommendationPayload(
            recommendations=[
                RecommendationOptionPayload(
                    action=action,
                    reasoning=f"{action.value} fits a first incident",
                    risk_assessment="Low",
                    suggested_next_steps=["Meet both employees"],
                    confidence=0.7,
                )
                for action in actions
            ]
        )

    @staticmethod
    def generated_document(title: str = "Coaching plan") -> GeneratedDocumentPayload:
        return GeneratedDocumentPayload(
            title=title,
            sections=[
                DocumentSectionPayload(
                    id="summary", title="Summary", content="What happened."
                ),
                DocumentSectionPayload(
                    id="expectations",
                    title="Expectations",
                    content="Communicate respectfully.",
                ),
            ],
            talking_points=["Acknowledge both perspectives"],
            policy_references=["4.2"],
            follow_up_timeline="Check in after two weeks",
        )

    @staticmethod
    def extracted_text(text: str = "Scanned statement text") -> ExtractedText:
        return ExtractedText(
            original_text=text,
            cleaned_text=text,
            detected_language="en",
            is_handwritten=True,
            page_count=1,
        )


class FakeIntelligence:
    def __init__(self):
        self.run_comparison = AsyncMock(return_value=Payloads.comparison())
        self.match_policy = AsyncMock(return_value=Payloads.policy_matches())
        self.get_recommendations = AsyncMock(return_value=Payloads.recommendations())
        self.generate_action_document = AsyncMock(
            return_value=Payloads.generated_document()
        )
        self.extract_document_text = AsyncMock(return_value=Payloads.extracted_text())


@pytest.fixture()
def payloads():
    return Payloads


@pytest.fixture()
def fake_intelligence():
    return FakeIntelligence()


# ---------------------------------------------------------------------------
# Database & app
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def published_events():
    with patch("caseflow.tasks.events.process_event.delay") as mock_delay:
        yield mock_delay


@pytest.fixture()
def client(db_session, fake_intelligence):
    from caseflow.api import cases as cases_api
    from caseflow.api import policies as policies_api
    from caseflow.api import reviews as reviews_api
    from caseflow.main import app
    from caseflow.services.intelligence import get_intelligence

    def _get_db():
        yield db_session

    for module in (cases_api, policies_api, reviews_api):
        app.dependency_overrides[module.get_db] = _get_db
    app.dependency_overrides[get_intelligence] = lambda: fake_intelligence
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Workflow builders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_case(db_session):
    from caseflow.services.case_store import cases

    def _make(**overrides):
        data = {
            "incident_date": date(2026, 3, 14),
            "location": "Warehouse B",
            "department": "Logistics",
            "created_by": "supervisor@example.com",
        }
        data.update(overrides)
        return cases.create(db_session, CaseCreate(**data))

    return _make


@pytest.fixture()
def case(make_case):
    return make_case()


@pytest.fixture()
def complainants(db_session, case):
    from caseflow.services.case_integrity import case_integrity

    first = case_integrity.add_person(
        db_session,
        case.id,
        InvolvedEmployeeCreate(name="Dana Reyes", role="Picker", is_complainant=True),
    )
    second = case_integrity.add_person(
        db_session,
        case.id,
        InvolvedEmployeeCreate(name="Sam Okafor", role="Driver", is_complainant=True),
    )
    return first, second


@pytest.fixture()
def witness(db_session, case):
    from caseflow.services.case_integrity import case_integrity

    return case_integrity.add_person(
        db_session,
        case.id,
        InvolvedEmployeeCreate(name="Lee Park", role="Team lead"),
    )


@pytest.fixture()
def ready_case(db_session, case, complainants):
    from caseflow.services.case_integrity import case_integrity

    first, second = complainants
    case_integrity.add_document(
        db_session,
        case.id,
        CaseDocumentCreate(
            document_type="complaint_a",
            original_text="Sam shouted at me during handover.",
            employee_id=first.id,
        ),
    )
    case_integrity.add_document(
        db_session,
        case.id,
        CaseDocumentCreate(
            document_type="complaint_b",
            original_text="Dana refused to sign the handover sheet.",
            employee_id=second.id,
        ),
    )
    db_session.refresh(case)
    return case


@pytest.fixture()
def analyzed_case(db_session, ready_case):
    from caseflow.services.case_analysis import case_analysis

    return case_analysis.apply_comparison(
        db_session, ready_case.id, ready_case.analysis_version, Payloads.comparison()
    )


@pytest.fixture()
def recommended_case(db_session, analyzed_case):
    from caseflow.services.case_analysis import case_analysis

    return case_analysis.apply_recommendations(
        db_session,
        analyzed_case.id,
        analyzed_case.analysis_version,
        Payloads.recommendations(),
    )


@pytest.fixture()
def selected_case(db_session, recommended_case):
    from caseflow.services.case_status import case_status

    return case_status.select_recommendation(
        db_session, recommended_case.id, recommended_case.recommendations[0].id
    )


@pytest.fixture()
def generated_case(db_session, selected_case):
    from caseflow.services.case_analysis import case_analysis

    return case_analysis.apply_generated_document(
        db_session,
        selected_case.id,
        selected_case.analysis_version,
        selected_case.selected_recommendation.id,
        Payloads.generated_document(),
    )


@pytest.fixture()
def active_policy(db_session):
    from caseflow.services.workplace_policy import workplace_policies

    policy = workplace_policies.create(
        db_session,
        WorkplacePolicyCreate(
            title="Workplace Conduct",
            version="2026.1",
            sections=[
                PolicySectionCreate(
                    section_number="4.2",
                    title="Respectful communication",
                    content="Employees communicate respectfully.",
                    section_type="conduct",
                )
            ],
        ),
    )
    return workplace_policies.activate(db_session, policy.id)
