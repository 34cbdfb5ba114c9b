import json
import uuid

import httpx
import pytest

from caseflow.errors import AnalysisError, OCRError, PolicyError, RecommendationError
from caseflow.models.case import RecommendedAction
from caseflow.schemas.intelligence import (
    CaseDetailsInput,
    ComparisonPayload,
    PolicyInput,
    PolicyMatchRequest,
    RecommendationRequest,
)
from caseflow.services.case_analysis import build_comparison_request
from caseflow.services.intelligence import HttpCaseIntelligence


def _client(handler) -> HttpCaseIntelligence:
    return HttpCaseIntelligence(
        base_url="https://intel.example.com/",
        api_key="secret-token",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def _details() -> CaseDetailsInput:
    return CaseDetailsInput(
        case_number="CR-20260314-0001", category="conflict", incident_date="2026-03-14"
    )


class TestComparison:
    @pytest.mark.asyncio
    async def test_posts_request_and_parses_payload(self, ready_case, payloads) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=payloads.comparison().model_dump())

        result = await _client(handler).run_comparison(
            build_comparison_request(ready_case)
        )
        assert isinstance(result, ComparisonPayload)
        assert result.side_by_side[0].status == "contradiction"
        assert seen["url"] == "https://intel.example.com/comparison"
        assert seen["auth"] == "Bearer secret-token"
        assert seen["body"]["complainant_a"]["name"] == "Dana Reyes"

    @pytest.mark.asyncio
    async def test_server_error(self, ready_case) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(AnalysisError) as exc:
            await _client(handler).run_comparison(build_comparison_request(ready_case))
        assert exc.value.status_code == 502
        assert exc.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_timeout(self, ready_case) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(AnalysisError):
            await _client(handler).run_comparison(build_comparison_request(ready_case))

    @pytest.mark.asyncio
    async def test_invalid_payload(self, ready_case) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"side_by_side": [{"status": "x"}]})

        with pytest.raises(AnalysisError):
            await _client(handler).run_comparison(build_comparison_request(ready_case))


class TestOtherEndpoints:
    @pytest.mark.asyncio
    async def test_policy_matches_list(self, payloads) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/policy-matches"
            return httpx.Response(
                200, json=[m.model_dump() for m in payloads.policy_matches()]
            )

        request = PolicyMatchRequest(
            policy=PolicyInput(id=uuid.uuid4(), title="Conduct", version="1", sections=[]),
            comparison=payloads.comparison(),
            case_details=_details(),
        )
        matches = await _client(handler).match_policy(request)
        assert [m.section_number for m in matches] == ["4.2"]

    @pytest.mark.asyncio
    async def test_policy_connection_error(self, payloads) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        request = PolicyMatchRequest(
            policy=PolicyInput(id=uuid.uuid4(), title="Conduct", version="1", sections=[]),
            comparison=payloads.comparison(),
            case_details=_details(),
        )
        with pytest.raises(PolicyError):
            await _client(handler).match_policy(request)

    @pytest.mark.asyncio
    async def test_recommendations(self, payloads) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json=payloads.recommendations().model_dump(mode="json")
            )

        result = await _client(handler).get_recommendations(
            RecommendationRequest(
                case_details=_details(), comparison=payloads.comparison()
            )
        )
        assert result.recommendations[0].action == RecommendedAction.coaching

    @pytest.mark.asyncio
    async def test_recommendations_bad_action(self, payloads) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"recommendations": [{"action": "termination"}]}
            )

        with pytest.raises(RecommendationError):
            await _client(handler).get_recommendations(
                RecommendationRequest(
                    case_details=_details(), comparison=payloads.comparison()
                )
            )

    @pytest.mark.asyncio
    async def test_ocr(self, payloads) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["images"] == ["aGVsbG8="]
            assert body["document_type"] == "complaint_a"
            return httpx.Response(200, json=payloads.extracted_text("Hola").model_dump())

        extracted = await _client(handler).extract_document_text(
            ["aGVsbG8="], "complaint_a", "es"
        )
        assert extracted.original_text == "Hola"

    @pytest.mark.asyncio
    async def test_ocr_unauthorized(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "bad key"})

        with pytest.raises(OCRError):
            await _client(handler).extract_document_text(["aGVsbG8="], "other", None)

    def test_no_auth_header_without_key(self) -> None:
        client = HttpCaseIntelligence(base_url="https://intel.example.com", api_key="")
        assert "Authorization" not in client._headers()
