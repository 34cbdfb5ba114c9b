"""Client for the case intelligence services.

Statement comparison, policy matching, decision support, action document
drafting and OCR are all remote calls. The workflow core only depends on
the ``CaseIntelligence`` protocol; ``HttpCaseIntelligence`` is the
production implementation.
"""

import logging
from typing import Protocol, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from caseflow.config import settings
from caseflow.errors import (
    AnalysisError,
    ExternalServiceError,
    GenerationError,
    OCRError,
    PolicyError,
    RecommendationError,
)
from caseflow.schemas.intelligence import (
    ActionDocumentRequest,
    ComparisonPayload,
    ComparisonRequest,
    ExtractedText,
    ExtractTextRequest,
    GeneratedDocumentPayload,
    PolicyMatchPayload,
    PolicyMatchRequest,
    RecommendationPayload,
    RecommendationRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CaseIntelligence(Protocol):
    async def run_comparison(
        self, request: ComparisonRequest
    ) -> ComparisonPayload: ...

    async def match_policy(
        self, request: PolicyMatchRequest
    ) -> list[PolicyMatchPayload]: ...

    async def get_recommendations(
        self, request: RecommendationRequest
    ) -> RecommendationPayload: ...

    async def generate_action_document(
        self, request: ActionDocumentRequest
    ) -> GeneratedDocumentPayload: ...

    async def extract_document_text(
        self, images: list[str], document_type: str, source_language: str | None
    ) -> ExtractedText: ...


class HttpCaseIntelligence:
    """Async HTTP client for the intelligence services."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.intelligence_base_url).rstrip("/")
        self.api_key = settings.intelligence_api_key if api_key is None else api_key
        self.timeout = timeout or settings.intelligence_timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(
        self,
        path: str,
        request: BaseModel,
        response_type: type[T],
        error_cls: type[ExternalServiceError],
    ) -> T:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    path, json=request.model_dump(mode="json")
                )
                response.raise_for_status()
                return TypeAdapter(response_type).validate_python(response.json())
        except httpx.TimeoutException as e:
            logger.warning("Intelligence call %s timed out: %s", path, e)
            raise error_cls(f"{path} timed out", details={"path": path})
        except httpx.HTTPStatusError as e:
            body = e.response.text[:200] if e.response.text else None
            logger.warning(
                "Intelligence call %s failed with HTTP %s", path, e.response.status_code
            )
            raise error_cls(
                f"{path} returned HTTP {e.response.status_code}",
                details={"path": path, "status_code": e.response.status_code, "body": body},
            )
        except httpx.HTTPError as e:
            logger.warning("Intelligence call %s failed: %s", path, e)
            raise error_cls(f"{path} is unavailable", details={"path": path})
        except (ValidationError, ValueError) as e:
            logger.warning("Intelligence call %s returned an invalid payload: %s", path, e)
            raise error_cls(f"{path} returned an invalid payload", details={"path": path})

    async def run_comparison(self, request: ComparisonRequest) -> ComparisonPayload:
        return await self._post("/comparison", request, ComparisonPayload, AnalysisError)

    async def match_policy(
        self, request: PolicyMatchRequest
    ) -> list[PolicyMatchPayload]:
        return await self._post(
            "/policy-matches", request, list[PolicyMatchPayload], PolicyError
        )

    async def get_recommendations(
        self, request: RecommendationRequest
    ) -> RecommendationPayload:
        return await self._post(
            "/recommendations", request, RecommendationPayload, RecommendationError
        )

    async def generate_action_document(
        self, request: ActionDocumentRequest
    ) -> GeneratedDocumentPayload:
        return await self._post(
            "/action-documents", request, GeneratedDocumentPayload, GenerationError
        )

    async def extract_document_text(
        self, images: list[str], document_type: str, source_language: str | None
    ) -> ExtractedText:
        request = ExtractTextRequest(
            images=images, document_type=document_type, source_language=source_language
        )
        return await self._post("/ocr", request, ExtractedText, OCRError)


def get_intelligence() -> CaseIntelligence:
    return HttpCaseIntelligence()
