"""Outcome Classifier client — asks the validation service whether a code took.

Sends the candidate code and a bounded markup fragment around the still
present field.  Unlike the locator, this client raises ``ServiceError`` on
any failure; the decision policy turns that into a fail-closed rejection.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError

from couponpilot.exceptions import ServiceError
from couponpilot.services import error_message, unwrap_envelope

if TYPE_CHECKING:
    from couponpilot.settings.config import ClassifierSettings

logger = logging.getLogger(__name__)

_SERVICE = "classifier"


class ClassifierResponse(BaseModel):
    """Wire body of a successful validation response."""

    model_config = ConfigDict(extra="ignore")

    is_valid: StrictBool = Field(validation_alias="isValid")
    message: str = ""


class OutcomeClassifierClient:
    """Async client for the coupon-validation service.

    Args:
        base_url: Service base URL.
        validate_path: Path of the validation endpoint.
        timeout_sec: Per-request timeout.
        fragment_limit: Maximum number of fragment characters sent.
        client: Optional pre-built ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        *,
        validate_path: str = "/coupon-validator/validate",
        timeout_sec: float = 20.0,
        fragment_limit: int = 10_000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.validate_path = validate_path
        self.fragment_limit = fragment_limit
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    @classmethod
    def from_settings(cls, settings: ClassifierSettings | None = None) -> "OutcomeClassifierClient":
        """Create a client from couponpilot settings."""
        if settings is None:
            from couponpilot.settings import get_settings

            settings = get_settings().classifier
        return cls(
            base_url=settings.base_url,
            validate_path=settings.validate_path,
            timeout_sec=settings.timeout_sec,
            fragment_limit=settings.fragment_limit,
        )

    async def classify(self, code: str, fragment: str) -> bool:
        """Return True if the service judges *code* accepted given *fragment*.

        Raises:
            ServiceError: On timeout, transport error, non-2xx status or a
                malformed body.
        """
        payload = {"couponCode": code, "html": fragment[: self.fragment_limit]}
        endpoint = f"{self.base_url}{self.validate_path}"

        try:
            resp = await self._client.post(endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise ServiceError(_SERVICE, "request timed out") from e
        except httpx.HTTPError as e:
            raise ServiceError(_SERVICE, f"request failed: {e}") from e

        try:
            body: Any = resp.json()
        except ValueError as e:
            raise ServiceError(_SERVICE, f"non-JSON response (HTTP {resp.status_code})") from e

        if resp.is_error:
            raise ServiceError(_SERVICE, error_message(body, f"HTTP {resp.status_code}"))

        verdict = self.parse_verdict(body)
        logger.debug("Classifier verdict for %s: %s", code, verdict)
        return verdict

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    @staticmethod
    def parse_verdict(body: Any) -> bool:
        """Extract the boolean verdict from a validation response body.

        Raises:
            ServiceError: If the body is malformed or an error envelope.
        """
        data = unwrap_envelope(_SERVICE, body)
        try:
            return ClassifierResponse.model_validate(data).is_valid
        except ValidationError as e:
            raise ServiceError(_SERVICE, f"malformed response: {e.error_count()} validation error(s)") from e
