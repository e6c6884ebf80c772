"""Field Locator client — asks the selector-detection service where the code field is.

One POST per detection pass.  The client never raises: transport
failures, timeouts, non-2xx answers and malformed bodies all come back
as a ``NOT_FOUND`` ``DetectionResult`` with a descriptive message.  It
does not retry either; a retry needs a fresh markup snapshot, which only
the orchestrator can take.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from couponpilot.exceptions import ServiceError
from couponpilot.models.detection import DetectionResult, DetectionStatus
from couponpilot.services import error_message, unwrap_envelope

if TYPE_CHECKING:
    from couponpilot.settings.config import LocatorSettings

logger = logging.getLogger(__name__)

_SERVICE = "locator"


class LocatorResponse(BaseModel):
    """Wire body of a successful detection response."""

    model_config = ConfigDict(extra="ignore")

    is_checkout_page: bool = Field(default=True, validation_alias="isCheckoutPage")
    input_selector: str | None = Field(default=None, validation_alias=AliasChoices("inputSelector", "selector"))
    apply_button_selector: str | None = Field(default=None, validation_alias="applyButtonSelector")
    message: str = ""


class FieldLocatorClient:
    """Async client for the selector-detection service.

    Args:
        base_url: Service base URL (e.g. ``http://localhost:5000/api``).
        detect_path: Path of the detection endpoint.
        timeout_sec: Per-request timeout.
        markup_limit: Maximum number of markup characters sent.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        *,
        detect_path: str = "/selector/detect",
        timeout_sec: float = 30.0,
        markup_limit: int = 50_000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.detect_path = detect_path
        self.markup_limit = markup_limit
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    @classmethod
    def from_settings(cls, settings: LocatorSettings | None = None) -> "FieldLocatorClient":
        """Create a client from couponpilot settings."""
        if settings is None:
            from couponpilot.settings import get_settings

            settings = get_settings().locator
        return cls(
            base_url=settings.base_url,
            detect_path=settings.detect_path,
            timeout_sec=settings.timeout_sec,
            markup_limit=settings.markup_limit,
        )

    async def detect(self, markup: str, url: str) -> DetectionResult:
        """Locate the discount-code field in *markup* captured from *url*."""
        payload = {"html": markup[: self.markup_limit], "url": url}
        endpoint = f"{self.base_url}{self.detect_path}"

        try:
            resp = await self._client.post(endpoint, json=payload)
        except httpx.TimeoutException:
            logger.warning("Locator timed out for %s", url)
            return DetectionResult.not_found("Field detection timed out")
        except httpx.HTTPError as e:
            logger.warning("Locator request failed for %s: %s", url, e)
            return DetectionResult.not_found(f"Field detection unavailable: {e}")

        try:
            body: Any = resp.json()
        except ValueError:
            body = None

        if resp.is_error:
            message = error_message(body, f"Server error: {resp.status_code}")
            logger.warning("Locator HTTP %s for %s: %s", resp.status_code, url, message)
            return self._failure(message)

        try:
            return self.parse_detection(body)
        except ServiceError as e:
            logger.warning("Locator returned unusable body for %s: %s", url, e)
            return self._failure(str(e))

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @staticmethod
    def parse_detection(body: Any) -> DetectionResult:
        """Map a detection response body to a ``DetectionResult``.

        Raises:
            ServiceError: If the body is malformed or an error envelope.
        """
        data = unwrap_envelope(_SERVICE, body)
        try:
            parsed = LocatorResponse.model_validate(data)
        except ValidationError as e:
            raise ServiceError(_SERVICE, f"malformed response: {e.error_count()} validation error(s)") from e

        if not parsed.is_checkout_page:
            return DetectionResult.not_checkout(parsed.message or "Are you sure you are on the checkout page?")
        if not parsed.input_selector:
            return DetectionResult.not_found(parsed.message or "Could not detect coupon input field")
        return DetectionResult(
            status=DetectionStatus.FIELD_FOUND,
            field_selector=parsed.input_selector,
            submit_selector=parsed.apply_button_selector or None,
            message=parsed.message or "Coupon input field detected",
        )

    @staticmethod
    def _failure(message: str) -> DetectionResult:
        # The detection service phrases its not-a-checkout answer as an error.
        if "checkout" in message.lower():
            return DetectionResult.not_checkout(message)
        return DetectionResult.not_found(message)
