"""Field detection result produced by the locator client."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, model_validator


class DetectionStatus(str, Enum):
    """Outcome of a single field-detection pass."""

    NOT_CHECKOUT = "not_checkout"
    FIELD_FOUND = "field_found"
    NOT_FOUND = "not_found"


class DetectionResult(BaseModel):
    """Where the discount-code field lives on the current page, if anywhere."""

    status: DetectionStatus
    field_selector: str | None = None
    submit_selector: str | None = None
    message: str = ""

    @model_validator(mode="after")
    def _found_requires_selector(self) -> "DetectionResult":
        if self.status == DetectionStatus.FIELD_FOUND and not self.field_selector:
            raise ValueError("FIELD_FOUND requires a field_selector")
        return self

    @property
    def found(self) -> bool:
        return self.status == DetectionStatus.FIELD_FOUND

    @classmethod
    def not_found(cls, message: str) -> "DetectionResult":
        return cls(status=DetectionStatus.NOT_FOUND, message=message)

    @classmethod
    def not_checkout(cls, message: str = "Are you sure you are on the checkout page?") -> "DetectionResult":
        return cls(status=DetectionStatus.NOT_CHECKOUT, message=message)
