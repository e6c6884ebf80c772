"""HTTP clients for the external collaborators.

Shared response handling: the backing services answer either with the
bare contract body or wrapped in a ``{"status": ..., "data": ...}``
envelope.  ``unwrap_envelope`` normalises both shapes.
"""

from __future__ import annotations

from typing import Any

from couponpilot.exceptions import ServiceError


def unwrap_envelope(service: str, body: Any) -> dict[str, Any]:
    """Return the payload dict from a bare or enveloped response body.

    Raises:
        ServiceError: If the body is not a JSON object, the envelope reports
            an error, or the envelope carries no ``data`` object.
    """
    if not isinstance(body, dict):
        raise ServiceError(service, f"expected a JSON object, got {type(body).__name__}")
    if "status" not in body:
        return body
    if body.get("status") != "success":
        raise ServiceError(service, str(body.get("message") or f"status={body.get('status')}"))
    data = body.get("data")
    if not isinstance(data, dict):
        raise ServiceError(service, "envelope has no data object")
    return data


def error_message(body: Any, fallback: str) -> str:
    """Extract a human-readable message from an error response body."""
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return fallback
