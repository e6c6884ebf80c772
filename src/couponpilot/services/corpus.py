"""Coupon corpus client — fetches the ranked candidate list for a store.

Primary lookup is ``POST /coupons/by-store`` which answers with codes
grouped by platform.  When that fails or comes back empty the client
falls back to ``GET /stores?search=`` and flattens each matching store's
coupons.  Order is preserved exactly as the service returns it; the
orchestrator tries candidates in that order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import httpx

from couponpilot.exceptions import ServiceError
from couponpilot.models.candidate import Candidate
from couponpilot.services import unwrap_envelope

if TYPE_CHECKING:
    from couponpilot.settings.config import CorpusSettings

logger = logging.getLogger(__name__)

_SERVICE = "corpus"

UNLISTED_STORE = "Unlisted Store"


def extract_domain(url: str) -> str:
    """Return the hostname of *url* without a leading ``www.``."""
    hostname = urlparse(url).hostname or ""
    return hostname.removeprefix("www.")


def extract_store_name(domain: str) -> str:
    """Return the label before the TLD (``amazon.com`` -> ``amazon``)."""
    domain = domain.strip()
    if not domain:
        return UNLISTED_STORE
    parts = domain.split(".")
    if len(parts) >= 2:
        return parts[0]
    return domain


class CouponCorpusClient:
    """Async client for the coupon corpus.

    Args:
        base_url: Corpus API base URL.
        timeout_sec: Per-request timeout.
        search_limit: Page size for the store-search fallback.
        client: Optional pre-built ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        *,
        timeout_sec: float = 10.0,
        search_limit: int = 50,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.search_limit = search_limit
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    @classmethod
    def from_settings(cls, settings: CorpusSettings | None = None) -> "CouponCorpusClient":
        """Create a client from couponpilot settings."""
        if settings is None:
            from couponpilot.settings import get_settings

            settings = get_settings().corpus
        return cls(base_url=settings.base_url, timeout_sec=settings.timeout_sec, search_limit=settings.search_limit)

    async def fetch_candidates(self, store_name: str) -> list[Candidate]:
        """Return the ordered candidates for *store_name*; ``[]`` on failure."""
        try:
            candidates = await self._fetch_by_store(store_name)
        except (httpx.HTTPError, ServiceError, ValueError) as e:
            logger.warning("Lookup /coupons/by-store failed for %s, falling back to search: %s", store_name, e)
            candidates = []

        if candidates:
            logger.info("Found %d candidate(s) for %s", len(candidates), store_name)
            return candidates

        try:
            candidates = await self._search_stores(store_name)
        except (httpx.HTTPError, ServiceError, ValueError) as e:
            logger.error("Store search failed for %s: %s", store_name, e)
            return []
        logger.info("Store search found %d candidate(s) for %s", len(candidates), store_name)
        return candidates

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch_by_store(self, store_name: str) -> list[Candidate]:
        resp = await self._client.post(f"{self.base_url}/coupons/by-store", json={"name": store_name})
        resp.raise_for_status()
        return self.parse_grouped_codes(resp.json())

    async def _search_stores(self, store_name: str) -> list[Candidate]:
        resp = await self._client.get(
            f"{self.base_url}/stores",
            params={"search": store_name, "page": 1, "limit": self.search_limit},
        )
        resp.raise_for_status()
        return self.parse_store_search(resp.json(), store_name)

    @staticmethod
    def parse_grouped_codes(body: Any) -> list[Candidate]:
        """Flatten ``{platform: [code, ...]}`` into candidates, in order."""
        data = unwrap_envelope(_SERVICE, body)
        candidates: list[Candidate] = []
        for platform, codes in data.items():
            if not isinstance(codes, list):
                continue
            for code in codes:
                if not isinstance(code, str):
                    continue
                candidates.append(Candidate(identifier=f"{platform}-{code}", code=code, source=platform))
        return candidates

    @staticmethod
    def parse_store_search(body: Any, store_name: str) -> list[Candidate]:
        """Flatten each matching store's coupon list into candidates."""
        if not isinstance(body, dict) or body.get("status") != "success" or not isinstance(body.get("data"), list):
            raise ServiceError(_SERVICE, "unexpected store search response")

        candidates: list[Candidate] = []
        for store in body["data"]:
            if not isinstance(store, dict):
                continue
            store_id = str(store.get("id", ""))
            coupons = store.get("coupons")
            if not isinstance(coupons, list):
                coupons = store.get("coupon") or []
            for position, coupon in enumerate(coupons):
                if not isinstance(coupon, dict):
                    continue
                code = coupon.get("code")
                identifier = coupon.get("id") or f"{store_id}-{code or position}"
                candidates.append(
                    Candidate(
                        identifier=str(identifier),
                        code=str(code) if code is not None else None,
                        description=coupon.get("details"),
                        source=store.get("name") or store_name,
                    )
                )
        return candidates
