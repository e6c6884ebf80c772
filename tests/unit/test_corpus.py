"""Unit tests for the coupon corpus client and store-name helpers."""

from __future__ import annotations

import json

import httpx
import pytest

from couponpilot.services.corpus import (
    UNLISTED_STORE,
    CouponCorpusClient,
    extract_domain,
    extract_store_name,
)


class TestStoreName:
    @pytest.mark.parametrize(
        ("url", "domain"),
        [
            ("https://www.amazon.com/checkout", "amazon.com"),
            ("https://shop.example.co.uk/cart?x=1", "shop.example.co.uk"),
            ("not a url", ""),
        ],
    )
    def test_extract_domain(self, url: str, domain: str) -> None:
        assert extract_domain(url) == domain

    def test_extract_store_name(self) -> None:
        assert extract_store_name("amazon.com") == "amazon"
        assert extract_store_name("localhost") == "localhost"
        assert extract_store_name("") == UNLISTED_STORE


class TestFetchCandidates:
    @pytest.mark.anyio
    async def test_grouped_codes_in_order(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/coupons/by-store"
            assert json.loads(request.content) == {"name": "amazon"}
            return httpx.Response(
                200,
                json={"status": "success", "data": {"honey": ["SAVE10", "FREESHIP"], "rakuten": ["WELCOME5"]}},
            )

        client = CouponCorpusClient(
            "http://corpus.test/api", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        candidates = await client.fetch_candidates("amazon")

        assert [c.code for c in candidates] == ["SAVE10", "FREESHIP", "WELCOME5"]
        assert candidates[0].identifier == "honey-SAVE10"
        assert candidates[2].source == "rakuten"

    @pytest.mark.anyio
    async def test_falls_back_to_store_search(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/coupons/by-store":
                return httpx.Response(200, json={"status": "success", "data": {}})
            assert request.url.path == "/api/stores"
            assert request.url.params["search"] == "amazon"
            assert request.url.params["limit"] == "50"
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "data": [
                        {
                            "id": 7,
                            "name": "Amazon",
                            "coupons": [
                                {"id": "c1", "code": "PRIME20", "details": "20% off"},
                                {"code": None, "details": "Free gift"},
                            ],
                        }
                    ],
                },
            )

        client = CouponCorpusClient(
            "http://corpus.test/api", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        candidates = await client.fetch_candidates("amazon")

        assert [c.code for c in candidates] == ["PRIME20", None]
        assert candidates[0].identifier == "c1"
        assert candidates[0].description == "20% off"
        assert candidates[1].identifier == "7-1"
        assert candidates[1].source == "Amazon"

    @pytest.mark.anyio
    async def test_total_failure_returns_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = CouponCorpusClient(
            "http://corpus.test/api", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        assert await client.fetch_candidates("amazon") == []


class TestParsing:
    def test_grouped_codes_skip_non_strings(self) -> None:
        candidates = CouponCorpusClient.parse_grouped_codes({"honey": ["A", 3, None], "meta": "x"})
        assert [c.code for c in candidates] == ["A"]

    def test_numeric_codes_coerced(self) -> None:
        body = {"status": "success", "data": [{"id": 1, "name": "s", "coupons": [{"code": 1234}]}]}
        assert CouponCorpusClient.parse_store_search(body, "s")[0].code == "1234"
