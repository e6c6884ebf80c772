"""couponpilot test configuration — shared fixtures and page/service fakes."""

from __future__ import annotations

from typing import Any, Callable

import pytest
from playwright.async_api import Error as PlaywrightError

from couponpilot.browser import dom
from couponpilot.models.detection import DetectionResult, DetectionStatus

# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from couponpilot.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Fake page
# ---------------------------------------------------------------------------

_SCRIPT_NAMES = {
    dom._FIELD_EXISTS_JS: "field_exists",
    dom._CODE_VISIBLE_JS: "code_visible",
    dom._FRAGMENT_JS: "fragment",
    dom._CLEAR_FIELD_JS: "clear",
    dom._APPEND_CHAR_JS: "append",
    dom._FINALIZE_FIELD_JS: "finalize",
    dom._CLICK_JS: "click",
    dom._SUBMIT_FORM_JS: "submit_form",
}


class FakePage:
    """Stands in for a Playwright ``Page`` by answering the ``dom`` scripts.

    Every ``evaluate`` call is recorded in ``calls`` as ``(name, arg)``.

    Args:
        url: Reported page URL.
        html: Returned by ``content()``.
        field_present: Whether the code field currently resolves.
        appear_after: Number of presence probes that miss before the field shows up.
        page_texts: Rendered texts used by the visible-code probe.
        fragment: Markup returned for the fragment probe.
        submit_controls: Selectors that resolve to a clickable submit control.
        form_mode: What the enclosing-form fallback reports.
        on_submit: Called with ``(page, value)`` whenever the code is submitted.
        fail_on: Script names that raise a browser error.
    """

    def __init__(
        self,
        *,
        url: str = "https://shop.example.com/checkout",
        html: str = "<html><body><form><input id='promo'></form></body></html>",
        field_present: bool = True,
        appear_after: int = 0,
        page_texts: tuple[str, ...] = (),
        fragment: str = "<form><input id='promo'><div role='alert'></div></form>",
        submit_controls: tuple[str, ...] = (),
        form_mode: str = "form_button",
        on_submit: Callable[["FakePage", str], None] | None = None,
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self.url = url
        self.html = html
        self.field_present = field_present
        self.appear_after = appear_after
        self.page_texts = {t.strip().upper() for t in page_texts}
        self.fragment = fragment
        self.submit_controls = set(submit_controls)
        self.form_mode = form_mode
        self.on_submit = on_submit
        self.fail_on = set(fail_on)

        self.value = ""
        self.submitted: list[str] = []
        self.clicked: list[str] = []
        self.calls: list[tuple[str, Any]] = []
        self.content_calls = 0
        self._presence_probes = 0

    def calls_named(self, name: str) -> list[Any]:
        return [arg for n, arg in self.calls if n == name]

    async def content(self) -> str:
        self.content_calls += 1
        if "content" in self.fail_on:
            raise PlaywrightError("Target page, context or browser has been closed")
        return self.html

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        name = _SCRIPT_NAMES[script]
        self.calls.append((name, arg))
        if name in self.fail_on:
            raise PlaywrightError(f"{name} failed: execution context was destroyed")
        return getattr(self, f"_{name}")(arg)

    # -- script handlers ---------------------------------------------------

    def _field_exists(self, selector: str) -> bool:
        self._presence_probes += 1
        return self.field_present and self._presence_probes > self.appear_after

    def _code_visible(self, code: str) -> bool:
        return code.strip().upper() in self.page_texts

    def _fragment(self, arg: list[Any]) -> str | None:
        return self.fragment if self.field_present else None

    def _clear(self, selector: str) -> bool:
        if not self.field_present:
            return False
        self.value = ""
        return True

    def _append(self, arg: list[str]) -> bool:
        if not self.field_present:
            return False
        self.value += arg[1]
        return True

    def _finalize(self, selector: str) -> bool:
        return self.field_present

    def _click(self, selector: str) -> bool:
        if selector not in self.submit_controls:
            return False
        self.clicked.append(selector)
        self._submit()
        return True

    def _submit_form(self, selector: str) -> str:
        if self.form_mode != "none":
            self._submit()
        return self.form_mode

    def _submit(self) -> None:
        self.submitted.append(self.value)
        if self.on_submit is not None:
            self.on_submit(self, self.value)


@pytest.fixture()
def make_page() -> Callable[..., FakePage]:
    """Return a factory for ``FakePage`` instances."""
    return FakePage


# ---------------------------------------------------------------------------
# Service fakes
# ---------------------------------------------------------------------------


class FakeLocator:
    """Locator returning a fixed ``DetectionResult``."""

    markup_limit = 50_000

    def __init__(self, result: DetectionResult) -> None:
        self.result = result
        self.calls: list[tuple[str, str]] = []

    async def detect(self, markup: str, url: str) -> DetectionResult:
        self.calls.append((markup, url))
        return self.result


class FakeClassifier:
    """Classifier answering from a ``code -> verdict`` map, or raising ``error``."""

    def __init__(self, verdicts: dict[str, bool] | None = None, error: Exception | None = None) -> None:
        self.verdicts = verdicts or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def classify(self, code: str, fragment: str) -> bool:
        self.calls.append((code, fragment))
        if self.error is not None:
            raise self.error
        return self.verdicts.get(code, False)


@pytest.fixture()
def found() -> DetectionResult:
    """A successful detection with both selectors."""
    return DetectionResult(
        status=DetectionStatus.FIELD_FOUND,
        field_selector="#promo",
        submit_selector="#apply",
        message="Coupon input field detected",
    )


@pytest.fixture()
def make_locator() -> Callable[..., FakeLocator]:
    return FakeLocator


@pytest.fixture()
def make_classifier() -> Callable[..., FakeClassifier]:
    return FakeClassifier


# ---------------------------------------------------------------------------
# Interactor
# ---------------------------------------------------------------------------


@pytest.fixture()
def interactor():
    """A ``FieldInteractor`` with every delay set to zero."""
    from couponpilot.browser.interactor import FieldInteractor

    return FieldInteractor(
        poll_attempts=3,
        poll_interval_ms=0,
        clear_settle_ms=0,
        char_delay_ms=0,
        submit_settle_ms=0,
        post_submit_settle_ms=0,
    )


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require external services or real I/O")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
