"""Field interactor — types a code into the located field and submits it.

Bulk assignment of ``value`` is ignored by many reactive checkout widgets,
so the code is appended one character at a time with an ``input`` event
after each, followed by ``change`` / ``keyup`` and focus.  Submission
prefers the locator's submit control and falls back to the enclosing
form.

The result is structural only: ``completed`` says the sequence ran to the
end, not whether the store accepted the code.  That decision belongs to
``couponpilot.trial.policy``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from couponpilot.browser import dom
from couponpilot.browser.polling import poll_until
from couponpilot.exceptions import FieldNotFoundError

if TYPE_CHECKING:
    from playwright.async_api import Page

    from couponpilot.settings.config import InteractorSettings

logger = logging.getLogger(__name__)


class SubmitMethod(str, Enum):
    """How the code was submitted to the host page."""

    SUBMIT_CONTROL = "submit_control"
    FORM_BUTTON = "form_button"
    FORM_SUBMIT = "form_submit"
    NONE = "none"


@dataclass
class InteractionResult:
    """Structural outcome of one typing + submission sequence."""

    completed: bool
    message: str = ""
    submit_method: SubmitMethod = SubmitMethod.NONE
    poll_attempts: int = 0
    browser_error: bool = False


class FieldInteractor:
    """Simulates a user typing a code into the discount field.

    Args:
        poll_attempts: Presence-poll attempts before giving up on the field.
        poll_interval_ms: Delay between presence-poll attempts.
        clear_settle_ms: Pause after clearing the field.
        char_delay_ms: Pause between typed characters.
        submit_settle_ms: Pause before activating the submit control.
        post_submit_settle_ms: Pause after submission for the page to react.
    """

    def __init__(
        self,
        *,
        poll_attempts: int = 5,
        poll_interval_ms: int = 500,
        clear_settle_ms: int = 200,
        char_delay_ms: int = 50,
        submit_settle_ms: int = 300,
        post_submit_settle_ms: int = 2_000,
    ) -> None:
        self.poll_attempts = poll_attempts
        self.poll_interval_ms = poll_interval_ms
        self.clear_settle_ms = clear_settle_ms
        self.char_delay_ms = char_delay_ms
        self.submit_settle_ms = submit_settle_ms
        self.post_submit_settle_ms = post_submit_settle_ms

    @classmethod
    def from_settings(cls, settings: InteractorSettings | None = None) -> "FieldInteractor":
        """Create an interactor from couponpilot settings."""
        if settings is None:
            from couponpilot.settings import get_settings

            settings = get_settings().interactor
        return cls(
            poll_attempts=settings.poll_attempts,
            poll_interval_ms=settings.poll_interval_ms,
            clear_settle_ms=settings.clear_settle_ms,
            char_delay_ms=settings.char_delay_ms,
            submit_settle_ms=settings.submit_settle_ms,
            post_submit_settle_ms=settings.post_submit_settle_ms,
        )

    async def wait_for_field(self, page: Page, selector: str) -> int:
        """Poll until *selector* resolves.

        Returns:
            The number of attempts it took.

        Raises:
            FieldNotFoundError: If every attempt came back empty.
        """
        result = await poll_until(
            lambda: dom.field_exists(page, selector),
            attempts=self.poll_attempts,
            interval_s=self.poll_interval_ms / 1000,
            label=f"field {selector}",
        )
        if not result:
            raise FieldNotFoundError(selector, result.attempts)
        return result.attempts

    async def apply_code(
        self,
        page: Page,
        code: str,
        field_selector: str,
        submit_selector: str | None = None,
    ) -> InteractionResult:
        """Type *code* into the field and trigger the page's submission.

        Never raises for page-side failures; a vanished field or a browser
        error is reported as ``completed=False``.
        """
        attempts = 0
        try:
            attempts = await self.wait_for_field(page, field_selector)
            await self._type_code(page, code, field_selector)
            method = await self._submit(page, field_selector, submit_selector)
        except FieldNotFoundError as exc:
            logger.warning("Cannot apply %s: %s", code, exc)
            return InteractionResult(completed=False, message=str(exc), poll_attempts=exc.attempts or attempts)
        except PlaywrightError as exc:
            logger.warning("Browser error while applying %s: %s", code, exc)
            return InteractionResult(
                completed=False, message=f"Browser error: {exc}", poll_attempts=attempts, browser_error=True
            )

        await asyncio.sleep(self.post_submit_settle_ms / 1000)
        logger.info("Applied %s via %s", code, method.value)
        return InteractionResult(completed=True, submit_method=method, poll_attempts=attempts)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _type_code(self, page: Page, code: str, selector: str) -> None:
        if not await dom.clear_field(page, selector):
            raise FieldNotFoundError(selector)
        await asyncio.sleep(self.clear_settle_ms / 1000)

        for i, ch in enumerate(code):
            if not await dom.append_character(page, selector, ch):
                raise FieldNotFoundError(selector)
            if i < len(code) - 1:
                await asyncio.sleep(self.char_delay_ms / 1000)

        if not await dom.finalize_field(page, selector):
            raise FieldNotFoundError(selector)

    async def _submit(self, page: Page, field_selector: str, submit_selector: str | None) -> SubmitMethod:
        if submit_selector:
            await asyncio.sleep(self.submit_settle_ms / 1000)
            if await dom.click_element(page, submit_selector):
                return SubmitMethod.SUBMIT_CONTROL
            logger.warning("Submit control %s not found, falling back to form submission", submit_selector)

        method = SubmitMethod(await dom.submit_enclosing_form(page, field_selector))
        if method == SubmitMethod.NONE:
            logger.warning("No submit control or enclosing form for %s", field_selector)
        return method
