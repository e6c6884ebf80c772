"""In-page DOM probes and mutations for the discount-code field.

Every helper runs a small script through ``page.evaluate`` so the
behaviour matches what the host page's own event listeners would see
from a real user: values are set on the element and ``input`` /
``change`` / ``keyup`` events bubble from it.

Selector errors (invalid CSS from the locator) are caught inside the
scripts and reported as "not found" rather than raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

_FIELD_EXISTS_JS = """
(selector) => {
    try {
        return document.querySelector(selector) !== null;
    } catch (e) {
        return false;
    }
}
"""

# Exact (case-insensitive) match against the trimmed text of any rendered,
# non-input element.  Mirrors how stores list already-active promo codes.
_CODE_VISIBLE_JS = """
(code) => {
    const target = (code || "").trim().toUpperCase();
    if (!target || !document.body) return false;
    const skip = new Set(["INPUT", "TEXTAREA", "SELECT", "SCRIPT", "STYLE", "NOSCRIPT", "TEMPLATE"]);
    for (const el of document.body.querySelectorAll("*")) {
        if (skip.has(el.tagName)) continue;
        const text = (el.textContent || "").trim().toUpperCase();
        if (text !== target) continue;
        if (el.getClientRects().length === 0) continue;
        return true;
    }
    return false;
}
"""

# Nearest enclosing form; else the nearest ancestor (within maxLevels) that
# holds a status/alert region; else the ancestor maxLevels up.
_FRAGMENT_JS = """
([selector, maxLevels]) => {
    let field;
    try {
        field = document.querySelector(selector);
    } catch (e) {
        return null;
    }
    if (!field) return null;
    const form = field.closest("form");
    if (form) return form.outerHTML;
    const status = '[role="alert"], [role="status"], [aria-live]';
    let node = field;
    for (let level = 0; level < maxLevels && node.parentElement; level++) {
        node = node.parentElement;
        if (node.querySelector(status)) return node.outerHTML;
    }
    return node.outerHTML;
}
"""

_CLEAR_FIELD_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.value = "";
    el.dispatchEvent(new Event("input", { bubbles: true }));
    el.dispatchEvent(new Event("change", { bubbles: true }));
    return true;
}
"""

_APPEND_CHAR_JS = """
([selector, ch]) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.value += ch;
    el.dispatchEvent(new Event("input", { bubbles: true }));
    return true;
}
"""

_FINALIZE_FIELD_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.dispatchEvent(new Event("change", { bubbles: true }));
    el.dispatchEvent(new KeyboardEvent("keyup", { bubbles: true }));
    el.focus();
    return true;
}
"""

_CLICK_JS = """
(selector) => {
    let el;
    try {
        el = document.querySelector(selector);
    } catch (e) {
        return false;
    }
    if (!el) return false;
    el.click();
    return true;
}
"""

# Returns "form_button", "form_submit" or "none".
_SUBMIT_FORM_JS = """
(selector) => {
    const el = document.querySelector(selector);
    const form = el ? el.closest("form") : null;
    if (!form) return "none";
    const button = form.querySelector(
        'button[type="submit"], button:not([type="button"]), input[type="submit"]'
    );
    if (button) {
        button.click();
        return "form_button";
    }
    form.requestSubmit();
    return "form_submit";
}
"""


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------


async def field_exists(page: Page, selector: str) -> bool:
    """Return True if *selector* resolves to an element right now."""
    return bool(await page.evaluate(_FIELD_EXISTS_JS, selector))


async def code_visible_on_page(page: Page, code: str) -> bool:
    """Return True if *code* already appears verbatim as rendered page text."""
    return bool(await page.evaluate(_CODE_VISIBLE_JS, code))


async def capture_markup(page: Page, limit: int) -> str:
    """Return the serialized page markup, truncated to *limit* characters."""
    html = await page.content()
    return html[:limit]


async def capture_fragment(page: Page, selector: str, *, ancestor_levels: int, limit: int) -> str | None:
    """Return a bounded markup fragment around the field, or None if it is gone."""
    fragment = await page.evaluate(_FRAGMENT_JS, [selector, ancestor_levels])
    if fragment is None:
        return None
    return str(fragment)[:limit]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def clear_field(page: Page, selector: str) -> bool:
    return bool(await page.evaluate(_CLEAR_FIELD_JS, selector))


async def append_character(page: Page, selector: str, ch: str) -> bool:
    return bool(await page.evaluate(_APPEND_CHAR_JS, [selector, ch]))


async def finalize_field(page: Page, selector: str) -> bool:
    """Fire the trailing change/keyup events and focus the field."""
    return bool(await page.evaluate(_FINALIZE_FIELD_JS, selector))


async def click_element(page: Page, selector: str) -> bool:
    return bool(await page.evaluate(_CLICK_JS, selector))


async def submit_enclosing_form(page: Page, field_selector: str) -> str:
    """Submit the form around the field; returns how it was submitted."""
    return str(await page.evaluate(_SUBMIT_FORM_JS, field_selector))
