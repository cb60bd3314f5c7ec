"""Small page helpers shared by the locator, detector, and controller.

All JavaScript evaluated in the page lives here so every caller uses the
same visibility and text semantics.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

# Non-zero layout box, not display:none / visibility:hidden, not under aria-hidden
VISIBILITY_JS = """(el) => {
  const style = window.getComputedStyle(el);
  if (style.display === "none" || style.visibility === "hidden") return false;
  const rect = el.getBoundingClientRect();
  if (rect.width === 0 && rect.height === 0) return false;
  return !el.closest('[aria-hidden="true"]');
}"""

BODY_TEXT_JS = "() => (document.body && document.body.innerText) || ''"

CLICKABLE_ANCESTOR_JS = """(el) => el.closest(
  '[role="option"], [role="row"], [role="listitem"], a, button'
)"""

_WHITESPACE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """Lowercase, unify apostrophes, and collapse whitespace."""
    if not text:
        return ""
    text = text.replace("’", "'")
    return _WHITESPACE.sub(" ", text.lower()).strip()


def find_phrase(text: str, *phrase_lists: Iterable[str]) -> Optional[str]:
    """Return the first phrase (normalized) contained in ``text``.

    ``text`` must already be normalized.
    """
    if not text:
        return None
    for phrases in phrase_lists:
        for phrase in phrases:
            p = normalize(phrase)
            if p and p in text:
                return p
    return None


async def is_visible(handle) -> bool:
    """Visibility check that never raises (detached handles count as hidden)."""
    try:
        return bool(await handle.evaluate(VISIBILITY_JS))
    except Exception:
        return False


async def body_text(target) -> str:
    """innerText of a page or frame body, normalized. Raises on evaluation errors."""
    raw = await target.evaluate(BODY_TEXT_JS)
    return normalize(raw or "")


async def element_text(handle) -> str:
    try:
        return normalize(await handle.inner_text())
    except Exception:
        return ""


async def first_visible(page, selector: str):
    """First visible element matching ``selector``, or None."""
    for handle in await page.query_selector_all(selector):
        if await is_visible(handle):
            return handle
    return None
