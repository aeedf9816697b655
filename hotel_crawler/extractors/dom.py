"""In-page lookups used by the resolver strategies.

Each helper runs one small script through ``PageSession.evaluate`` and
returns plain Python values (strings, lists of strings, nested lists).
Parsing and cleanup happen in Python so that they can be tested without a
browser.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hotel_crawler.browser.session import PageSession

_WHITESPACE = re.compile(r"\s+")

QUERY_TEXT_JS = """
(selector) => {
  const el = document.querySelector(selector);
  if (!el) return null;
  if (el.tagName === 'META') return el.getAttribute('content');
  return el.textContent;
}
"""

QUERY_HTML_JS = """
(selector) => {
  const el = document.querySelector(selector);
  return el ? el.innerHTML : null;
}
"""

QUERY_ALL_TEXT_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map((el) => el.textContent)
"""

QUERY_IMAGE_SOURCES_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map((img) =>
  img.currentSrc || img.src || (img.dataset && img.dataset.src) ||
  img.getAttribute('data-lazy-src') || ''
)
"""

ALL_IMAGE_SOURCES_JS = """
() => Array.from(document.images).map((img) =>
  img.currentSrc || img.src || (img.dataset && img.dataset.src) || ''
)
"""

LD_JSON_BLOCKS_JS = """
() => Array.from(document.querySelectorAll('script[type="application/ld+json"]'))
  .map((script) => script.textContent || '')
"""

# Questions inside a list container; the answer lives in the nearest
# enclosing node that holds one.
FAQ_LIST_JS = """
([listSelector, questionSelector, answerSelector]) => {
  const root = document.querySelector(listSelector);
  if (!root) return [];
  return Array.from(root.querySelectorAll(questionSelector)).map((question) => {
    let node = question.parentElement;
    let answer = null;
    for (let depth = 0; node && depth < 4 && !answer; depth++) {
      answer = node.querySelector(answerSelector);
      node = node.parentElement;
    }
    return [question.textContent, answer ? answer.textContent : null];
  });
}
"""

# One question/answer pair per item element.
FAQ_ITEMS_JS = """
([itemSelector, questionSelector, answerSelector]) =>
  Array.from(document.querySelectorAll(itemSelector)).map((item) => {
    const question = item.querySelector(questionSelector);
    const answer = item.querySelector(answerSelector);
    return [
      question ? question.textContent : null,
      answer ? answer.textContent : null,
    ];
  })
"""

# Returns [[heading, [value lines], [image labels]], ...] or null when no
# rules container is found.
HOUSE_RULES_JS = """
([sectionSelector, valueSelector, lineSelector]) => {
  const headings = Array.from(document.querySelectorAll('h2, h3, [role="heading"]'));
  const heading = headings.find((h) => /house rules|policies/i.test(h.textContent || ''));
  let container = null;
  if (heading) {
    container = heading.closest('section') ||
      heading.closest('[data-testid*="property"]') ||
      heading.parentElement;
  }
  if (!container) {
    container = document.querySelector('div[data-testid="property-section--content"]');
  }
  if (!container) {
    for (const div of document.querySelectorAll('div')) {
      const text = div.textContent || '';
      if (text.includes('Check-in') && text.includes('Check-out')) {
        container = div;
        break;
      }
    }
  }
  if (!container) return null;
  return Array.from(container.querySelectorAll(sectionSelector)).map((section) => {
    const valueBox = section.querySelector(valueSelector);
    if (!valueBox) return null;
    const clone = section.cloneNode(true);
    const cloneBox = clone.querySelector(valueSelector);
    if (cloneBox) cloneBox.remove();
    const lines = Array.from(valueBox.querySelectorAll(lineSelector)).map((el) => el.textContent);
    if (lines.length === 0) lines.push(valueBox.textContent);
    const labels = Array.from(valueBox.querySelectorAll('img[alt], [aria-label]'))
      .map((el) => el.getAttribute('alt') || el.getAttribute('aria-label'));
    return [clone.textContent, lines, labels];
  }).filter(Boolean);
}
"""

# Returns [[heading, [[name, distance, type], ...]], ...]
NEARBY_JS = """
([blockSelector, headingSelector, itemSelector, nameSelector, distanceSelector, typeSelector]) =>
  Array.from(document.querySelectorAll(blockSelector)).map((block) => {
    const heading = block.querySelector(headingSelector);
    const items = Array.from(block.querySelectorAll(itemSelector)).map((item) => {
      const name = item.querySelector(nameSelector);
      const distance = item.querySelector(distanceSelector);
      const kind = typeSelector ? item.querySelector(typeSelector) : null;
      return [
        name ? name.textContent : null,
        distance ? distance.textContent : null,
        kind ? kind.textContent : null,
      ];
    });
    return [heading ? heading.textContent : null, items];
  })
"""


def clean_text(value: Any) -> str | None:
    """Collapse whitespace; blank or non-string input becomes ``None``."""
    if not isinstance(value, str):
        return None
    text = _WHITESPACE.sub(" ", value).strip()
    return text or None


def dedupe(values) -> list:
    """Order-preserving de-duplication by equality."""
    return list(dict.fromkeys(values))


async def query_text(session: "PageSession", selector: str) -> str | None:
    return clean_text(await session.evaluate(QUERY_TEXT_JS, selector))


async def query_html(session: "PageSession", selector: str) -> str | None:
    html = await session.evaluate(QUERY_HTML_JS, selector)
    if not isinstance(html, str):
        return None
    return html.strip() or None


async def query_all_text(session: "PageSession", selector: str) -> list[str]:
    """Cleaned, de-duplicated texts of every element matching *selector*."""
    raw = await session.evaluate(QUERY_ALL_TEXT_JS, selector) or []
    return dedupe(text for text in map(clean_text, raw) if text)


async def query_image_sources(session: "PageSession", selector: str) -> list[str]:
    return [src for src in (await session.evaluate(QUERY_IMAGE_SOURCES_JS, selector) or []) if src]


async def all_image_sources(session: "PageSession") -> list[str]:
    return [src for src in (await session.evaluate(ALL_IMAGE_SOURCES_JS) or []) if src]


async def ld_json_blocks(session: "PageSession") -> list[str]:
    return [block for block in (await session.evaluate(LD_JSON_BLOCKS_JS) or []) if block]
