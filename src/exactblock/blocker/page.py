"""
In-page element hiding for Playwright pages.

On every main-frame navigation the applier asks the rule channel for the
current element rules, keeps those that apply to the page hostname, and
injects them: a stylesheet inserted once, an inline ``display: none``
pass over elements already present, and a MutationObserver that re-scans
added subtrees. Hiding is one-directional; the observer lives until the
page unloads.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError

from .matching import build_stylesheet, select_applicable_rules

if TYPE_CHECKING:
    from playwright.async_api import Frame, Page

    from exactblock.protocol.channel import RuleChannelClient

logger = logging.getLogger(__name__)

STYLE_ELEMENT_ID = "exactblock-dynamic-styles"
HIDDEN_MARKER = "data-exactblock-hidden"
RESCAN_DEBOUNCE_MS = 100

# Runs in the page. Returns the number of elements hidden by the initial pass.
# At most one re-scan timer is pending: a new mutation burst re-arms it.
APPLY_SCRIPT = """
({ css, selectors, styleId, marker, debounceMs }) => {
    if (window.__exactblockApplied) return 0;
    window.__exactblockApplied = true;

    if (!document.getElementById(styleId)) {
        const style = document.createElement('style');
        style.id = styleId;
        style.textContent = css;
        (document.head || document.documentElement).appendChild(style);
    }

    const hideIn = (root) => {
        let count = 0;
        const mark = (el) => {
            if (el.hasAttribute(marker)) return;
            el.style.setProperty('display', 'none', 'important');
            el.setAttribute(marker, '');
            count++;
        };
        for (const selector of selectors) {
            try {
                if (root.matches && root.matches(selector)) mark(root);
                root.querySelectorAll(selector).forEach(mark);
            } catch (e) {
                // invalid selector
            }
        }
        return count;
    };

    const added = new Set();
    let pending = null;
    const rescan = () => {
        pending = null;
        const roots = Array.from(added);
        added.clear();
        for (const root of roots) {
            if (root.isConnected) hideIn(root);
        }
    };

    const observer = new MutationObserver((mutations) => {
        for (const m of mutations) {
            for (const node of m.addedNodes) {
                if (node.nodeType === Node.ELEMENT_NODE) added.add(node);
            }
        }
        if (added.size === 0) return;
        if (pending !== null) clearTimeout(pending);
        pending = setTimeout(rescan, debounceMs);
    });
    observer.observe(document.documentElement, { childList: true, subtree: true });

    return hideIn(document);
}
"""


def page_hostname(url: str) -> str | None:
    """Hostname of an http(s) page URL, lowercased, without port."""
    if not url or not url.startswith(("http://", "https://")):
        return None
    return urlparse(url).hostname or None


class PageRuleApplier:
    """Apply element-hide rules fetched from the rule channel to Playwright pages."""

    def __init__(self, client: RuleChannelClient) -> None:
        self._client = client
        self._tasks: set[asyncio.Task[None]] = set()

        # Statistics
        self._pages_processed = 0
        self._elements_hidden = 0

    async def setup_page(self, page: Page) -> None:
        """Apply rules on every main-frame navigation of ``page``."""
        page.on("framenavigated", self._schedule_frame)
        logger.debug("Element hiding setup complete for page")

    def _schedule_frame(self, frame: Frame) -> None:
        task = asyncio.create_task(self._on_frame_navigated(frame))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _on_frame_navigated(self, frame: Frame) -> None:
        # Only handle main frame
        if frame.parent_frame is not None:
            return

        hostname = page_hostname(frame.url)
        if hostname is None:
            return

        await self.apply_to_page(frame.page, hostname)

    async def apply_to_page(self, page: Page, hostname: str) -> int:
        """Fetch rules, inject matching ones, and return how many elements were hidden.

        Args:
            page: The Playwright page to apply rules to.
            hostname: The hostname of the page.
        """
        payload = await self._client.get_rules()
        rules = select_applicable_rules(payload, hostname)
        self._pages_processed += 1

        if not rules:
            return 0

        selectors = [r.selector for r in rules]
        args: dict[str, Any] = {
            "css": build_stylesheet(selectors),
            "selectors": selectors,
            "styleId": STYLE_ELEMENT_ID,
            "marker": HIDDEN_MARKER,
            "debounceMs": RESCAN_DEBOUNCE_MS,
        }

        try:
            hidden = int(await page.evaluate(APPLY_SCRIPT, args) or 0)
        except PlaywrightError as e:
            logger.debug("Failed to apply element rules for %s: %s", hostname, e)
            return 0

        self._elements_hidden += hidden
        logger.debug("Applied %d rules for %s (%d elements hidden)", len(rules), hostname, hidden)
        return hidden

    def get_stats(self) -> dict[str, int]:
        return {
            "pages_processed": self._pages_processed,
            "elements_hidden": self._elements_hidden,
        }
