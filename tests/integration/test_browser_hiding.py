"""Browser smoke test: element rules hide elements in a real Chromium page."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from exactblock.blocker.defaults import KeyValueStore
from exactblock.blocker.page import HIDDEN_MARKER, STYLE_ELEMENT_ID, PageRuleApplier
from exactblock.blocker.propagation import CHANNEL_RULES_KEY
from exactblock.protocol.channel import RuleChannelClient, RuleChannelServer

pytestmark = pytest.mark.integration

PAGE_HTML = """
<html><head></head><body>
  <div id="content">video</div>
  <div class="keep">keep me</div>
</body></html>
"""


@pytest.mark.asyncio
async def test_rules_hide_initial_and_injected_elements(short_dir: Path) -> None:
    """Initial elements and ones added later are both hidden."""
    async_api = pytest.importorskip("playwright.async_api")

    kv = KeyValueStore(short_dir / "kv")
    kv.set(
        CHANNEL_RULES_KEY,
        [
            {"domain": "youtube.com", "selector": "#content"},
            {"domain": "youtube.com", "selector": ".late-ad"},
            {"domain": "reddit.com", "selector": ".keep"},
        ],
    )
    socket_path = short_dir / "rules.sock"
    server = RuleChannelServer(kv, socket_path)
    await server.start()

    try:
        async with async_api.async_playwright() as p:
            try:
                browser = await p.chromium.launch()
            except async_api.Error as e:
                pytest.skip(f"chromium not available: {e}")

            try:
                page = await browser.new_page()
                await page.route(
                    "https://www.youtube.com/**",
                    lambda route: route.fulfill(body=PAGE_HTML, content_type="text/html"),
                )
                await page.goto("https://www.youtube.com/")

                applier = PageRuleApplier(RuleChannelClient(socket_path, timeout=2.0))
                hidden = await applier.apply_to_page(page, "www.youtube.com")
                assert hidden == 1

                assert await page.locator(f"#{STYLE_ELEMENT_ID}").count() == 1
                assert await page.is_hidden("#content")
                assert await page.is_visible(".keep")
                assert await page.get_attribute("#content", HIDDEN_MARKER) == ""

                # Applying again does not inject a second stylesheet
                await applier.apply_to_page(page, "www.youtube.com")
                assert await page.locator(f"#{STYLE_ELEMENT_ID}").count() == 1

                await page.evaluate(
                    """() => {
                        const ad = document.createElement('div');
                        ad.className = 'late-ad';
                        ad.textContent = 'ad';
                        document.body.appendChild(ad);
                    }"""
                )
                await asyncio.sleep(0.3)
                assert await page.get_attribute(".late-ad", HIDDEN_MARKER) == ""
                assert await page.is_hidden(".late-ad")
            finally:
                await browser.close()
    finally:
        await server.close()
