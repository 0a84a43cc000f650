"""Facebook Marketplace collector backed by a headless browser."""

import asyncio
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from urllib.parse import urlencode

from playwright.async_api import Browser, Error as PlaywrightError, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from selectolax.parser import HTMLParser

from peddler.config import settings
from peddler.errors import CollectorAuthError, CollectorLayoutError, CollectorNetworkError
from peddler.ingest.base import RawItem, SourceCollector
from peddler.settings_provider import Credentials
from peddler.watchers import Watcher

logger = logging.getLogger(__name__)

BASE_URL = "https://www.facebook.com"
MARKETPLACE_URL = f"{BASE_URL}/marketplace"
COOKIE_DOMAIN = ".facebook.com"
COOKIES_SECRET = "facebook-cookies"

FEED_SELECTOR = '[data-testid="marketplace-feed"]'
CARD_SELECTOR = f"{FEED_SELECTOR} > div > div"
ITEM_LINK_SELECTOR = 'a[href*="/marketplace/item/"]'

_PRICE_RE = re.compile(r"^\$[\d,]+(?:\.\d{1,2})?$")
_ITEM_ID_RE = re.compile(r"/marketplace/item/(\d+)")

LOGIN_URL_MARKERS = ["/login", "/checkpoint"]
LOGIN_PAGE_MARKERS = ['id="login_form"', "you must log in to continue"]

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]


def build_search_url(watcher: Watcher) -> str:
    """Build the Marketplace search URL for a watcher's parameters."""
    params = {}
    if watcher.query:
        params["query"] = watcher.query
    if watcher.price_min is not None:
        params["minPrice"] = str(watcher.price_min)
    if watcher.price_max is not None:
        params["maxPrice"] = str(watcher.price_max)
    if watcher.radius:
        params["radius"] = str(watcher.radius)
    if watcher.location:
        params["location"] = watcher.location

    if not params:
        return MARKETPLACE_URL
    return f"{MARKETPLACE_URL}/search?{urlencode(params)}"


def parse_cookie_string(cookie_string: str) -> List[dict]:
    """Turn a ``name=value; name2=value2`` header string into Playwright cookies."""
    cookies = []
    for part in (cookie_string or "").split(";"):
        name, sep, value = part.strip().partition("=")
        name = name.strip()
        value = value.strip()
        if not sep or not name or not value:
            continue
        cookies.append({"name": name, "value": value, "domain": COOKIE_DOMAIN, "path": "/"})
    return cookies


def parse_price(text: str) -> Optional[Decimal]:
    """Parse ``$1,250`` style prices."""
    text = (text or "").strip()
    if not _PRICE_RE.match(text):
        return None
    try:
        return Decimal(text.replace("$", "").replace(",", ""))
    except InvalidOperation:
        return None


def parse_feed(html: str, watcher: Watcher) -> List[RawItem]:
    """
    Extract listings from a rendered Marketplace search page.

    Cards without a title, price or item link are skipped.

    Raises:
        CollectorLayoutError: If the feed container is missing
    """
    parser = HTMLParser(html)
    if parser.css_first(FEED_SELECTOR) is None:
        raise CollectorLayoutError("Marketplace feed not found on page", marketplace="facebook")

    items: List[RawItem] = []
    seen_ids: set[str] = set()

    for card in parser.css(CARD_SELECTOR):
        link = card.css_first(ITEM_LINK_SELECTOR)
        if link is None:
            continue
        href = link.attributes.get("href") or ""
        match = _ITEM_ID_RE.search(href)
        if not match:
            continue
        item_id = match.group(1)
        if item_id in seen_ids:
            continue

        price = None
        for span in card.css("span"):
            price = parse_price(span.text(strip=True))
            if price is not None:
                break

        title = None
        for span in card.css('span[dir="auto"]'):
            text = span.text(strip=True)
            if text and parse_price(text) is None:
                title = text
                break

        if price is None or not title:
            continue

        image = card.css_first("img")
        image_url = image.attributes.get("src") if image is not None else None
        url = href if href.startswith("http") else f"{BASE_URL}{href.split('?')[0]}"

        seen_ids.add(item_id)
        items.append(
            RawItem(
                item_id=item_id,
                title=title,
                price=price,
                # Cards don't expose a per-listing location
                location=watcher.location,
                url=url,
                image_url=image_url,
            )
        )

    return items


class FacebookMarketplaceCollector(SourceCollector):
    """Collector that renders Marketplace search results in headless Chromium."""

    marketplace = "facebook"

    def __init__(
        self,
        headless: bool | None = None,
        navigation_timeout_ms: int | None = None,
        feed_timeout_ms: int | None = None,
        scroll_pause_ms: int | None = None,
    ):
        self.headless = settings.headless if headless is None else headless
        self.navigation_timeout_ms = navigation_timeout_ms or settings.browser_navigation_timeout_ms
        self.feed_timeout_ms = feed_timeout_ms or settings.browser_feed_timeout_ms
        self.scroll_pause_ms = (
            settings.browser_scroll_pause_ms if scroll_pause_ms is None else scroll_pause_ms
        )
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def open(self) -> None:
        """Launch the browser."""
        if self._browser is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=BROWSER_ARGS,
            )
        except PlaywrightError as e:
            await self.close()
            raise CollectorNetworkError(f"Failed to launch browser: {e}", marketplace=self.marketplace) from e

    async def close(self) -> None:
        """Close browser and stop Playwright."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None

    async def collect(self, watcher: Watcher, credentials: Credentials) -> List[RawItem]:
        if self._browser is None:
            await self.open()

        context = await self._browser.new_context()
        try:
            cookies = parse_cookie_string(credentials.get(COOKIES_SECRET))
            if cookies:
                await context.add_cookies(cookies)

            page = await context.new_page()
            search_url = build_search_url(watcher)
            logger.info(f"Collecting {watcher.id}: {search_url}")

            try:
                await page.goto(
                    search_url,
                    wait_until="domcontentloaded",
                    timeout=self.navigation_timeout_ms,
                )
            except PlaywrightTimeoutError as e:
                raise CollectorNetworkError(
                    f"Navigation timeout for {search_url}", marketplace=self.marketplace
                ) from e
            except PlaywrightError as e:
                raise CollectorNetworkError(
                    f"Navigation failed for {search_url}: {e}", marketplace=self.marketplace
                ) from e

            if self._looks_like_login(page.url, await page.content()):
                raise CollectorAuthError(
                    "Marketplace redirected to login; cookies missing or expired",
                    marketplace=self.marketplace,
                )

            try:
                await page.wait_for_selector(FEED_SELECTOR, timeout=self.feed_timeout_ms)
            except PlaywrightTimeoutError as e:
                raise CollectorLayoutError(
                    "Marketplace feed did not render", marketplace=self.marketplace
                ) from e

            for _ in range(watcher.scroll_depth):
                await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
                await asyncio.sleep(self.scroll_pause_ms / 1000)

            items = parse_feed(await page.content(), watcher)
            logger.info(f"Found {len(items)} listings for watcher {watcher.id}")
            return items
        finally:
            await context.close()

    @staticmethod
    def _looks_like_login(url: str, html: str) -> bool:
        if any(marker in url.lower() for marker in LOGIN_URL_MARKERS):
            return True
        head = html[:50000].lower()
        return any(marker.lower() in head for marker in LOGIN_PAGE_MARKERS)
