import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from fake_useragent import UserAgent

from .models import EngineDescriptor, Query, RawResult
from ..config.settings import BROWSER_USER_AGENT, SearchEngineConfig
from ..exceptions import ProviderError, ProviderErrorKind

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 10


class SearchProvider(ABC):
    """Contract every result source implements.

    search() returns an empty list when the engine has no results and
    raises ProviderError only when the request itself could not complete.
    """

    def __init__(self, descriptor: EngineDescriptor):
        self.descriptor = descriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def search(self, query: Query) -> List[RawResult]:
        ...

    async def aclose(self):
        pass


def build_search_params(config: SearchEngineConfig, query: Query) -> Dict[str, Any]:
    """Query-string parameters for one page of results on one engine."""
    params: Dict[str, Any] = dict(config.params)
    params[config.query_param] = query.text

    if config.page_param:
        step = RESULTS_PER_PAGE if config.page_mode == "offset" else 1
        params[config.page_param] = config.offset_base + (query.page - 1) * step
    elif query.page > 1:
        raise ProviderError(
            ProviderErrorKind.UNSUPPORTED,
            f"pagination is not supported (page={query.page})",
            engine=config.name,
        )

    if not query.safe_search:
        params.update(config.safe_off_params)

    return params


def extract_results(
    html: str,
    config: SearchEngineConfig,
    descriptor: EngineDescriptor,
    page: int = 1,
    base_url: Optional[str] = None,
) -> List[RawResult]:
    """Pull (title, url, snippet) triples out of a results page using the engine's selectors."""
    selectors = config.selectors
    try:
        soup = BeautifulSoup(html, 'html.parser')
        blocks = soup.select(selectors["results"])
    except Exception as e:
        raise ProviderError(ProviderErrorKind.PARSE_FAILURE, str(e), engine=config.name) from e

    results = []
    offset = (page - 1) * RESULTS_PER_PAGE
    for block in blocks:
        title_elem = block.select_one(selectors["title"])
        link_elem = block.select_one(selectors.get("link", selectors["title"]))
        if title_elem is None or link_elem is None:
            continue

        title = title_elem.get_text(" ", strip=True)
        url = link_elem.get("href", "")
        if url and base_url and not url.startswith(("http://", "https://")):
            url = urljoin(base_url, url)
        if not title or not url.startswith(("http://", "https://")):
            continue

        snippet_elem = block.select_one(selectors["snippet"]) if selectors.get("snippet") else None
        snippet = snippet_elem.get_text(" ", strip=True) if snippet_elem else ""

        results.append(RawResult(
            title=title,
            url=url,
            snippet=snippet,
            source_rank=offset + len(results) + 1,
            engine=descriptor,
        ))

    return results


class HtmlScrapingProvider(SearchProvider):
    """Fetches an engine's HTML results page with httpx and parses it with BeautifulSoup"""

    def __init__(
        self,
        descriptor: EngineDescriptor,
        config: SearchEngineConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(descriptor)
        self.config = config
        self.ua = UserAgent()
        self.timeout = httpx.Timeout(float(config.timeout))
        self._transport = transport

        # Default headers to avoid bot detection
        self.default_headers = {
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
            'Upgrade-Insecure-Requests': '1',
        }

    def _headers(self) -> Dict[str, str]:
        headers = {'User-Agent': self.ua.random, **self.default_headers}
        headers.update(self.config.headers)
        return headers

    async def search(self, query: Query) -> List[RawResult]:
        params = build_search_params(self.config, query)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers=self._headers(),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(self.config.base_url, params=params)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, str(e) or "request timed out", engine=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(ProviderErrorKind.NETWORK, str(e) or type(e).__name__, engine=self.name) from e

        results = extract_results(
            response.text, self.config, self.descriptor, page=query.page, base_url=str(response.url)
        )
        logger.debug(f"{self.name} returned {len(results)} results for '{query.text}'")
        return results


class BrowserPool:
    """One lazily launched headless Chromium shared by every browser provider"""

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser = None
        self._lock = asyncio.Lock()

    async def get_browser(self):
        if self._browser is not None:
            return self._browser

        async with self._lock:
            if self._browser is None:
                from playwright.async_api import async_playwright

                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=[
                        '--no-sandbox',
                        '--disable-setuid-sandbox',
                        '--disable-dev-shm-usage',
                        '--disable-gpu',
                    ],
                )
                logger.info("Headless browser launched")
        return self._browser

    async def close(self):
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("Headless browser closed")


class BrowserProvider(SearchProvider):
    """Renders the results page in a real browser, then reuses the selector extraction"""

    def __init__(self, descriptor: EngineDescriptor, config: SearchEngineConfig, pool: BrowserPool):
        super().__init__(descriptor)
        self.config = config
        self.pool = pool
        self.navigation_timeout = config.timeout * 1000

    async def _render(self, url: str, params: Dict[str, Any]) -> str:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeout

        browser = await self.pool.get_browser()
        context = await browser.new_context(
            user_agent=BROWSER_USER_AGENT,
            viewport={"width": 1920, "height": 1080},
            extra_http_headers={"Accept-Language": "en-US,en;q=0.9", "DNT": "1"},
        )
        try:
            page = await context.new_page()
            try:
                target = str(httpx.URL(url, params=params))
                await page.goto(target, wait_until="networkidle", timeout=self.navigation_timeout)
                try:
                    await page.wait_for_selector(self.config.selectors["results"], timeout=5000)
                except PlaywrightTimeout:
                    logger.debug(f"{self.name}: no result blocks rendered")
                return await page.content()
            finally:
                await page.close()
        except PlaywrightTimeout as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, str(e), engine=self.name) from e
        except PlaywrightError as e:
            raise ProviderError(ProviderErrorKind.NETWORK, str(e), engine=self.name) from e
        finally:
            await context.close()

    async def search(self, query: Query) -> List[RawResult]:
        params = build_search_params(self.config, query)
        html = await self._render(self.config.base_url, params)
        results = extract_results(html, self.config, self.descriptor, page=query.page, base_url=self.config.base_url)
        logger.debug(f"{self.name} (browser) returned {len(results)} results for '{query.text}'")
        return results

    async def aclose(self):
        await self.pool.close()
