"""Image locator chain for image-generation requests.

Generated images are found through prioritized image-element locators and
materialized either by capturing the element in-page (blob:/data: sources
that cannot be fetched out of band) or by downloading the asset URL. When no
element matches, literal upload-host URLs found anywhere in the page are
downloaded in discovery order.
"""

from typing import Optional, Protocol
from urllib.parse import urljoin

from loguru import logger
from playwright.async_api import Page

from .classifier import ContentClassifier
from .config import ExtractionConfig
from .errors import AssetDownloadError
from .models import ExtractionCandidate, RequestContext
from .probes import safe_probe


# Literal asset URLs in body text and in any element attribute
ASSET_URL_SCAN_JS = """
(pattern) => {
    const urls = [];
    const globalRe = new RegExp(pattern, 'g');
    const singleRe = new RegExp(pattern);
    const text = document.body ? (document.body.textContent || '') : '';
    for (const match of text.matchAll(globalRe)) urls.push(match[0]);
    for (const el of document.querySelectorAll('*')) {
        for (const attr of el.getAttributeNames()) {
            const value = el.getAttribute(attr);
            if (!value) continue;
            const match = value.match(singleRe);
            if (match) urls.push(match[0]);
        }
    }
    return Array.from(new Set(urls));
}
"""

EPHEMERAL_SCHEMES = ('blob:', 'data:')


class AssetFetcher(Protocol):
    async def fetch(self, url: str) -> bytes:
        """Return the asset bytes or raise AssetDownloadError"""
        ...


class PageAssetFetcher:
    """Download assets through the page's browser context (shares its cookies)"""

    def __init__(self, page: Page, timeout_ms: int = 15000):
        self.page = page
        self.timeout_ms = timeout_ms

    async def fetch(self, url: str) -> bytes:
        try:
            response = await self.page.request.get(url, timeout=self.timeout_ms)
        except Exception as e:
            raise AssetDownloadError(url, reason=str(e)) from e

        if not response.ok:
            raise AssetDownloadError(url, status=response.status)

        try:
            return await response.body()
        except Exception as e:
            raise AssetDownloadError(url, reason=str(e)) from e


class ImageLocatorChain:
    """Find and materialize a generated image on the page"""

    def __init__(self, config: Optional[ExtractionConfig] = None, fetcher: Optional[AssetFetcher] = None):
        self.config = config or ExtractionConfig()
        self.fetcher = fetcher

    def _fetcher_for(self, page: Page) -> AssetFetcher:
        return self.fetcher or PageAssetFetcher(page, self.config.asset_fetch_timeout_ms)

    async def locate(
        self,
        page: Page,
        request: RequestContext,
        classifier: ContentClassifier
    ) -> Optional[ExtractionCandidate]:
        """
        Scan image locators and return the first image whose bytes could be obtained.

        Args:
            page: Live page handle (read-only)
            request: Request being served
            classifier: Per-run classifier

        Returns:
            Image candidate with bytes, or None
        """
        fetcher = self._fetcher_for(page)
        timeout = self.config.probe_timeout_ms
        tried = set()

        for selector in self.config.image_selectors:
            elements = await safe_probe(page.query_selector_all(selector), timeout, f"query {selector}")
            for element in elements or []:
                src = await safe_probe(element.get_attribute('src'), timeout, f"src {selector}")
                if not src:
                    continue
                if not src.startswith(EPHEMERAL_SCHEMES):
                    src = urljoin(page.url, src)
                if src in tried:
                    continue
                tried.add(src)

                strategy = f"image:{selector}"
                if not classifier.accept(ExtractionCandidate.image(src, strategy)):
                    continue

                logger.info(f"[{request.correlation_id}] Found generated image: {src[:120]}")
                data = await self._materialize(element, src, fetcher, request)
                if data is None:
                    continue

                candidate = ExtractionCandidate.image(src, strategy, data=data)
                if classifier.accept(candidate):
                    return candidate

        return None

    async def _materialize(self, element, src: str, fetcher: AssetFetcher, request: RequestContext) -> Optional[bytes]:
        if src.startswith(EPHEMERAL_SCHEMES):
            return await safe_probe(
                element.screenshot(), self.config.asset_fetch_timeout_ms, f"capture {src[:60]}"
            )
        return await self._download(src, fetcher, request)

    async def _download(self, url: str, fetcher: AssetFetcher, request: RequestContext) -> Optional[bytes]:
        try:
            logger.info(f"[{request.correlation_id}] Downloading image from: {url}")
            data = await fetcher.fetch(url)
        except AssetDownloadError as e:
            logger.warning(f"[{request.correlation_id}] {e}")
            return None
        logger.info(f"[{request.correlation_id}] Downloaded image, size: {len(data)} bytes")
        return data

    async def scan_asset_urls(
        self,
        page: Page,
        request: RequestContext,
        classifier: ContentClassifier
    ) -> Optional[ExtractionCandidate]:
        """Download literal upload-host URLs found in page text and attributes"""
        urls = await safe_probe(
            page.evaluate(ASSET_URL_SCAN_JS, self.config.asset_url_pattern),
            self.config.probe_timeout_ms,
            "asset URL scan"
        )
        if not urls:
            return None

        unique_urls = list(dict.fromkeys(urls))
        logger.info(f"[{request.correlation_id}] Found {len(unique_urls)} potential image URLs")

        fetcher = self._fetcher_for(page)
        for url in unique_urls:
            data = await self._download(url, fetcher, request)
            if data is None:
                continue
            candidate = ExtractionCandidate.image(url, 'asset-url-scan', data=data)
            if classifier.accept(candidate):
                return candidate

        return None
