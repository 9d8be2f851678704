"""Headless browser session against the chat web app.

Handles everything around the extraction engine: browser lifecycle, token
seeding, navigation to the model URL and prompt submission. The engine
itself (t3bridge.extraction) only ever reads the page it is handed.
"""

import asyncio
import os
from typing import Optional
from urllib.parse import quote

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from t3bridge.analytics.metrics import MetricsTracker
from t3bridge.browser.sanitize import mask_secrets, sanitize_headers
from t3bridge.catalog.parser import ChatModel
from t3bridge.extraction.config import ExtractionConfig
from t3bridge.extraction.coordinator import run_extraction
from t3bridge.extraction.images import AssetFetcher
from t3bridge.extraction.models import RequestContext, RunOutcome, RunResult


BETA_BASE_URL = 'https://beta.t3.chat'
STABLE_BASE_URL = 'https://t3.chat'

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
    '--no-zygote',
    '--disable-gpu',
]

COMPOSER_SELECTOR = 'textarea, input[type="text"], [contenteditable="true"]'
SUBMIT_BUTTON_SELECTOR = (
    'button[type="submit"], [data-testid="send-button"], .send-button, '
    'button[class*="send"], button[class*="submit"]'
)

# Storage keys the web app has been seen reading the token from
TOKEN_STORAGE_KEYS = ['access_token', 'accessToken', 'auth_token', 'token']

SEED_TOKEN_JS = """
([keys, token]) => {
    for (const key of keys) localStorage.setItem(key, token);
}
"""


class AskResponse(BaseModel):
    """Result of one question plus the link to the live conversation"""
    result: RunResult
    url: str
    model: str

    @property
    def fallback_message(self) -> str:
        if self.result.outcome == RunOutcome.ERROR:
            return f"An error occurred while getting the response. Please visit this link: {self.url}"
        return (
            "I couldn't extract the response automatically. "
            f"Please visit this link to see the response: {self.url}"
        )


class ChatSession:
    """Drive one browser against the chat web app"""

    def __init__(
        self,
        access_token: str,
        use_beta_domain: bool = True,
        config: Optional[ExtractionConfig] = None,
        headless: Optional[bool] = None,
        metrics: Optional[MetricsTracker] = None,
        fetcher: Optional[AssetFetcher] = None,
        navigation_timeout_ms: int = 45000
    ):
        """
        Initialize the session (the browser starts lazily)

        Args:
            access_token: Bearer token for the chat service
            use_beta_domain: Use beta.t3.chat instead of t3.chat
            config: Extraction configuration
            headless: Override headless mode. If None, reads HEADLESS env var (default: True)
            metrics: Tracker that records every run
            fetcher: Asset fetcher override for image downloads
            navigation_timeout_ms: Navigation timeout for text models (doubled for image models)
        """
        self.access_token = access_token
        self.use_beta_domain = use_beta_domain
        self.config = config or ExtractionConfig()
        if headless is None:
            headless = os.getenv('HEADLESS', 'true').lower() in ('true', '1', 'yes')
        self.headless = headless
        self.metrics = metrics or MetricsTracker()
        self.fetcher = fetcher
        self.navigation_timeout_ms = navigation_timeout_ms

        self._playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

    @property
    def base_url(self) -> str:
        return BETA_BASE_URL if self.use_beta_domain else STABLE_BASE_URL

    def set_use_beta_domain(self, use_beta: bool):
        self.use_beta_domain = use_beta

    def set_access_token(self, token: str):
        self.access_token = token

    def build_model_url(self, model: ChatModel, query: str, use_search: bool = False) -> str:
        """
        Build the conversation URL for a model with the query pre-filled

        Args:
            model: Catalog entry (URL template with a %s placeholder)
            query: Prompt text
            use_search: Request web search (only if the model supports it)
        """
        url = model.url.replace(BETA_BASE_URL, self.base_url)
        url = url.replace('%s', quote(query, safe="-_.!~*'()"))
        if use_search and model.features.search:
            url += '&search=true'
        return url

    def _headers(self) -> dict:
        return {
            'Accept-Language': 'en-US,en;q=0.9',
            'Authorization': f"Bearer {self.access_token}",
        }

    async def start(self):
        """Start the Playwright browser"""
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        headers = self._headers()
        self.context = await self.browser.new_context(
            user_agent=USER_AGENT,
            locale='en-US',
            extra_http_headers=headers,
        )
        mode = "headless" if self.headless else "headed"
        logger.info(f"Browser started in {mode} mode against {self.base_url}")
        logger.debug(f"Context headers: {sanitize_headers(headers)}")

    async def close(self):
        """Close browser"""
        try:
            if self.context:
                await self.context.close()
            if self.browser:
                await self.browser.close()
            if self._playwright:
                await self._playwright.stop()
            logger.info("Browser closed")
        except Exception as e:
            logger.debug(f"Error closing browser: {e}")
        finally:
            self.context = None
            self.browser = None
            self._playwright = None

    async def __aenter__(self) -> 'ChatSession':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(PlaywrightError),
        reraise=True
    )
    async def _navigate(self, page: Page, url: str, timeout_ms: int):
        await page.goto(url, wait_until='networkidle', timeout=timeout_ms)

    async def _seed_token(self, page: Page):
        await page.evaluate(SEED_TOKEN_JS, [TOKEN_STORAGE_KEYS, self.access_token])

    async def _submit(self, page: Page, request: RequestContext):
        """Type the prompt into the composer and send it, if a composer is present"""
        composer = page.locator(COMPOSER_SELECTOR).first
        if not await composer.count():
            logger.info(f"[{request.correlation_id}] No composer found, the query is carried by the URL")
            return

        await composer.click()
        await composer.fill(request.prompt_text)

        submit = page.locator(SUBMIT_BUTTON_SELECTOR).first
        if await submit.count():
            logger.info(f"[{request.correlation_id}] Clicking submit button")
            await submit.click()
        else:
            logger.info(f"[{request.correlation_id}] No submit button found, pressing Enter")
            await page.keyboard.press('Enter')

    async def ask(
        self,
        model: ChatModel,
        question: str,
        use_search: bool = False,
        image_url: Optional[str] = None,
        pdf_url: Optional[str] = None
    ) -> AskResponse:
        """
        Ask a model a question and extract the answer

        Args:
            model: Catalog entry to target
            question: Question text
            use_search: Enable web search when the model supports it
            image_url: Image reference for vision models
            pdf_url: Document reference for document-capable models

        Returns:
            AskResponse with the run result and the conversation URL
        """
        request = RequestContext(
            question=question,
            image_url=image_url,
            document_url=pdf_url,
            search_enabled=use_search and model.features.search,
            generation_kind=model.generation_kind,
        )
        correlation_id = request.correlation_id
        url = self.build_model_url(model, request.prompt_text, request.search_enabled)
        navigation_timeout = self.navigation_timeout_ms * (2 if request.is_image_generation else 1)

        logger.info(
            f"[{correlation_id}] Starting {request.generation_kind.value} request with model: {model.name}"
        )

        if self.context is None:
            await self.start()

        loop = asyncio.get_running_loop()
        started = loop.time()
        page = await self.context.new_page()
        try:
            await self._navigate(page, self.base_url, navigation_timeout)
            await self._seed_token(page)
            logger.info(f"[{correlation_id}] Navigating to: {url}")
            await self._navigate(page, url, navigation_timeout)
            await self._submit(page, request)
            result = await run_extraction(page, request, self.config, fetcher=self.fetcher)
        except PlaywrightError as e:
            message = mask_secrets(str(e), [self.access_token])
            logger.error(f"[{correlation_id}] Browser error: {message}")
            result = RunResult(
                outcome=RunOutcome.ERROR,
                elapsed_ms=int((loop.time() - started) * 1000),
                error=message,
            )
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"[{correlation_id}] Error closing page: {e}")

        self.metrics.record_run(
            result,
            model=model.name,
            context={'correlation_id': correlation_id, 'generation_kind': request.generation_kind.value},
        )
        return AskResponse(result=result, url=url, model=model.name)

    async def test_connection(self) -> bool:
        """Check that the chat service is reachable"""
        try:
            logger.info("Testing chat service connection...")
            if self.context is None:
                await self.start()
            page = await self.context.new_page()
            try:
                await page.goto(self.base_url, timeout=30000)
            finally:
                await page.close()
            logger.success("Chat service connection test successful")
            return True
        except PlaywrightError as e:
            logger.error(f"Chat service connection test failed: {mask_secrets(str(e), [self.access_token])}")
            return False
