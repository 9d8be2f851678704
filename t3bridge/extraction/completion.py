"""Completion detector.

Decides that the remote page has stopped generating, using only re-checkable
observations: loading indicators, an explicit completion marker, and the
length of the current content region. It never judges whether the content
is a good answer and never touches page state.
"""

import asyncio
from typing import List, Optional

from loguru import logger
from playwright.async_api import Page

from .config import ExtractionConfig
from .models import CompletionSignal, PageObservation, RequestContext
from .probes import safe_probe


class CompletionDetector:
    """Watch page activity until it stabilizes or the wait budget runs out"""

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    async def _any_present(self, page: Page, selectors: List[str]) -> bool:
        for selector in selectors:
            elements = await safe_probe(
                page.query_selector_all(selector), self.config.probe_timeout_ms, f"query {selector}"
            )
            if elements:
                return True
        return False

    async def _content_length(self, page: Page, request: Optional[RequestContext]) -> int:
        echoes = set()
        if request is not None:
            echoes = {request.question.strip(), request.prompt_text.strip()}

        for selector in self.config.response_selectors:
            elements = await safe_probe(
                page.query_selector_all(selector), self.config.probe_timeout_ms, f"query {selector}"
            )
            if not elements:
                continue
            text = await safe_probe(
                elements[-1].inner_text(), self.config.probe_timeout_ms, f"inner_text {selector}"
            )
            text = (text or '').strip()
            # A rendered echo of the question is not output
            if text and text not in echoes:
                return len(text)
        return 0

    async def observe(self, page: Page, request: Optional[RequestContext] = None) -> PageObservation:
        """Take one read-only snapshot of page activity"""
        return PageObservation(
            loading=await self._any_present(page, self.config.loading_indicator_selectors),
            content_length=await self._content_length(page, request),
            completion_marker=await self._any_present(page, self.config.completion_marker_selectors),
        )

    async def await_completion(
        self,
        page: Page,
        max_wait_ms: int,
        request: Optional[RequestContext] = None,
        stop: Optional[asyncio.Event] = None
    ) -> CompletionSignal:
        """
        Probe the page until generation looks finished.

        Args:
            page: Live page handle (read-only)
            max_wait_ms: Wait budget
            request: Request being served, used to ignore an echoed question
            stop: Set by the coordinator once the race has settled

        Returns:
            CompletionSignal(completed=True) on an explicit marker or on stable
            content with no loading indicator; completed=False once the budget
            is spent or `stop` is set
        """
        correlation_id = request.correlation_id if request else 'N/A'
        loop = asyncio.get_running_loop()
        started = loop.time()
        previous_length: Optional[int] = None
        probes = 0

        def elapsed_ms() -> int:
            return int((loop.time() - started) * 1000)

        while elapsed_ms() < max_wait_ms:
            if stop is not None and stop.is_set():
                logger.debug(f"[{correlation_id}] Completion watch stopped after {probes} probes")
                return CompletionSignal(completed=False, elapsed_ms=elapsed_ms(), reason='stopped')

            observation = await self.observe(page, request)
            probes += 1

            if observation.completion_marker:
                logger.info(f"[{correlation_id}] Completion marker found after {elapsed_ms()}ms")
                return CompletionSignal(completed=True, elapsed_ms=elapsed_ms(), reason='completion marker')

            if (
                observation.content_length > 0
                and not observation.loading
                and observation.content_length == previous_length
            ):
                logger.info(
                    f"[{correlation_id}] Content stable at {observation.content_length} chars "
                    f"after {elapsed_ms()}ms ({probes} probes)"
                )
                return CompletionSignal(completed=True, elapsed_ms=elapsed_ms(), reason='content stable')

            previous_length = observation.content_length

            remaining = max_wait_ms - elapsed_ms()
            if remaining <= 0:
                break
            interval = self.config.probe_interval_for(elapsed_ms())
            await asyncio.sleep(min(interval, remaining) / 1000)

        logger.debug(f"[{correlation_id}] Completion not detected within {max_wait_ms}ms ({probes} probes)")
        return CompletionSignal(completed=False, elapsed_ms=elapsed_ms(), reason='budget exhausted')
