"""Race coordinator: the single entry point of the extraction engine.

The adaptive poller and the completion detector run as independent tasks
against the same page. The first useful signal settles the race:

    idle -> racing -> settled-by-poll
                   -> settled-by-completion-then-retry
                   -> exhausted (last-resort fallback, else timeout)

Both loops only read the page, so no locking is needed. Whatever is still
running when the race settles is told to stop and cancelled, and its result is
discarded. No exception escapes `run`; failures become `timeout` or `error` outcomes.
"""

import asyncio
from typing import Optional, Tuple

from loguru import logger
from playwright.async_api import Page

from .classifier import ContentClassifier
from .completion import CompletionDetector
from .config import ExtractionConfig
from .images import AssetFetcher, ImageLocatorChain
from .models import (
    AttemptBudget,
    ExtractionCandidate,
    RequestContext,
    RunOutcome,
    RunResult,
    SettledBy,
)
from .poller import AdaptivePoller, Extractor
from .strategies import StrategyChain


# Cancellation rounds when tearing down the losing loops
ABANDON_ROUNDS = 3
ABANDON_GRACE_S = 0.1


class RaceCoordinator:
    """Run one extraction per call; holds no per-run state"""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        strategy_chain: Optional[StrategyChain] = None,
        image_chain: Optional[ImageLocatorChain] = None,
        detector: Optional[CompletionDetector] = None,
        fetcher: Optional[AssetFetcher] = None
    ):
        self.config = config or ExtractionConfig()
        self.strategy_chain = strategy_chain or StrategyChain(self.config)
        self.image_chain = image_chain or ImageLocatorChain(self.config, fetcher=fetcher)
        self.detector = detector or CompletionDetector(self.config)

    def _extractor(self, page: Page, request: RequestContext, classifier: ContentClassifier) -> Extractor:
        if request.is_image_generation:
            return lambda: self.image_chain.locate(page, request, classifier)
        return lambda: self.strategy_chain.extract(page, request, classifier)

    @staticmethod
    async def _abandon(*tasks: asyncio.Task):
        """Cancel still-running loops and discard their outcome, waiting a bounded time"""
        pending = {task for task in tasks if not task.done()}
        for _ in range(ABANDON_ROUNDS):
            if not pending:
                break
            # wait_for may swallow a cancellation, so cancel again each round
            for task in pending:
                task.cancel()
            _, pending = await asyncio.wait(pending, timeout=ABANDON_GRACE_S)

        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                logger.debug(f"Abandoned loop failed: {task.exception()}")
        if pending:
            logger.warning(f"{len(pending)} abandoned loop(s) still running, leaving them to the stop signal")

    async def _race(
        self,
        page: Page,
        request: RequestContext,
        classifier: ContentClassifier,
        budget: AttemptBudget,
        started: float,
        deadline: float
    ) -> Tuple[Optional[ExtractionCandidate], SettledBy]:
        loop = asyncio.get_running_loop()
        correlation_id = request.correlation_id
        extract = self._extractor(page, request, classifier)
        poller = AdaptivePoller(budget, correlation_id)
        stop = asyncio.Event()

        poll_task = asyncio.create_task(poller.poll(extract, deadline, started, stop))
        completion_task = asyncio.create_task(
            self.detector.await_completion(page, budget.overall_deadline_ms, request, stop)
        )
        pending = {poll_task, completion_task}

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )

                if poll_task in done:
                    candidate = poll_task.result()
                    if candidate is not None:
                        stop.set()
                        return candidate, SettledBy.POLL

                if completion_task in done and completion_task.result().completed:
                    stop.set()
                    await self._abandon(poll_task)
                    logger.info(
                        f"[{correlation_id}] Generation looks finished without a candidate, "
                        f"running one more extraction pass"
                    )
                    try:
                        candidate = await extract()
                    except Exception as e:
                        logger.debug(f"[{correlation_id}] Post-completion extraction failed: {e}")
                        candidate = None
                    return candidate, SettledBy.COMPLETION

            return None, SettledBy.EXHAUSTED
        finally:
            stop.set()
            await self._abandon(poll_task, completion_task)

    async def _final_pass(
        self,
        page: Page,
        request: RequestContext,
        classifier: ContentClassifier
    ) -> Optional[ExtractionCandidate]:
        """Last-resort extraction once both loops have given up"""
        if request.is_image_generation:
            logger.info(f"[{request.correlation_id}] Standard image selectors failed, trying URL extraction")
            candidate = await self.image_chain.scan_asset_urls(page, request, classifier)
            if candidate:
                return candidate
            # The service may have answered an image request with text
            candidate = await self.strategy_chain.extract(page, request, classifier)
            if candidate:
                return candidate
        return await self.strategy_chain.extract_fallback(page, request, classifier)

    async def run(
        self,
        page: Page,
        request: RequestContext,
        budget: Optional[AttemptBudget] = None
    ) -> RunResult:
        """
        Extract the answer to a question already submitted on the page.

        Args:
            page: Page navigated to the conversation with the question submitted
            request: The submitted request
            budget: Override of the budget chosen by generation kind

        Returns:
            RunResult with a success, timeout or error outcome
        """
        budget = budget or self.config.budget_for(request.generation_kind)
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + budget.overall_deadline_ms / 1000
        classifier = ContentClassifier(self.config, request)
        correlation_id = request.correlation_id

        def elapsed_ms() -> int:
            return int((loop.time() - started) * 1000)

        logger.info(
            f"[{correlation_id}] Starting {request.generation_kind.value} extraction "
            f"(deadline {budget.overall_deadline_ms}ms, max {budget.max_attempts} attempts)"
        )

        try:
            candidate, settled_by = await self._race(page, request, classifier, budget, started, deadline)
            if candidate is None:
                candidate = await self._final_pass(page, request, classifier)
                settled_by = SettledBy.FALLBACK if candidate else SettledBy.EXHAUSTED
        except Exception as e:
            logger.error(f"[{correlation_id}] Extraction failed after {elapsed_ms()}ms: {e}")
            return RunResult(outcome=RunOutcome.ERROR, elapsed_ms=elapsed_ms(), error=str(e))

        if candidate is None:
            logger.warning(f"[{correlation_id}] No response extracted within {elapsed_ms()}ms")
            return RunResult(outcome=RunOutcome.TIMEOUT, elapsed_ms=elapsed_ms(), settled_by=settled_by)

        logger.success(
            f"[{correlation_id}] Extraction {settled_by.value} in {elapsed_ms()}ms: {candidate.preview()}"
        )
        return RunResult(
            outcome=RunOutcome.SUCCESS,
            elapsed_ms=elapsed_ms(),
            candidate=candidate,
            settled_by=settled_by,
        )


async def run_extraction(
    page: Page,
    request: RequestContext,
    config: Optional[ExtractionConfig] = None,
    fetcher: Optional[AssetFetcher] = None
) -> RunResult:
    """Run the extraction engine once against a page with a submitted question"""
    coordinator = RaceCoordinator(config=config, fetcher=fetcher)
    return await coordinator.run(page, request)
