"""Adaptive poller: repeat extraction on a front-loaded backoff schedule"""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from .models import AttemptBudget, ExtractionCandidate


Extractor = Callable[[], Awaitable[Optional[ExtractionCandidate]]]


class AdaptivePoller:
    """
    Drive extraction attempts until one yields an accepted candidate.

    Short answers usually render within 1-2 seconds, so the first attempts
    are 100ms apart and the gap widens once a response is clearly slow.
    One poller serves one run.
    """

    def __init__(self, budget: AttemptBudget, correlation_id: str = "N/A"):
        self.budget = budget
        self.schedule = budget.poll_schedule
        self.correlation_id = correlation_id
        self.attempts = 0

    async def poll(
        self,
        extract: Extractor,
        deadline: float,
        started: Optional[float] = None,
        stop: Optional[asyncio.Event] = None
    ) -> Optional[ExtractionCandidate]:
        """
        Run extraction attempts until success, max attempts, the deadline or a stop signal.

        No attempt starts at or after the deadline, and none starts once
        `stop` is set.

        Args:
            extract: Zero-argument extraction attempt
            deadline: Absolute event-loop time after which no attempt starts
            started: Event-loop time the run started (defaults to now)
            stop: Set by the coordinator once the race has settled

        Returns:
            The accepted candidate, or None
        """
        loop = asyncio.get_running_loop()
        started = loop.time() if started is None else started

        def stopped() -> bool:
            return (stop is not None and stop.is_set()) or loop.time() >= deadline

        while self.attempts < self.budget.max_attempts and not stopped():
            self.attempts += 1
            try:
                candidate = await extract()
            except Exception as e:
                logger.debug(f"[{self.correlation_id}] Attempt {self.attempts} failed: {e}")
                candidate = None

            if candidate is not None:
                logger.success(
                    f"[{self.correlation_id}] Candidate accepted on attempt {self.attempts} "
                    f"({candidate.strategy})"
                )
                return candidate

            now = loop.time()
            remaining = deadline - now
            if remaining <= 0 or stopped():
                break

            delay_ms = self.schedule.delay_for(self.attempts, (now - started) * 1000)
            logger.debug(
                f"[{self.correlation_id}] Attempt {self.attempts}/{self.budget.max_attempts} - "
                f"no candidate, next in {delay_ms}ms"
            )
            await asyncio.sleep(min(delay_ms / 1000, remaining))

        logger.info(f"[{self.correlation_id}] Poller stopped after {self.attempts} attempts")
        return None
