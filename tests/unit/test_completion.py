"""Unit tests for the completion detector"""

import asyncio
import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from t3bridge.extraction.completion import CompletionDetector
from t3bridge.extraction.config import ExtractionConfig
from tests.fakes import FakeElement, FakePage


ANSWER = "Two plus two equals four in standard arithmetic."


@pytest.fixture
def detector() -> CompletionDetector:
    return CompletionDetector(ExtractionConfig(probe_interval_ms=10, probe_timeout_ms=500))


class TestObserve:
    """Test single page observations"""

    @pytest.mark.asyncio
    async def test_empty_page(self, detector):
        observation = await detector.observe(FakePage())

        assert observation.loading is False
        assert observation.content_length == 0
        assert observation.completion_marker is False

    @pytest.mark.asyncio
    async def test_loading_and_content(self, detector):
        page = FakePage(elements={
            'button[aria-label="Stop generating"]': [FakeElement()],
            '.prose': [FakeElement(ANSWER)],
        })

        observation = await detector.observe(page)

        assert observation.loading is True
        assert observation.content_length == len(ANSWER)

    @pytest.mark.asyncio
    async def test_question_echo_is_not_content(self, detector, text_request):
        page = FakePage(elements={
            '[data-testid="message-content"]': [FakeElement("What is 2+2?")],
        })

        observation = await detector.observe(page, text_request)

        assert observation.content_length == 0

    @pytest.mark.asyncio
    async def test_failing_probe_counts_as_absent(self, detector):
        page = FakePage(failing_selectors=['[data-message-status="complete"]'])

        observation = await detector.observe(page)

        assert observation.completion_marker is False


class TestAwaitCompletion:
    """Test the completion wait loop"""

    @pytest.mark.asyncio
    async def test_completion_marker(self, detector, text_request):
        page = FakePage(elements={'[data-message-status="complete"]': [FakeElement()]})

        signal = await detector.await_completion(page, 2000, text_request)

        assert signal.completed is True
        assert signal.reason == 'completion marker'
        assert signal.elapsed_ms < 500

    @pytest.mark.asyncio
    async def test_stable_content_without_loading(self, detector, text_request):
        page = FakePage(elements={'.prose': [FakeElement(ANSWER)]})

        signal = await detector.await_completion(page, 2000, text_request)

        assert signal.completed is True
        assert signal.reason == 'content stable'

    @pytest.mark.asyncio
    async def test_growing_content_is_not_complete(self, detector, text_request):
        """Test that completion waits until two consecutive probes see the same length"""
        bubble = FakeElement(["Two", "Two plus two", "Two plus two equals four", "Two plus two equals four"])
        page = FakePage(elements={'.prose': [bubble]})

        signal = await detector.await_completion(page, 2000, text_request)

        assert signal.completed is True
        assert bubble.text_calls == 4

    @pytest.mark.asyncio
    async def test_loading_indicator_blocks_completion(self, detector, text_request):
        page = FakePage(elements={
            '[data-testid="loading"]': [FakeElement()],
            '.prose': [FakeElement(ANSWER)],
        })

        signal = await detector.await_completion(page, 300, text_request)

        assert signal.completed is False
        assert signal.elapsed_ms >= 300

    @pytest.mark.asyncio
    async def test_echo_only_page_never_completes(self, detector, text_request):
        page = FakePage(elements={'.prose': [FakeElement("What is 2+2?")]})

        signal = await detector.await_completion(page, 300, text_request)

        assert signal.completed is False

    @pytest.mark.asyncio
    async def test_zero_budget(self, detector, text_request):
        signal = await detector.await_completion(FakePage(), 0, text_request)

        assert signal.completed is False
        assert signal.reason == 'budget exhausted'

    @pytest.mark.asyncio
    async def test_detector_does_not_write_to_page(self, detector, text_request):
        page = FakePage(elements={'.prose': [FakeElement(ANSWER)]})

        await detector.await_completion(page, 2000, text_request)

        assert page.evaluated == []

    @pytest.mark.asyncio
    async def test_stop_ends_wait(self, detector, text_request):
        """Test that a still-loading page stops being watched once the race settles"""
        page = FakePage(elements={
            '[data-testid="loading"]': [FakeElement()],
            '.prose': [FakeElement(ANSWER)],
        })
        stop = asyncio.Event()
        task = asyncio.create_task(detector.await_completion(page, 5000, text_request, stop))
        await asyncio.sleep(0.05)

        stop.set()
        signal = await asyncio.wait_for(task, timeout=0.5)

        assert signal.completed is False
        assert signal.reason == 'stopped'
        assert signal.elapsed_ms < 500
