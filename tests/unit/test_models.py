"""Unit tests for extraction data models"""

import pytest
from pathlib import Path
import sys

from pydantic import ValidationError

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from t3bridge.extraction.models import (
    AttemptBudget,
    ExtractionCandidate,
    GenerationKind,
    PollSchedule,
    RequestContext,
    RunOutcome,
    RunResult,
    SettledBy,
)


class TestPollSchedule:
    """Test the front-loaded polling schedule"""

    def test_first_attempts_are_fast(self):
        schedule = PollSchedule()
        assert [schedule.delay_for(attempt, 0) for attempt in (1, 2, 3)] == [100, 100, 100]

    def test_warm_phase(self):
        schedule = PollSchedule()
        assert [schedule.delay_for(attempt, 1000) for attempt in range(4, 9)] == [200] * 5

    def test_steady_phase_inside_window(self):
        schedule = PollSchedule()
        assert schedule.delay_for(9, 2000) == 400
        assert schedule.delay_for(15, 7999) == 400

    def test_steady_phase_ends_when_window_passes(self):
        schedule = PollSchedule()
        assert schedule.delay_for(12, 9000) == 600

    def test_slow_phase_after_steady_attempts(self):
        schedule = PollSchedule()
        assert schedule.delay_for(20, 5000) == 600

    def test_idle_phase(self):
        schedule = PollSchedule()
        assert schedule.delay_for(20, 20000) == 1000
        assert schedule.delay_for(200, 59000) == 1000

    def test_delays_never_shrink(self):
        """Test that the delay is non-decreasing over a realistic run"""
        schedule = PollSchedule()
        elapsed = 0
        delays = []
        for attempt in range(1, 80):
            delay = schedule.delay_for(attempt, elapsed)
            delays.append(delay)
            elapsed += delay
        assert delays == sorted(delays)


class TestRequestContext:
    """Test request validation and derived prompt text"""

    def test_defaults(self):
        request = RequestContext(question="Hello there")
        assert request.generation_kind == GenerationKind.TEXT
        assert request.is_image_generation is False
        assert request.search_enabled is False
        assert len(request.correlation_id) == 8

    def test_prompt_text_without_attachments(self):
        assert RequestContext(question="Hello there").prompt_text == "Hello there"

    def test_prompt_text_lists_attachments_first(self):
        request = RequestContext(
            question="Compare these",
            image_url="https://example.com/a.png",
            document_url="https://example.com/b.pdf",
        )
        assert request.prompt_text == "https://example.com/a.png\nhttps://example.com/b.pdf\n\nCompare these"

    def test_non_http_attachment_is_rejected(self):
        with pytest.raises(ValidationError):
            RequestContext(question="Describe", image_url="ftp://example.com/a.png")

    def test_request_is_immutable(self):
        request = RequestContext(question="Hello there")
        with pytest.raises(ValidationError):
            request.question = "Changed"

    def test_correlation_ids_differ(self):
        assert RequestContext(question="a").correlation_id != RequestContext(question="a").correlation_id


class TestRunResult:
    """Test terminal result accessors"""

    def test_text_success(self):
        candidate = ExtractionCandidate.text("The capital of France is Paris.", 'direct:.prose')
        result = RunResult(outcome=RunOutcome.SUCCESS, elapsed_ms=120, candidate=candidate,
                           settled_by=SettledBy.POLL)
        assert result.succeeded is True
        assert result.text == "The capital of France is Paris."
        assert result.image is None

    def test_image_success(self):
        candidate = ExtractionCandidate.image("https://utfs.io/f/abc", 'asset-url-scan', data=b'\x89PNG')
        result = RunResult(outcome=RunOutcome.SUCCESS, elapsed_ms=5000, candidate=candidate)
        assert result.image == b'\x89PNG'
        assert result.text is None

    def test_timeout_has_no_content(self):
        result = RunResult(outcome=RunOutcome.TIMEOUT, elapsed_ms=60000)
        assert result.succeeded is False
        assert result.text is None
        assert result.image is None
        assert result.settled_by == SettledBy.EXHAUSTED

    def test_candidate_preview(self):
        assert ExtractionCandidate.text("x" * 300, 'raw-body').preview() == "x" * 100
        preview = ExtractionCandidate.image("https://utfs.io/f/abc", 'img', data=b'1234').preview()
        assert "4 bytes" in preview


class TestAttemptBudget:
    """Test budget immutability"""

    def test_budget_is_frozen(self):
        budget = AttemptBudget(max_attempts=10, overall_deadline_ms=1000)
        with pytest.raises(ValidationError):
            budget.max_attempts = 20
