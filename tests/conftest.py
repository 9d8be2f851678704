"""Pytest configuration and shared fixtures for testing"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from t3bridge.extraction.config import ExtractionConfig
from t3bridge.extraction.models import AttemptBudget, GenerationKind, PollSchedule, RequestContext


@pytest.fixture
def config() -> ExtractionConfig:
    """Default extraction configuration with a short probe timeout"""
    return ExtractionConfig(probe_timeout_ms=500)


@pytest.fixture
def text_request() -> RequestContext:
    """A plain text question"""
    return RequestContext(question="What is 2+2?", correlation_id="test0001")


@pytest.fixture
def image_request() -> RequestContext:
    """An image-generation request"""
    return RequestContext(
        question="Draw a lighthouse at sunset",
        generation_kind=GenerationKind.IMAGE,
        correlation_id="test0002",
    )


@pytest.fixture
def quick_budget() -> AttemptBudget:
    """Budget with a fast schedule so races settle within a second"""
    return AttemptBudget(
        max_attempts=50,
        overall_deadline_ms=500,
        poll_schedule=PollSchedule(fast_delay_ms=20, warm_delay_ms=20, steady_delay_ms=20,
                                   slow_delay_ms=20, idle_delay_ms=20),
    )


@pytest.fixture
def test_fixture_path() -> Path:
    """Return the path to the test fixtures directory"""
    return Path(__file__).parent / "fixtures"
