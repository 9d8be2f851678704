"""Extraction configuration.

Every selector list, denylist and numeric budget used by the engine lives
here so that site changes can be handled from a YAML file without touching
code. Defaults describe the current t3.chat layout.
"""

import os
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .models import AttemptBudget, GenerationKind, PollSchedule


# =============================================================================
# CLASSIFIER DEFAULTS
# =============================================================================

# Substrings that only ever appear in chrome, telemetry or upsell text
BOILERPLATE_DENYLIST = [
    # Analytics snippets leaking through text nodes
    'window.plausible',
    'function()',
    'analytics',
    '.push(arguments)',
    # Upsell / legal banners
    'Upgrade to Pro',
    'Terms and our Privacy Policy',
    # Sign in prompts
    'Sign in to continue',
    'Sign in with Google',
    # Search citation footers
    'Search Grounding',
    'Sources used:',
]

DENIED_PREFIXES = [
    'window.',
]

# Image URLs that are page chrome rather than generated content
NON_CONTENT_ASSET_PATTERNS = [
    'avatar',
    'logo',
    'icon',
    'favicon',
]

# Hosts serving user-generated uploads (always plausible content)
USER_CONTENT_HOSTS = [
    'utfs.io',
    'uploadthing',
    'ufs.sh',
]


# =============================================================================
# TEXT STRATEGY DEFAULTS
# =============================================================================

# Structural locators that typically hold the latest message bubble (priority order)
RESPONSE_SELECTORS = [
    '[data-testid="message-content"]',
    '.message-content',
    '.response',
    '.ai-response',
    '.chat-message',
    '.prose',
    '[role="main"] > div:last-child',
    'main > div:last-child',
    '.conversation-item:last-child',
    '.chat-bubble:last-child',
]

# Accessibility labels naming the assistant's turn
ASSISTANT_TURN_LABELS = [
    'assistant message',
    'assistant said',
    'ai response',
    'model response',
]

STRUCTURAL_BLOCK_SELECTORS = 'p, ul, ol, pre, blockquote, table, h1, h2, h3'

ANSWER_ANCHOR_PHRASES = [
    "here's",
    'here is',
    'in summary',
    'to summarize',
    'for example',
    'the answer',
    'step 1',
    '```',
]

TEXT_WALK_EXCLUDED_TAGS = ['script', 'style', 'noscript', 'nav', 'header', 'footer']
TEXT_WALK_EXCLUDED_CLASSES = ['analytics']

FOOTER_MARKERS = [
    'Upgrade to Pro',
    'Terms and our Privacy Policy',
    'Make sure you agree to our',
    'can make mistakes',
]


# =============================================================================
# IMAGE STRATEGY DEFAULTS
# =============================================================================

IMAGE_SELECTORS = [
    'img[src*="utfs.io"]',
    'img[src*="uploadthing"]',
    'img[src*="generated"]',
    'img[src*="blob:"]',
    'img[src*="data:image"]',
    'img[src*="cdn"]',
    'img[src*="image"]',
    'img[alt*="generated"]',
    'img[alt*="image"]',
    '[data-testid="generated-image"] img',
    '.generated-image img',
    '.ai-image img',
    'img:not([src*="avatar"]):not([src*="logo"]):not([src*="icon"])',
]

ASSET_URL_PATTERN = r'https://utfs\.io/f/[A-Za-z0-9]+'


# =============================================================================
# COMPLETION DETECTOR DEFAULTS
# =============================================================================

LOADING_INDICATOR_SELECTORS = [
    'button[aria-label="Stop generating"]',
    'button[aria-label*="Stop" i]',
    '[data-testid="stop-button"]',
    '[data-testid="loading"]',
    '[aria-busy="true"]',
    '.typing-indicator',
    '[class*="result-streaming"]',
]

COMPLETION_MARKER_SELECTORS = [
    '[data-message-status="complete"]',
    '[data-testid="message-complete"]',
    '[data-finished="true"]',
]


class ExtractionConfig(BaseModel):
    """All tunables of the extraction engine"""
    model_config = ConfigDict(extra='forbid')

    # Classifier
    min_text_length: int = 20
    boilerplate_denylist: List[str] = Field(default_factory=lambda: list(BOILERPLATE_DENYLIST))
    denied_prefixes: List[str] = Field(default_factory=lambda: list(DENIED_PREFIXES))
    non_content_asset_patterns: List[str] = Field(default_factory=lambda: list(NON_CONTENT_ASSET_PATTERNS))
    user_content_hosts: List[str] = Field(default_factory=lambda: list(USER_CONTENT_HOSTS))
    min_image_url_length: int = 50

    # Text strategies
    response_selectors: List[str] = Field(default_factory=lambda: list(RESPONSE_SELECTORS))
    assistant_turn_labels: List[str] = Field(default_factory=lambda: list(ASSISTANT_TURN_LABELS))
    structural_block_selectors: str = STRUCTURAL_BLOCK_SELECTORS
    structural_min_length: int = 80
    answer_anchor_phrases: List[str] = Field(default_factory=lambda: list(ANSWER_ANCHOR_PHRASES))
    question_keyword_min_length: int = 4
    text_walk_excluded_tags: List[str] = Field(default_factory=lambda: list(TEXT_WALK_EXCLUDED_TAGS))
    text_walk_excluded_classes: List[str] = Field(default_factory=lambda: list(TEXT_WALK_EXCLUDED_CLASSES))
    text_walk_min_fragment_length: int = 50
    footer_markers: List[str] = Field(default_factory=lambda: list(FOOTER_MARKERS))

    # Image strategies
    image_selectors: List[str] = Field(default_factory=lambda: list(IMAGE_SELECTORS))
    asset_url_pattern: str = ASSET_URL_PATTERN
    asset_fetch_timeout_ms: int = 15000

    # Completion detector
    loading_indicator_selectors: List[str] = Field(default_factory=lambda: list(LOADING_INDICATOR_SELECTORS))
    completion_marker_selectors: List[str] = Field(default_factory=lambda: list(COMPLETION_MARKER_SELECTORS))
    probe_interval_ms: int = 200
    probe_interval_mid_ms: int = 600
    probe_interval_late_ms: int = 1000
    probe_widen_after_ms: int = 10000
    probe_widen_late_after_ms: int = 15000

    # Timeouts and budgets
    probe_timeout_ms: int = 1500
    text_budget: AttemptBudget = Field(
        default_factory=lambda: AttemptBudget(max_attempts=150, overall_deadline_ms=60000)
    )
    image_budget: AttemptBudget = Field(
        default_factory=lambda: AttemptBudget(
            max_attempts=300,
            overall_deadline_ms=120000,
            poll_schedule=PollSchedule(slow_delay_ms=1000, idle_delay_ms=2000),
        )
    )

    def budget_for(self, kind: GenerationKind) -> AttemptBudget:
        """Pick the attempt budget for a generation kind"""
        return self.image_budget if kind == GenerationKind.IMAGE else self.text_budget

    def probe_interval_for(self, elapsed_ms: float) -> int:
        """Completion probe interval, widening as the wait grows"""
        if elapsed_ms < self.probe_widen_after_ms:
            return self.probe_interval_ms
        if elapsed_ms < self.probe_widen_late_after_ms:
            return self.probe_interval_mid_ms
        return self.probe_interval_late_ms


def load_config(path: Optional[str] = None) -> ExtractionConfig:
    """
    Load extraction configuration, overlaying a YAML file on the defaults.

    Args:
        path: YAML file path. Falls back to the T3BRIDGE_CONFIG environment
            variable; with neither set the defaults are returned.

    Returns:
        Validated ExtractionConfig

    Raises:
        ConfigError: If the file cannot be read or holds invalid settings
    """
    path = path or os.getenv('T3BRIDGE_CONFIG')
    if not path:
        return ExtractionConfig()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            overrides: Dict[str, Any] = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read extraction config {path}: {e}") from e

    if not isinstance(overrides, dict):
        raise ConfigError(f"Extraction config {path} must be a mapping, got {type(overrides).__name__}")

    try:
        config = ExtractionConfig(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid extraction config {path}: {e}") from e

    logger.info(f"Loaded extraction config from {path} ({len(overrides)} overrides)")
    return config
