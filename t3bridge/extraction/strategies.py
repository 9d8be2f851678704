"""Text extraction strategies.

Each strategy is an independent, read-only attempt to pull the assistant's
answer out of the current page. Strategies are tried in priority order and
the first classifier-accepted candidate wins. Page query failures inside a
strategy mean "no candidate this attempt" and never propagate.
"""

import re
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from loguru import logger
from playwright.async_api import Page

from .classifier import ContentClassifier
from .config import ExtractionConfig
from .models import ExtractionCandidate, RequestContext
from .probes import safe_probe


Strategy = Callable[
    [Page, RequestContext, ExtractionConfig, ContentClassifier],
    Awaitable[Optional[ExtractionCandidate]],
]


# =============================================================================
# IN-PAGE SCRIPTS (read-only)
# =============================================================================

# Regions labelled as the assistant's turn. A screen-reader-only marker
# labels the reply that follows it, so its siblings are concatenated.
LABELLED_REGION_JS = """
(labels) => {
    const wanted = labels.map(l => l.toLowerCase());
    const matches = (value) => !!value && wanted.some(l => value.toLowerCase().includes(l));
    const regions = [];
    for (const el of document.querySelectorAll('[aria-label], .sr-only')) {
        if (matches(el.getAttribute('aria-label'))) {
            const text = (el.innerText || '').trim();
            if (text) regions.push(text);
        } else if (el.classList.contains('sr-only') && matches(el.textContent)) {
            const parts = [];
            let sibling = el.nextElementSibling;
            while (sibling) {
                const text = (sibling.innerText || '').trim();
                if (text) parts.push(text);
                sibling = sibling.nextElementSibling;
            }
            if (parts.length) regions.push(parts.join('\\n'));
        }
    }
    return regions;
}
"""

# Content blocks grouped by their direct container
STRUCTURAL_BLOCKS_JS = """
(selectors) => {
    const groups = new Map();
    for (const el of document.querySelectorAll(selectors)) {
        if (el.closest('nav, header, footer, aside, form')) continue;
        const container = el.parentElement;
        if (!container) continue;
        const text = (el.innerText || '').trim();
        if (!text) continue;
        if (!groups.has(container)) groups.set(container, []);
        groups.get(container).push(text);
    }
    return Array.from(groups.values()).map(parts => parts.join('\\n\\n'));
}
"""

# Visible text nodes outside script/style/navigation/analytics subtrees
TEXT_WALK_JS = """
([excludedTags, excludedClasses, minLength]) => {
    const tags = new Set(excludedTags.map(t => t.toUpperCase()));
    const excluded = (el) => {
        for (let node = el; node && node !== document.body; node = node.parentElement) {
            if (tags.has(node.tagName)) return true;
            if (node.hidden || node.getAttribute('aria-hidden') === 'true') return true;
            if (excludedClasses.some(c => node.classList.contains(c))) return true;
        }
        return false;
    };
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, {
        acceptNode: (node) => {
            const parent = node.parentElement;
            if (!parent || excluded(parent)) return NodeFilter.FILTER_REJECT;
            return NodeFilter.FILTER_ACCEPT;
        }
    });
    const fragments = [];
    let node;
    while ((node = walker.nextNode())) {
        const text = (node.textContent || '').trim();
        if (text.length > minLength) fragments.push(text);
    }
    return fragments;
}
"""

_STOPWORDS = {
    'what', 'when', 'where', 'which', 'does', 'that', 'this', 'with', 'have',
    'from', 'about', 'your', 'would', 'could', 'should', 'there', 'their',
    'will', 'into', 'than', 'then', 'them', 'they', 'were', 'been', 'being',
    'please', 'tell', 'explain', 'some',
}


def _first_accepted_text(
    texts: Iterable[str],
    strategy: str,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    for text in texts:
        if not text:
            continue
        candidate = ExtractionCandidate.text(text.strip(), strategy)
        if classifier.accept(candidate):
            return candidate
    return None


def question_keywords(question: str, min_length: int = 4) -> List[str]:
    """Salient lowercase words of the question, used as topical anchors"""
    words = re.findall(r"[a-z0-9][a-z0-9'\-]*", question.lower())
    keywords = []
    for word in words:
        if len(word) >= min_length and word not in _STOPWORDS and word not in keywords:
            keywords.append(word)
    return keywords


# =============================================================================
# STRATEGIES (priority order)
# =============================================================================

async def direct_selector_scan(
    page: Page,
    request: RequestContext,
    config: ExtractionConfig,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    """Last element matching each known message-bubble locator"""
    for selector in config.response_selectors:
        elements = await safe_probe(
            page.query_selector_all(selector), config.probe_timeout_ms, f"query {selector}"
        )
        if not elements:
            continue
        text = await safe_probe(
            elements[-1].inner_text(), config.probe_timeout_ms, f"inner_text {selector}"
        )
        candidate = _first_accepted_text([text], f"direct:{selector}", classifier)
        if candidate:
            return candidate
    return None


async def labelled_region_scan(
    page: Page,
    request: RequestContext,
    config: ExtractionConfig,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    """Region whose accessibility label names the assistant's turn (latest first)"""
    regions = await safe_probe(
        page.evaluate(LABELLED_REGION_JS, config.assistant_turn_labels),
        config.probe_timeout_ms,
        "labelled regions"
    )
    if not regions:
        return None
    return _first_accepted_text(reversed(regions), 'labelled-region', classifier)


async def structural_heuristic_scan(
    page: Page,
    request: RequestContext,
    config: ExtractionConfig,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    """Longest long-enough content block containing an answer or topic anchor"""
    blocks = await safe_probe(
        page.evaluate(STRUCTURAL_BLOCKS_JS, config.structural_block_selectors),
        config.probe_timeout_ms,
        "structural blocks"
    )
    if not blocks:
        return None

    anchors = [phrase.lower() for phrase in config.answer_anchor_phrases]
    anchors += question_keywords(request.question, config.question_keyword_min_length)

    eligible = [
        block for block in blocks
        if len(block.strip()) >= config.structural_min_length
        and any(anchor in block.lower() for anchor in anchors)
    ]
    eligible.sort(key=len, reverse=True)
    return _first_accepted_text(eligible, 'structural', classifier)


async def full_text_walk(
    page: Page,
    request: RequestContext,
    config: ExtractionConfig,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    """Last sufficiently long visible text fragment that is not boilerplate"""
    fragments = await safe_probe(
        page.evaluate(
            TEXT_WALK_JS,
            [config.text_walk_excluded_tags, config.text_walk_excluded_classes, config.text_walk_min_fragment_length]
        ),
        config.probe_timeout_ms,
        "text walk"
    )
    if not fragments:
        return None
    return _first_accepted_text(reversed(fragments), 'text-walk', classifier)


async def raw_body_fallback(
    page: Page,
    request: RequestContext,
    config: ExtractionConfig,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    """Split the rendered body by footer markers and keep the most plausible segment"""
    body = await safe_probe(page.inner_text('body'), config.probe_timeout_ms, "body text")
    if not body:
        return None

    segments = [body]
    if config.footer_markers:
        pattern = '|'.join(re.escape(marker) for marker in config.footer_markers)
        segments = re.split(pattern, body)

    echoes = [text.strip() for text in (request.prompt_text, request.question) if text.strip()]
    leftovers = []
    for segment in segments:
        # The answer follows the echoed question in the transcript
        for echo in echoes:
            if echo in segment:
                segment = segment.rsplit(echo, 1)[1]
                break
        segment = segment.strip()
        if segment:
            leftovers.append(segment)

    leftovers.sort(key=len, reverse=True)
    return _first_accepted_text(leftovers, 'raw-body', classifier)


DEFAULT_STRATEGIES: List[Strategy] = [
    direct_selector_scan,
    labelled_region_scan,
    structural_heuristic_scan,
    full_text_walk,
]

FALLBACK_STRATEGIES: List[Strategy] = [
    raw_body_fallback,
]


async def first_accepted(
    strategies: Sequence[Strategy],
    page: Page,
    request: RequestContext,
    config: ExtractionConfig,
    classifier: ContentClassifier
) -> Optional[ExtractionCandidate]:
    """Try strategies in order; the first classifier-accepted candidate wins"""
    for strategy in strategies:
        try:
            candidate = await strategy(page, request, config, classifier)
        except Exception as e:
            logger.debug(f"[{request.correlation_id}] Strategy {strategy.__name__} failed: {e}")
            continue
        if candidate is not None and classifier.accept(candidate):
            return candidate
    return None


class StrategyChain:
    """Ordered text strategies plus the last-resort raw-body fallback"""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        strategies: Optional[Sequence[Strategy]] = None,
        fallback_strategies: Optional[Sequence[Strategy]] = None
    ):
        self.config = config or ExtractionConfig()
        self.strategies = list(strategies if strategies is not None else DEFAULT_STRATEGIES)
        self.fallback_strategies = list(
            fallback_strategies if fallback_strategies is not None else FALLBACK_STRATEGIES
        )

    async def extract(
        self,
        page: Page,
        request: RequestContext,
        classifier: ContentClassifier
    ) -> Optional[ExtractionCandidate]:
        candidate = await first_accepted(self.strategies, page, request, self.config, classifier)
        if candidate:
            logger.info(
                f"[{request.correlation_id}] Found response with {candidate.strategy}: {candidate.preview()}..."
            )
        return candidate

    async def extract_fallback(
        self,
        page: Page,
        request: RequestContext,
        classifier: ContentClassifier
    ) -> Optional[ExtractionCandidate]:
        candidate = await first_accepted(self.fallback_strategies, page, request, self.config, classifier)
        if candidate:
            logger.info(
                f"[{request.correlation_id}] Recovered response from {candidate.strategy}: {candidate.preview()}..."
            )
        return candidate
