"""Content classifier: is a candidate plausibly the assistant's answer?

Acceptance depends only on the candidate and on data fixed when the
classifier is built (configuration and the submitted question), so the same
candidate always gets the same verdict.
"""

from typing import List, Optional
from urllib.parse import urlparse

from .config import ExtractionConfig
from .models import ExtractionCandidate, RequestContext


class ContentClassifier:
    """Reject navigation chrome, telemetry, upsell text, echoes and chrome images"""

    def __init__(self, config: Optional[ExtractionConfig] = None, request: Optional[RequestContext] = None):
        self.config = config or ExtractionConfig()
        self.denylist: List[str] = list(self.config.boilerplate_denylist)
        self.denied_prefixes: List[str] = list(self.config.denied_prefixes)
        self._echoes = set()
        if request is not None:
            for text in (request.question, request.prompt_text):
                if text.strip():
                    self._echoes.add(text.strip())

    def accept(self, candidate: Optional[ExtractionCandidate]) -> bool:
        """Return True if the candidate looks like real output"""
        if candidate is None:
            return False
        if candidate.is_image:
            return self.accept_image(candidate)
        return self.accept_text(candidate.value or '')

    def accept_text(self, text: str) -> bool:
        text = text.strip()
        if len(text) < self.config.min_text_length:
            return False
        if text in self._echoes:
            return False
        return not self.is_boilerplate(text)

    def is_boilerplate(self, text: str) -> bool:
        """Check text against the denylist and denied prefixes"""
        stripped = text.strip()
        if any(stripped.startswith(prefix) for prefix in self.denied_prefixes):
            return True
        return any(snippet in text for snippet in self.denylist)

    def accept_image(self, candidate: ExtractionCandidate) -> bool:
        if candidate.data is not None and len(candidate.data) == 0:
            return False
        return self.is_plausible_image_url(candidate.source_locator or '')

    def is_plausible_image_url(self, url: str) -> bool:
        """
        Decide whether an image URL is generated content rather than chrome.

        Allowlisted upload hosts always pass. Otherwise the URL must avoid the
        non-content patterns and be long enough to be a real asset URL.
        """
        if not url:
            return False

        host = (urlparse(url).hostname or '').lower()
        if any(allowed in host for allowed in self.config.user_content_hosts):
            return True

        # Only the media-type header of a data: URL is meaningful; the payload is base64
        inspected = url.split(',', 1)[0] if url.startswith('data:') else url
        inspected = inspected.lower()
        if any(pattern in inspected for pattern in self.config.non_content_asset_patterns):
            return False

        return len(url) > self.config.min_image_url_length
