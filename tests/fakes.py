"""In-memory stand-ins for Playwright page and element handles.

Only the read-only calls the extraction engine makes are implemented, so
unit tests can drive every strategy without launching a browser.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from t3bridge.extraction.errors import AssetDownloadError


class FakeElement:
    """Element handle with scripted text, attributes and screenshot bytes"""

    def __init__(
        self,
        text: Union[str, Sequence[str]] = '',
        attributes: Optional[Dict[str, str]] = None,
        screenshot_bytes: bytes = b'',
        error: Optional[Exception] = None
    ):
        # A sequence of texts is served one per call, repeating the last one
        self._texts: List[str] = [text] if isinstance(text, str) else list(text)
        self.attributes = attributes or {}
        self.screenshot_bytes = screenshot_bytes
        self.error = error
        self.text_calls = 0

    def _next_text(self) -> str:
        index = min(self.text_calls, len(self._texts) - 1)
        self.text_calls += 1
        return self._texts[index] if self._texts else ''

    async def inner_text(self) -> str:
        if self.error:
            raise self.error
        return self._next_text()

    async def text_content(self) -> str:
        return await self.inner_text()

    async def get_attribute(self, name: str) -> Optional[str]:
        if self.error:
            raise self.error
        return self.attributes.get(name)

    async def screenshot(self) -> bytes:
        if self.error:
            raise self.error
        return self.screenshot_bytes


class FakePage:
    """
    Page handle answering queries from dictionaries.

    Args:
        elements: Selector -> elements (or a callable returning them per call)
        scripts: Script source -> result (or a callable taking the script arg)
        body_text: Text returned for inner_text('body')
        url: Current page URL
        failing_selectors: Selectors whose query raises
        query_delay: Seconds each selector query takes
    """

    def __init__(
        self,
        elements: Optional[Dict[str, Any]] = None,
        scripts: Optional[Dict[str, Any]] = None,
        body_text: str = '',
        url: str = 'https://beta.t3.chat/chat/abc123',
        failing_selectors: Optional[Sequence[str]] = None,
        query_delay: float = 0
    ):
        self.elements = elements or {}
        self.scripts = scripts or {}
        self.body_text = body_text
        self.url = url
        self.failing_selectors = set(failing_selectors or [])
        self.query_delay = query_delay
        self.queries: List[str] = []
        self.evaluated: List[str] = []

    async def query_selector_all(self, selector: str) -> List[FakeElement]:
        self.queries.append(selector)
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        if selector in self.failing_selectors:
            raise RuntimeError(f"Element is not attached to the DOM: {selector}")
        found = self.elements.get(selector, [])
        if callable(found):
            found = found()
        return list(found)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append(script)
        result = self.scripts.get(script, [])
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(arg)
        return result

    async def inner_text(self, selector: str) -> str:
        if selector != 'body':
            raise RuntimeError(f"No element matches {selector}")
        return self.body_text


class FakeFetcher:
    """Asset fetcher serving bytes (or raising) per URL"""

    def __init__(self, responses: Optional[Dict[str, Union[bytes, Exception]]] = None):
        self.responses = responses or {}
        self.requested: List[str] = []

    async def fetch(self, url: str) -> bytes:
        self.requested.append(url)
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise AssetDownloadError(url, status=404)
        return response


def sequenced(*values: Any) -> Callable[..., Any]:
    """Callable returning the given values one per call, then the last one forever"""
    calls = {'count': 0}

    def next_value(*_args):
        index = min(calls['count'], len(values) - 1)
        calls['count'] += 1
        return values[index]

    return next_value
