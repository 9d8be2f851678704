"""Fail-fast wrapper for read-only page queries"""

import asyncio
from typing import Any, Awaitable, Optional

from loguru import logger


async def safe_probe(awaitable: Awaitable[Any], timeout_ms: int, description: str) -> Optional[Any]:
    """
    Await a page query, treating any failure as "nothing observed".

    Detached elements, navigation in progress and slow queries are normal
    while the remote page renders, so they are logged at debug level only.

    Args:
        awaitable: The page query
        timeout_ms: Per-probe timeout
        description: Label for debug logging

    Returns:
        The query result, or None on timeout or error
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.debug(f"Probe timed out after {timeout_ms}ms: {description}")
    except Exception as e:
        logger.debug(f"Probe failed ({description}): {e}")
    return None
