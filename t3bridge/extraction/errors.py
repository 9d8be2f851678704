"""Exceptions raised inside the extraction engine"""

from typing import Optional


class ExtractionError(Exception):
    """Base class for extraction engine errors"""


class ConfigError(ExtractionError):
    """Configuration file missing, unreadable or invalid"""


class AssetDownloadError(ExtractionError):
    """An image asset could not be downloaded"""

    def __init__(self, url: str, status: Optional[int] = None, reason: Optional[str] = None):
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"status {status}" if status is not None else (reason or 'unknown error')
        super().__init__(f"Failed to download {url}: {detail}")


class CatalogError(ExtractionError):
    """Model catalog missing or unreadable"""
