"""
Fatal error types raised by the population pipeline.

Everything else (odd cell shapes, unknown codes, unparseable numbers) is
recovered locally and only logged.
"""

from typing import Optional


class PopulationError(Exception):
    """Base class for errors that abort a population call."""


class WorkbookLoadError(PopulationError, ValueError):
    """Template bytes are empty, too large or not a readable workbook."""


class NoUsableItemsError(PopulationError, ValueError):
    """None of the supplied data items is matched or confirmed."""


class TemplateFetchError(PopulationError, RuntimeError):
    """Downloading a template by URL failed (non-2xx or transport error)."""

    def __init__(self, url: str, status_code: Optional[int] = None, body: str = "") -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"Failed to fetch template from {url}: {body}"
        else:
            message = f"Failed to fetch template: HTTP {status_code}: {body[:500]}"
        super().__init__(message)
