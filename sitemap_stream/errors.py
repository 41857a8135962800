"""
Exceptions raised by sitemap_stream.

I/O errors from the underlying stream (OSError and friends) and exceptions
raised by a caller's consumer are never wrapped; they propagate as-is.
"""

from typing import Optional


class SitemapError(Exception):
    """Base class for errors raised by this library."""


class MalformedSitemapError(SitemapError):
    """The byte stream could not be tokenized as XML."""

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.line = line


class SitemapValidationError(SitemapError, ValueError):
    """A record element failed field validation (missing <loc>, bad <priority>, ...)."""

    def __init__(
        self,
        message: str,
        field: str,
        record_index: Optional[int] = None,
        line: Optional[int] = None,
        location: Optional[str] = None,
    ):
        details = [f"field={field}"]
        if record_index is not None:
            details.append(f"record={record_index}")
        if line is not None:
            details.append(f"line={line}")
        if location:
            details.append(f"loc={location}")
        super().__init__(f"{message} ({', '.join(details)})")
        self.field = field
        self.record_index = record_index
        self.line = line
        self.location = location


class FetchError(SitemapError):
    """Retrieving a sitemap over HTTP failed."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """The request (or reading its body) exceeded a configured timeout."""


class InvalidProxyError(FetchError):
    """A proxy server URL from the pool cannot be used."""
