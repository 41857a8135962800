"""
sitemap_stream - streaming parser for huge XML sitemaps

Modules:
- models: PageEntry / IndexEntry records and the Frequency enum
- sitemap_parser: token-level walk over sitemap and sitemap index documents
- sitemap_fetcher: HTTP retrieval with proxy selection and direct fallback
- streams: byte-stream wrappers (payload tee logging, body deadline)
- config: defaults, timeouts and validation policies
- errors: exception hierarchy
"""

__version__ = "1.0.0"

from sitemap_stream.errors import (
    FetchError,
    FetchTimeoutError,
    InvalidProxyError,
    MalformedSitemapError,
    SitemapError,
    SitemapValidationError,
)
from sitemap_stream.models import DEFAULT_PRIORITY, Frequency, IndexEntry, PageEntry
from sitemap_stream.sitemap_fetcher import SitemapFetcher, parse_from_site, parse_index_from_site
from sitemap_stream.sitemap_parser import (
    SitemapParser,
    parse,
    parse_file,
    parse_index,
    parse_index_file,
    walk,
)

__all__ = [
    "DEFAULT_PRIORITY",
    "FetchError",
    "FetchTimeoutError",
    "Frequency",
    "IndexEntry",
    "InvalidProxyError",
    "MalformedSitemapError",
    "PageEntry",
    "SitemapError",
    "SitemapFetcher",
    "SitemapParser",
    "SitemapValidationError",
    "parse",
    "parse_file",
    "parse_from_site",
    "parse_index",
    "parse_index_file",
    "parse_index_from_site",
    "walk",
]
