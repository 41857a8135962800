"""
tests/conftest.py - Shared sample XML payloads and fake HTTP objects.
"""

import io
from unittest.mock import MagicMock

import pytest
import requests

SITEMAP_NS_URI = "http://www.sitemaps.org/schemas/sitemap/0.9"

URLSET_XML = f"""\
<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="{SITEMAP_NS_URI}">
   <url>
      <loc>http://www.example.com/</loc>
      <lastmod>2005-01-01</lastmod>
      <changefreq>monthly</changefreq>
      <priority>0.8</priority>
   </url>
   <url>
      <loc>http://www.example.com/catalog?item=12&amp;desc=vacation_hawaii</loc>
      <changefreq>weekly</changefreq>
   </url>
   <url>
      <loc>http://www.example.com/catalog?item=73&amp;desc=vacation_new_zealand</loc>
      <lastmod>2004-12-23T18:00:15+00:00</lastmod>
      <changefreq>weekly</changefreq>
      <priority>0.3</priority>
   </url>
</urlset>
""".encode("utf-8")

SITEMAP_INDEX_XML = f"""\
<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="{SITEMAP_NS_URI}">
   <sitemap>
      <loc>http://www.example.com/sitemap1.xml.gz</loc>
      <lastmod>2004-10-01T18:23:17+00:00</lastmod>
   </sitemap>
   <sitemap>
      <loc>http://www.example.com/sitemap2.xml.gz</loc>
   </sitemap>
</sitemapindex>
""".encode("utf-8")


def urlset_with(count: int) -> bytes:
    """A <urlset> with `count` entries: https://example.com/page-1 ... page-N."""
    urls = "".join(
        f"<url><loc>https://example.com/page-{i}</loc></url>" for i in range(1, count + 1)
    )
    return f'<?xml version="1.0"?><urlset xmlns="{SITEMAP_NS_URI}">{urls}</urlset>'.encode("utf-8")


def single_url(inner: str) -> bytes:
    return f'<urlset xmlns="{SITEMAP_NS_URI}"><url>{inner}</url></urlset>'.encode("utf-8")


class Body(io.BytesIO):
    """Stand-in for urllib3's HTTPResponse body (accepts decode_content)."""


class ReadRecorder(io.BytesIO):
    """BytesIO that records how many bytes were handed out."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.served = 0

    def read(self, size=-1):
        chunk = super().read(size)
        self.served += len(chunk)
        return chunk


class StallingBody(Body):
    """Serves `content` on the first read, then raises `error` (a server that stalls or resets mid-body)."""

    def __init__(self, content: bytes, error: BaseException):
        super().__init__(content)
        self.error = error
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        if self.reads > 1:
            raise self.error
        return super().read(size)


def fake_response(content: bytes, status_code: int = 200, raw=None):
    """Return a mock ``requests.Response`` whose raw body streams `content`."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.raw = raw if raw is not None else Body(content)
    return resp


def fake_session(result):
    """A mock Session whose get() returns `result`, or raises it if it is an exception."""
    session = MagicMock(spec=requests.Session)
    if isinstance(result, BaseException):
        session.get.side_effect = result
    else:
        session.get.return_value = result
    return session


@pytest.fixture
def collected():
    """A list plus a consumer that appends to it."""
    records = []
    return records, records.append
