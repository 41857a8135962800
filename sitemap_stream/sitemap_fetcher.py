"""
1.0 Sitemap Fetcher Module
Downloads sitemaps over HTTP and streams the response body into the parser.

Key features:
- Random proxy selection from a caller-supplied pool
- One fallback to a direct connection when the proxied request times out
- Connect/TLS handshake timeout plus an overall request timeout
- TLS verification on by default (verify_tls=False is an explicit opt-in)
- The body is never buffered: it goes straight from the socket to the parser
"""

import logging
import random
import socket
import time
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from sitemap_stream.config import resolve_config
from sitemap_stream.errors import FetchError, FetchTimeoutError, InvalidProxyError
from sitemap_stream.sitemap_parser import EntryConsumer, IndexEntryConsumer, SitemapParser
from sitemap_stream.streams import DeadlineStream

logger = logging.getLogger(__name__)

PROXY_SCHEMES = ("http", "https")


def _is_timeout_error(error: BaseException) -> bool:
    """
    2.0 Decide whether a request failure was a timeout.

    requests does not always surface timeouts as requests.Timeout: a proxy
    that never answers comes back as ProxyError wrapping urllib3's
    ConnectTimeoutError. Walk the wrapped/chained exceptions to find out.
    """
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))

        # NewConnectionError subclasses ConnectTimeoutError but means "refused/unreachable"
        if isinstance(current, urllib3.exceptions.NewConnectionError):
            continue
        if isinstance(current, (requests.exceptions.Timeout, urllib3.exceptions.TimeoutError,
                                socket.timeout, TimeoutError)):
            return True

        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        for attr in ("reason", "original_error"):
            wrapped = getattr(current, attr, None)
            if isinstance(wrapped, BaseException):
                pending.append(wrapped)
        pending.append(current.__cause__)
        pending.append(current.__context__)
    return False


def _describe_proxy(proxy_url: str) -> str:
    """Proxy URL without credentials, for logging."""
    parsed = urlparse(proxy_url)
    if parsed.port:
        return f"{parsed.scheme}://{parsed.hostname}:{parsed.port}"
    return f"{parsed.scheme}://{parsed.hostname}"


class SitemapFetcher:
    """
    3.0 SitemapFetcher Class
    Fetches sitemaps (optionally through a proxy) and parses them as they download.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, rng: Optional[random.Random] = None):
        """
        3.1 Initialize the SitemapFetcher.

        Args:
            config: Configuration overrides (see sitemap_stream.config.DEFAULT_CONFIG)
            rng: Random source for proxy selection. A fresh random.Random() is
                 used per request when omitted; pass a seeded one for repeatable picks.
        """
        self.config = resolve_config(config)
        self.parser = SitemapParser(self.config)
        self.rng = rng

        self.tls_handshake_timeout = self.config["tls_handshake_timeout"]
        self.proxy_request_timeout = self.config["proxy_request_timeout"]
        self.index_proxy_request_timeout = self.config["index_proxy_request_timeout"]
        self.direct_request_timeout = self.config["direct_request_timeout"]
        self.verify_tls = self.config["verify_tls"]

        if not self.verify_tls:
            logger.warning("TLS certificate verification is DISABLED for sitemap requests.")

        logger.info(
            f"SitemapFetcher initialized: "
            f"handshake_timeout={self.tls_handshake_timeout}s, "
            f"proxy_timeout={self.proxy_request_timeout}s, "
            f"index_proxy_timeout={self.index_proxy_request_timeout}s, "
            f"direct_timeout={self.direct_request_timeout}s, "
            f"verify_tls={self.verify_tls}"
        )

    def _create_session(self, proxy_url: Optional[str] = None) -> requests.Session:
        """
        3.2 Create a requests Session for a single attempt.

        Connection-level retries are switched off: the only retry is the
        proxy -> direct fallback in _fetch. Environment proxy settings are
        ignored so a "direct" session really is direct.

        Args:
            proxy_url: Route every request through this proxy, or None for direct

        Returns:
            Configured requests.Session object
        """
        session = requests.Session()
        session.trust_env = False
        session.verify = self.verify_tls

        adapter = HTTPAdapter(max_retries=Retry(total=0, read=False))
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        if proxy_url:
            session.proxies = {"http": proxy_url, "https": proxy_url}
        return session

    def _select_proxy(self, proxy_servers: Sequence[str]) -> str:
        """
        3.3 Pick a proxy uniformly at random and check that its URL is usable.

        Raises:
            InvalidProxyError: The chosen proxy URL cannot be parsed or has no host
        """
        rng = self.rng or random.Random()
        selected = rng.choice(list(proxy_servers))
        try:
            parsed = urlparse(selected)
            # .port raises ValueError for a non-numeric or out-of-range port
            parsed.port
        except ValueError as e:
            logger.error(f"Failed to parse proxy URL {selected!r}: {e}")
            raise InvalidProxyError(f"Failed to parse proxy URL: {e}") from e

        if parsed.scheme not in PROXY_SCHEMES or not parsed.hostname:
            logger.error(f"Unusable proxy URL {selected!r}: need {'/'.join(PROXY_SCHEMES)} scheme and a host")
            raise InvalidProxyError(f"Unusable proxy URL: {selected!r}")
        return selected

    def _send(self, session: requests.Session, sitemap_url: str, user_agent: str, request_timeout: float) -> requests.Response:
        """
        3.4 Issue the GET and classify failures.

        Raises:
            FetchTimeoutError: Connect, TLS handshake or response wait timed out
            FetchError: Any other network failure or an HTTP error status
        """
        try:
            response = session.get(
                sitemap_url,
                headers={"User-Agent": user_agent},
                timeout=(self.tls_handshake_timeout, request_timeout),
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            if _is_timeout_error(e):
                logger.error(f"Timeout fetching {sitemap_url}: {e}")
                raise FetchTimeoutError(f"Timeout fetching {sitemap_url}: {e}", url=sitemap_url) from e
            logger.error(f"Request error fetching {sitemap_url}: {e}")
            raise FetchError(f"Failed to fetch {sitemap_url}: {e}", url=sitemap_url) from e

        if response.status_code >= 400:
            response.close()
            logger.error(f"Failed to fetch {sitemap_url}: status={response.status_code}")
            raise FetchError(
                f"Failed to fetch {sitemap_url}: HTTP {response.status_code}",
                url=sitemap_url,
                status_code=response.status_code,
            )
        return response

    def _open(self, sitemap_url: str, user_agent: str, proxy_url: Optional[str], request_timeout: float) -> Tuple[requests.Session, requests.Response, DeadlineStream]:
        """
        3.5 One attempt: open a session, send the request, wrap the body.

        The session is closed here if the attempt fails; on success the caller owns it.
        """
        session = self._create_session(proxy_url)
        started = time.monotonic()
        try:
            response = self._send(session, sitemap_url, user_agent, request_timeout)
        except FetchError:
            session.close()
            raise

        logger.info(f"Successfully connected to {sitemap_url} (status={response.status_code})")
        response.raw.decode_content = True
        body = DeadlineStream(response.raw, deadline=started + request_timeout, timeout=request_timeout, url=sitemap_url)
        return session, response, body

    def _fetch(self, sitemap_url: str, proxy_servers: Optional[Sequence[str]], user_agent: str,
               parse_body: Callable, consumer: Callable, proxy_request_timeout: float) -> None:
        """
        3.6 Proxy attempt -> (timeout) -> direct attempt, then stream the body into parse_body.

        The fallback only covers the request round trip. A timeout while the
        body is being parsed is raised as-is: records may already have reached
        the consumer and a second download would deliver them again.
        """
        if not sitemap_url or not sitemap_url.startswith(("http://", "https://")):
            logger.error(f"Invalid sitemap URL: {sitemap_url}")
            raise FetchError(f"Invalid sitemap URL: {sitemap_url!r}", url=sitemap_url)

        if proxy_servers:
            proxy_url = self._select_proxy(proxy_servers)
            logger.info(f"Fetching {sitemap_url} via proxy {_describe_proxy(proxy_url)}")
            try:
                session, response, body = self._open(sitemap_url, user_agent, proxy_url, proxy_request_timeout)
            except FetchTimeoutError:
                logger.warning(f"Proxy request for {sitemap_url} timed out. Falling back to direct request.")
                session, response, body = self._open(sitemap_url, user_agent, None, self.direct_request_timeout)
        else:
            logger.info(f"Fetching {sitemap_url} directly")
            session, response, body = self._open(sitemap_url, user_agent, None, self.direct_request_timeout)

        try:
            parse_body(body, consumer)
        finally:
            response.close()
            session.close()

    def parse_from_site(self, sitemap_url: str, proxy_servers: Optional[Sequence[str]], user_agent: str, consumer: EntryConsumer) -> None:
        """
        3.7 Download a sitemap and call consumer for every PageEntry.

        Args:
            sitemap_url: URL of a <urlset> sitemap
            proxy_servers: Proxy URLs to pick from; empty/None means a direct request
            user_agent: Value of the User-Agent header
            consumer: Called once per entry, in document order; raising aborts the parse
        """
        self._fetch(sitemap_url, proxy_servers, user_agent, self.parser.parse, consumer, self.proxy_request_timeout)

    def parse_index_from_site(self, sitemap_url: str, proxy_servers: Optional[Sequence[str]], user_agent: str, consumer: IndexEntryConsumer) -> None:
        """
        3.8 Download a sitemap index and call consumer for every IndexEntry.

        Same flow as parse_from_site, but the proxied attempt gets
        index_proxy_request_timeout (60s by default) instead of 20s.
        """
        self._fetch(sitemap_url, proxy_servers, user_agent, self.parser.parse_index, consumer, self.index_proxy_request_timeout)


def parse_from_site(sitemap_url: str, proxy_servers: Optional[Sequence[str]], user_agent: str, consumer: EntryConsumer,
                    config: Optional[Dict[str, Any]] = None) -> None:
    SitemapFetcher(config).parse_from_site(sitemap_url, proxy_servers, user_agent, consumer)


def parse_index_from_site(sitemap_url: str, proxy_servers: Optional[Sequence[str]], user_agent: str, consumer: IndexEntryConsumer,
                          config: Optional[Dict[str, Any]] = None) -> None:
    SitemapFetcher(config).parse_index_from_site(sitemap_url, proxy_servers, user_agent, consumer)
