"""
Streaming sitemap parser.

Walks a sitemap byte stream token by token with lxml's iterparse instead of
building a document tree, so memory stays bounded by a single <url> (or
<sitemap>) subtree no matter how large the file is.

Usage:
    from sitemap_stream.sitemap_parser import parse_file

    def consumer(entry):
        print(entry.location, entry.priority)

    parse_file("sitemap.xml", consumer)

Raising from the consumer aborts the walk at once; the exception reaches the
caller unchanged.
"""

import itertools
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import pandas as pd
from lxml import etree

from sitemap_stream.config import (
    CHANGEFREQ_REJECT,
    PRIORITY_CLAMP,
    resolve_config,
)
from sitemap_stream.errors import MalformedSitemapError, SitemapValidationError
from sitemap_stream.models import (
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    Frequency,
    IndexEntry,
    PageEntry,
    priority_in_range,
)
from sitemap_stream.streams import PayloadLogStream, skip_if_blank

logger = logging.getLogger(__name__)

URL_TAG = "url"
SITEMAP_TAG = "sitemap"

Token = Tuple[str, Any]
TokenStream = Iterator[Token]
ElementHandler = Callable[[TokenStream, Any], None]
EntryConsumer = Callable[[PageEntry], None]
IndexEntryConsumer = Callable[[IndexEntry], None]


# =============================================================================
# TOKEN WALK
# =============================================================================

def _local_name(tag: str) -> str:
    """Tag name without its namespace ('{http://...}url' -> 'url')."""
    return etree.QName(tag).localname


def _release_element(element) -> None:
    """Drop a processed element and its already-processed siblings from the partial tree."""
    element.clear()
    parent = element.getparent()
    if parent is None:
        return
    while element.getprevious() is not None:
        del parent[0]


def _tokenize(stream) -> TokenStream:
    context = etree.iterparse(
        stream,
        events=("start", "end"),
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
        remove_comments=True,
        remove_pis=True,
    )
    try:
        for event, element in context:
            yield event, element
    except etree.XMLSyntaxError as e:
        logger.error(f"XML syntax error while parsing sitemap: {e}")
        raise MalformedSitemapError(f"Malformed sitemap XML: {e}", line=getattr(e, "lineno", None)) from e


def walk(stream, element_handler: ElementHandler, log_payload: bool = False) -> None:
    """
    Walk an XML byte stream and call element_handler for every start tag.

    The handler receives the shared token iterator, positioned right after
    the start tag, and the (still incomplete) lxml element. A handler that
    needs the element's content must consume tokens up to and including the
    element's own end token. Elements the handler leaves alone are discarded
    once they close at the top level.

    Args:
        stream: Binary file-like object (anything with read(size))
        element_handler: Called as element_handler(tokens, element)
        log_payload: Tee the raw bytes into the DEBUG log as they are read

    Raises:
        MalformedSitemapError: The stream is not well-formed XML
        Any exception raised by element_handler or by stream.read, unchanged
    """
    if log_payload:
        stream = PayloadLogStream(stream)

    stream = skip_if_blank(stream)
    if stream is None:
        logger.info("Sitemap stream is empty, nothing to walk.")
        return

    tokens = _tokenize(stream)
    for event, element in tokens:
        if event == "start":
            element_handler(tokens, element)
            continue
        parent = element.getparent()
        if parent is not None and parent.getparent() is None:
            _release_element(element)


# =============================================================================
# FIELD DECODING
# =============================================================================

def _decode_children(tokens: TokenStream, element) -> Dict[str, str]:
    """
    Consume tokens through the end of `element` and collect its direct children's text.

    Deeper descendants (image:image/image:loc and the like) are skipped. When a
    child name repeats, the last one wins. Never reads past the element's end tag.
    """
    fields: Dict[str, str] = {}
    depth = 0
    for event, node in tokens:
        if event == "start":
            depth += 1
            continue
        if depth == 0:
            break
        if depth == 1:
            fields[_local_name(node.tag)] = (node.text or "").strip()
        depth -= 1
    return fields


def parse_lastmod(text: Optional[str]) -> Optional[datetime]:
    """Parse a W3C datetime (<lastmod>) into an aware UTC datetime, or None if it can't be parsed."""
    if not text:
        return None
    # Fast path for the common full-date / full-datetime forms; pandas handles the rest
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        pass
    else:
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    timestamp = pd.to_datetime(text, format="ISO8601", errors="coerce", utc=True)
    if pd.isna(timestamp):
        logger.debug(f"Ignoring unparseable <lastmod> value: {text!r}")
        return None
    return timestamp.to_pydatetime()


# =============================================================================
# SITEMAP PARSER
# =============================================================================

class SitemapParser:
    """
    Materializes <url> and <sitemap> elements into PageEntry / IndexEntry records.

    Config keys used (see sitemap_stream.config):
        priority_policy: "reject" (default) or "clamp" for <priority> outside [0, 1]
        changefreq_policy: "ignore" (default) or "reject" for unknown <changefreq>
        log_payload: tee raw bytes into the DEBUG log
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = resolve_config(config)
        self.priority_policy = self.config["priority_policy"]
        self.changefreq_policy = self.config["changefreq_policy"]
        self.log_payload = self.config["log_payload"]

    # -------------------------------------------------------------------------
    # Field rules
    # -------------------------------------------------------------------------

    def _priority(self, text: Optional[str], record_index: Optional[int], line: Optional[int], location: str) -> float:
        if not text:
            return DEFAULT_PRIORITY
        try:
            value = float(text)
        except ValueError:
            raise SitemapValidationError(
                f"<priority> is not a number: {text!r}",
                field="priority", record_index=record_index, line=line, location=location,
            ) from None

        if priority_in_range(value):
            return value
        if self.priority_policy == PRIORITY_CLAMP and not math.isnan(value):
            clamped = min(max(value, MIN_PRIORITY), MAX_PRIORITY)
            logger.warning(f"Clamping <priority> {text!r} to {clamped} for {location}")
            return clamped
        raise SitemapValidationError(
            f"<priority> {text!r} is outside [{MIN_PRIORITY}, {MAX_PRIORITY}]",
            field="priority", record_index=record_index, line=line, location=location,
        )

    def _change_frequency(self, text: Optional[str], record_index: Optional[int], line: Optional[int], location: str) -> Optional[Frequency]:
        if not text:
            return None
        frequency = Frequency.from_text(text)
        if frequency is not None:
            return frequency
        if self.changefreq_policy == CHANGEFREQ_REJECT:
            raise SitemapValidationError(
                f"Unrecognized <changefreq> value {text!r}",
                field="changefreq", record_index=record_index, line=line, location=location,
            )
        logger.warning(f"Unrecognized <changefreq> {text!r} for {location}, leaving it unspecified")
        return None

    # -------------------------------------------------------------------------
    # Materializers
    # -------------------------------------------------------------------------

    def materialize_entry(self, tokens: TokenStream, element, consumer: EntryConsumer, record_index: Optional[int] = None) -> PageEntry:
        """Decode one <url> element, validate it and hand the PageEntry to the consumer."""
        line = element.sourceline
        try:
            fields = _decode_children(tokens, element)
            location = fields.get("loc")
            if not location:
                raise SitemapValidationError(
                    "Sitemap <url> entry has no <loc>",
                    field="loc", record_index=record_index, line=line,
                )
            entry = PageEntry(
                location=location,
                last_modified=parse_lastmod(fields.get("lastmod")),
                change_frequency=self._change_frequency(fields.get("changefreq"), record_index, line, location),
                priority=self._priority(fields.get("priority"), record_index, line, location),
            )
        finally:
            _release_element(element)

        consumer(entry)
        return entry

    def materialize_index_entry(self, tokens: TokenStream, element, consumer: IndexEntryConsumer, record_index: Optional[int] = None) -> IndexEntry:
        """Decode one <sitemap> element of a sitemap index and hand the IndexEntry to the consumer."""
        line = element.sourceline
        try:
            fields = _decode_children(tokens, element)
            location = fields.get("loc")
            if not location:
                raise SitemapValidationError(
                    "Sitemap index <sitemap> entry has no <loc>",
                    field="loc", record_index=record_index, line=line,
                )
            entry = IndexEntry(location=location, last_modified=parse_lastmod(fields.get("lastmod")))
        finally:
            _release_element(element)

        consumer(entry)
        return entry

    # -------------------------------------------------------------------------
    # Stream and file entry points
    # -------------------------------------------------------------------------

    def parse(self, stream, consumer: EntryConsumer) -> None:
        """Parse a <urlset> sitemap from a binary stream, calling consumer for each PageEntry."""
        ordinals = itertools.count(1)
        emitted = 0

        def handle(tokens, element):
            nonlocal emitted
            if _local_name(element.tag) == URL_TAG:
                self.materialize_entry(tokens, element, consumer, next(ordinals))
                emitted += 1

        walk(stream, handle, log_payload=self.log_payload)
        logger.info(f"Parsed {emitted} page entries from sitemap.")

    def parse_index(self, stream, consumer: IndexEntryConsumer) -> None:
        """Parse a <sitemapindex> document from a binary stream, calling consumer for each IndexEntry."""
        ordinals = itertools.count(1)
        emitted = 0

        def handle(tokens, element):
            nonlocal emitted
            if _local_name(element.tag) == SITEMAP_TAG:
                self.materialize_index_entry(tokens, element, consumer, next(ordinals))
                emitted += 1

        walk(stream, handle, log_payload=self.log_payload)
        logger.info(f"Parsed {emitted} sitemap entries from sitemap index.")

    def parse_file(self, sitemap_path: str, consumer: EntryConsumer) -> None:
        """Parse a sitemap file from disk. OSError from open/read propagates unchanged."""
        logger.info(f"Parsing sitemap file: {sitemap_path}")
        with open(sitemap_path, "rb") as sitemap_file:
            self.parse(sitemap_file, consumer)

    def parse_index_file(self, sitemap_path: str, consumer: IndexEntryConsumer) -> None:
        """Parse a sitemap index file from disk."""
        logger.info(f"Parsing sitemap index file: {sitemap_path}")
        with open(sitemap_path, "rb") as sitemap_file:
            self.parse_index(sitemap_file, consumer)


# Module-level shortcuts

def parse(stream, consumer: EntryConsumer, config: Optional[Dict[str, Any]] = None) -> None:
    SitemapParser(config).parse(stream, consumer)


def parse_index(stream, consumer: IndexEntryConsumer, config: Optional[Dict[str, Any]] = None) -> None:
    SitemapParser(config).parse_index(stream, consumer)


def parse_file(sitemap_path: str, consumer: EntryConsumer, config: Optional[Dict[str, Any]] = None) -> None:
    SitemapParser(config).parse_file(sitemap_path, consumer)


def parse_index_file(sitemap_path: str, consumer: IndexEntryConsumer, config: Optional[Dict[str, Any]] = None) -> None:
    SitemapParser(config).parse_index_file(sitemap_path, consumer)
