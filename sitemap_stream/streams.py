"""
File-like wrappers placed between a byte source and the XML tokenizer.

Each wrapper forwards every byte exactly once, so wrapping never forces a
second read of a non-seekable stream (an HTTP body, a pipe).
"""

import logging
import socket
import time
from typing import Optional

import urllib3

from sitemap_stream.errors import FetchError, FetchTimeoutError

logger = logging.getLogger(__name__)

# Bytes of each chunk shown in the payload log
DEFAULT_CHUNK_LOG_LIMIT = 2048


class PayloadLogStream:
    """
    Tee a byte stream into the DEBUG log while handing it on to the reader.

    Args:
        stream: Any object with read(size)
        log: Logger receiving the chunks (default: this module's logger)
        chunk_limit: Max bytes of each chunk written to the log
    """

    def __init__(self, stream, log: Optional[logging.Logger] = None, chunk_limit: int = DEFAULT_CHUNK_LOG_LIMIT):
        self._stream = stream
        self._log = log or logger
        self.chunk_limit = chunk_limit
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        if chunk:
            self.bytes_read += len(chunk)
            if self._log.isEnabledFor(logging.DEBUG):
                shown = chunk[:self.chunk_limit]
                if isinstance(shown, bytes):
                    shown = shown.decode("utf-8", errors="replace")
                suffix = "..." if len(chunk) > self.chunk_limit else ""
                self._log.debug(f"payload [{len(chunk)} bytes, {self.bytes_read} total]: {shown}{suffix}")
        return chunk


class DeadlineStream:
    """
    Raise FetchTimeoutError from read() once a monotonic deadline has passed.

    Socket read timeouts only bound the gap between two packets; this bounds
    the whole body transfer. urllib3 errors raised while reading the body are
    mapped to FetchTimeoutError / FetchError.
    """

    def __init__(self, stream, deadline: float, timeout: float, url: Optional[str] = None):
        self._stream = stream
        self.deadline = deadline
        self.timeout = timeout
        self.url = url

    def read(self, size: int = -1) -> bytes:
        if time.monotonic() > self.deadline:
            raise FetchTimeoutError(
                f"Reading {self.url or 'response body'} exceeded the {self.timeout}s request timeout",
                url=self.url,
            )
        try:
            return self._stream.read(size)
        except (urllib3.exceptions.ReadTimeoutError, socket.timeout) as e:
            logger.error(f"Timeout reading {self.url or 'response body'}: {e}")
            raise FetchTimeoutError(f"Timeout reading {self.url or 'response body'}: {e}", url=self.url) from e
        except urllib3.exceptions.HTTPError as e:
            # ProtocolError (connection reset), DecodeError, ...
            logger.error(f"Error reading {self.url or 'response body'}: {e}")
            raise FetchError(f"Error reading {self.url or 'response body'}: {e}", url=self.url) from e


class _PrefixedStream:
    """Replay an already-read prefix before continuing with the wrapped stream."""

    def __init__(self, prefix: bytes, stream):
        self._prefix = prefix
        self._stream = stream

    def read(self, size: int = -1) -> bytes:
        if not self._prefix:
            return self._stream.read(size)
        if size is None or size < 0:
            data, self._prefix = self._prefix + self._stream.read(), b""
            return data
        data, self._prefix = self._prefix[:size], self._prefix[size:]
        return data


def skip_if_blank(stream, probe_size: int = 4096):
    """
    Peek at the stream without losing bytes.

    Returns None if the stream holds nothing but whitespace, otherwise a
    stream that yields the full original content.
    """
    consumed = b""
    while True:
        chunk = stream.read(probe_size)
        if not chunk:
            return None
        consumed += chunk
        if chunk.strip():
            return _PrefixedStream(consumed, stream)
