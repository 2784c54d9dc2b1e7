"""
Response body normalization.

Bodies are sniffed for the gzip magic number on first read and decompressed
on the fly. Detection does not depend on the Content-Encoding header, since
proxies between us and Prometheus may strip or rewrite it. gzip-labelled
bodies are read raw so that corruption and truncation are reported by our own
decoder instead of being absorbed by httpx.
"""

import logging
import zlib
from typing import AsyncIterator, Optional

import httpx

from prom_bridge.errors import DecodeError
from prom_bridge.models import NormalizedResponse

logger = logging.getLogger("uvicorn.error")

GZIP_MAGIC = b"\x1f\x8b"
# zlib window bits selecting the gzip container format
GZIP_WBITS = 16 + zlib.MAX_WBITS
# Content codings whose raw bytes are handed to the gzip sniffer
RAW_ENCODINGS = {"", "identity", "gzip", "x-gzip"}


def is_gzip(prefix: bytes) -> bool:
    """True if prefix starts with the gzip magic number."""
    return prefix[: len(GZIP_MAGIC)] == GZIP_MAGIC


class GzipDecoder:
    """Incremental gzip decoder that accepts concatenated members."""

    def __init__(self):
        self._decompressor = zlib.decompressobj(GZIP_WBITS)

    def decode(self, data: bytes) -> bytes:
        out = []
        while data:
            try:
                out.append(self._decompressor.decompress(data))
            except zlib.error as e:
                raise DecodeError(f"corrupt gzip stream: {e}") from e
            if not self._decompressor.eof:
                break
            data = self._decompressor.unused_data
            if data:
                self._decompressor = zlib.decompressobj(GZIP_WBITS)
        return b"".join(out)

    def flush(self) -> bytes:
        if not self._decompressor.eof:
            raise DecodeError("gzip stream ended unexpectedly")
        return b""


class ResponseBody:
    """
    Lazily normalized body of an upstream response.

    Nothing is read at construction. The first read sniffs the leading bytes
    and either decompresses the stream or passes it through untouched, so a
    corrupt gzip payload surfaces as a DecodeError from the read itself.
    The body can be consumed once and must be closed by its owner.
    """

    def __init__(self, response: httpx.Response, decompress: bool = True):
        self._response = response
        self._decompress = decompress
        self._consumed = False
        self._closed = False
        self.is_gzip: Optional[bool] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        if self._closed:
            raise httpx.StreamClosed()
        if self._consumed:
            raise httpx.StreamConsumed()
        self._consumed = True

        try:
            async for chunk in self._normalized_chunks():
                yield chunk
        except httpx.DecodingError as e:
            logger.warning(f"[ResponseBody] Failed to decode response body: {e}")
            raise DecodeError(f"corrupt response body: {e}") from e
        except DecodeError as e:
            logger.warning(f"[ResponseBody] Failed to decompress response body: {e}")
            raise

    def _chunks(self) -> AsyncIterator[bytes]:
        """
        Pick the byte source for the body.

        gzip and unencoded payloads are read raw so the gzip decoder below sees
        the bytes as sent; other content codings are left to httpx.
        """
        response = self._response
        encoding = response.headers.get("content-encoding", "").strip().lower()
        if not self._decompress or encoding not in RAW_ENCODINGS:
            return response.aiter_bytes()
        if response.is_stream_consumed and isinstance(response.stream, httpx.ByteStream):
            # Body was loaded when the response was built; the stream still holds it as sent
            return response.stream.__aiter__()
        return response.aiter_raw()

    async def _normalized_chunks(self) -> AsyncIterator[bytes]:
        chunks = self._chunks()
        if not self._decompress:
            async for chunk in chunks:
                yield chunk
            return

        prefix = b""
        async for chunk in chunks:
            prefix += chunk
            if len(prefix) >= len(GZIP_MAGIC):
                break

        self.is_gzip = is_gzip(prefix)
        if not self.is_gzip:
            if prefix:
                yield prefix
            async for chunk in chunks:
                yield chunk
            return

        decoder = GzipDecoder()
        data = decoder.decode(prefix)
        if data:
            yield data
        async for chunk in chunks:
            data = decoder.decode(chunk)
            if data:
                yield data
        decoder.flush()

    async def aread(self) -> bytes:
        return b"".join([chunk async for chunk in self.aiter_bytes()])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


def normalize_response(
    response: httpx.Response, decompress: bool = True
) -> NormalizedResponse:
    """Wrap response so its body reads as plain bytes; status and headers are untouched."""
    return NormalizedResponse(
        status_code=response.status_code,
        headers=response.headers,
        body=ResponseBody(response, decompress=decompress),
    )
