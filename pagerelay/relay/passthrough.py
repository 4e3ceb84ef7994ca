"""
Passthrough fetching for non-HTML targets.

The resource is re-requested with the impersonated browser headers and relayed
to the caller either fully buffered (get=true) or streamed chunk by chunk
(large media). Streamed bodies are relayed as raw wire bytes together with the
origin's Content-Encoding, so Content-Length and body always agree.
"""

import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import httpx

from pagerelay.relay.upstream import describe_transport_error
from pagerelay.utils.errors import UpstreamFetchError
from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass
class PassthroughResponse:
    """
    Upstream response to relay.

    Attributes:
        status: Upstream HTTP status (always 2xx).
        content_type: Upstream Content-Type or application/octet-stream.
        content_length: Body length in bytes, only when known.
        content_encoding: Encoding of a streamed body (buffered bodies are decoded).
        body: Materialized body in buffered mode, None when streamed.
    """

    status: int
    content_type: str
    content_length: str | None = None
    content_encoding: str | None = None
    body: bytes | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    _response: httpx.Response | None = field(default=None, repr=False)

    @property
    def streamed(self) -> bool:
        return self._response is not None

    def relay_headers(self, cors_allow_origin: str = "*") -> dict[str, str]:
        """Headers for the relayed response."""
        headers = {
            "Content-Type": self.content_type,
            "Access-Control-Allow-Origin": cors_allow_origin,
        }
        if self.content_length is not None:
            headers["Content-Length"] = self.content_length
        if self.content_encoding is not None:
            headers["Content-Encoding"] = self.content_encoding
        return headers

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the body; one chunk when buffered, wire chunks when streamed."""
        if self._response is None:
            if self.body:
                yield self.body
            return

        url = str(self._response.request.url)
        try:
            async for chunk in self._response.aiter_raw(self.chunk_size):
                yield chunk
        except httpx.HTTPError as e:
            raise UpstreamFetchError(url, describe_transport_error(e)) from e


def _raise_for_status(url: str, response: httpx.Response) -> None:
    if not response.is_success:
        raise UpstreamFetchError(
            url,
            f"Request failed with status code {response.status_code}",
            status=response.status_code,
        )


def _without(headers: dict[str, str], *names: str) -> dict[str, str]:
    drop = {n.lower() for n in names}
    return {k: v for k, v in headers.items() if k.lower() not in drop}


class PassthroughFetcher:
    """Re-requests resources with impersonated headers over the upstream client."""

    def __init__(self, client: httpx.AsyncClient, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._client = client
        self._chunk_size = chunk_size

    async def fetch(self, url: str, headers: dict[str, str]) -> PassthroughResponse:
        """Fetch url fully into memory.

        The browser's Accept-Encoding is dropped so the body only uses
        encodings the client can decode.

        Raises:
            UpstreamFetchError: Transport failure or non-2xx status.
        """
        try:
            response = await self._client.get(url, headers=_without(headers, "accept-encoding"))
        except httpx.HTTPError as e:
            raise UpstreamFetchError(url, describe_transport_error(e)) from e

        _raise_for_status(url, response)
        body = response.content
        logger.debug("Buffered passthrough", url=url[:120], status=response.status_code, size=len(body))
        return PassthroughResponse(
            status=response.status_code,
            content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            content_length=str(len(body)),
            body=body,
        )

    @contextlib.asynccontextmanager
    async def stream(self, url: str, headers: dict[str, str]) -> AsyncIterator[PassthroughResponse]:
        """Open url for incremental relaying; the upstream response closes on exit.

        Raises:
            UpstreamFetchError: Transport failure or non-2xx status.
        """
        request = self._client.build_request("GET", url, headers=headers)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamFetchError(url, describe_transport_error(e)) from e

        try:
            _raise_for_status(url, response)
            logger.debug(
                "Streaming passthrough",
                url=url[:120],
                status=response.status_code,
                content_length=response.headers.get("content-length"),
            )
            yield PassthroughResponse(
                status=response.status_code,
                content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
                content_length=response.headers.get("content-length"),
                content_encoding=response.headers.get("content-encoding"),
                chunk_size=self._chunk_size,
                _response=response,
            )
        finally:
            await response.aclose()
