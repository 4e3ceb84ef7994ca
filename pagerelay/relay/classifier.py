"""
Content classification by preflight HEAD.

The declared content type only decides which path a request takes (binary
passthrough vs render/rewrite). It is a heuristic: the real content is only
known once fetched or rendered, so a wrong answer degrades gracefully.
"""

import httpx

from pagerelay.relay.upstream import describe_transport_error
from pagerelay.utils.errors import UpstreamFetchError
from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)

# Origins that refuse HEAD outright; treat as "type unknown" rather than failing
HEAD_UNSUPPORTED_STATUSES = frozenset({405, 501})


def is_html(content_type: str) -> bool:
    """Whether a Content-Type value declares an HTML document."""
    return "text/html" in content_type.lower()


class ContentClassifier:
    """Resolves the declared Content-Type of a target with a header-only probe."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def classify(self, url: str) -> str:
        """Probe url with HEAD and return its Content-Type ("" when absent).

        Raises:
            UpstreamFetchError: Transport failure or a non-2xx answer other
                than 405/501.
        """
        try:
            response = await self._client.head(url)
        except httpx.HTTPError as e:
            raise UpstreamFetchError(url, describe_transport_error(e)) from e

        if response.status_code in HEAD_UNSUPPORTED_STATUSES:
            logger.debug("HEAD not supported by origin", url=url[:120], status=response.status_code)
            return ""

        if not response.is_success:
            raise UpstreamFetchError(
                url,
                f"Request failed with status code {response.status_code}",
                status=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        logger.debug("Classified target", url=url[:120], content_type=content_type)
        return content_type
