"""
Link rewriting that keeps navigation inside the relay.

resolve_and_rewrite() is a pure function of (page origin, attribute value):
the value is resolved to an absolute URL and re-encoded as a relay-internal
URL (/proxy?url=<encoded>). rewrite_document() applies it to every src, href
and action attribute of a parsed document.

Resolution precedence:
1. value has a scheme            -> used as-is
2. protocol-relative (//host/p)  -> "https:" + value
3. root-relative (/path)         -> origin + value
4. anything else                 -> origin + "/" + value

Rule 4 ignores the current document's directory. Set
rewrite.resolve_relative_to_document to resolve against the page URL instead.
"""

import re
from urllib.parse import quote, urljoin, urlsplit

from bs4 import BeautifulSoup

from pagerelay.utils.config import RewriteConfig, get_settings
from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)

REWRITE_ATTRIBUTES = ("src", "href", "action")
DEFAULT_RELAY_PATH = "/proxy"

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")
# Characters JavaScript's encodeURIComponent leaves alone (beyond alphanumerics and "_.-~")
_COMPONENT_SAFE = "!*'()"


def origin_of(url: str) -> str:
    """scheme://host[:port] of an absolute URL."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def resolve_reference(origin: str, value: str, *, base_url: str | None = None) -> str:
    """Resolve an attribute value to an absolute URL.

    Args:
        origin: Page origin (scheme://host[:port]).
        value: Raw attribute value.
        base_url: Full page URL; when given, relative references resolve
            against the document path instead of the origin root.
    """
    if _SCHEME_RE.match(value):
        return value
    if value.startswith("//"):
        return "https:" + value
    if value.startswith("/"):
        return origin + value
    if base_url is not None:
        return urljoin(base_url, value)
    return origin + "/" + value


def relay_url(absolute_url: str, relay_path: str = DEFAULT_RELAY_PATH) -> str:
    """Encode an absolute URL as a relay-internal URL."""
    return f"{relay_path}?url={quote(absolute_url, safe=_COMPONENT_SAFE)}"


def is_relayed(value: str, relay_path: str = DEFAULT_RELAY_PATH) -> bool:
    """Whether value is already a relay-internal URL."""
    return value.startswith(f"{relay_path}?url=")


def resolve_and_rewrite(
    origin: str,
    value: str,
    *,
    relay_path: str = DEFAULT_RELAY_PATH,
    base_url: str | None = None,
) -> str:
    """Map one attribute value to its relay-internal URL."""
    return relay_url(resolve_reference(origin, value, base_url=base_url), relay_path)


def rewrite_document(
    html: str,
    page_url: str,
    *,
    relay_path: str = DEFAULT_RELAY_PATH,
    config: RewriteConfig | None = None,
) -> str:
    """Rewrite every src/href/action attribute of html to route through the relay.

    Empty values are left untouched, and so are values already in relay form
    when rewrite.skip_relayed is set (re-rewriting a page is then a no-op).

    Args:
        html: Serialized document as captured from the engine.
        page_url: URL the document was loaded from.
        relay_path: Path of the relay endpoint.
        config: Rewrite settings (defaults to settings.rewrite).

    Returns:
        Serialized rewritten document.
    """
    config = config or get_settings().rewrite
    origin = origin_of(page_url)
    base_url = page_url if config.resolve_relative_to_document else None

    soup = BeautifulSoup(html, "html.parser")
    rewritten = 0
    for element in soup.find_all(True):
        for attr in REWRITE_ATTRIBUTES:
            raw = element.get(attr)
            if not isinstance(raw, str):
                continue
            value = raw.strip()
            if not value:
                continue
            if config.skip_relayed and is_relayed(value, relay_path):
                continue
            element[attr] = resolve_and_rewrite(
                origin, value, relay_path=relay_path, base_url=base_url
            )
            rewritten += 1

    logger.debug("Rewrote document links", url=page_url[:120], rewritten=rewritten)
    return str(soup)
