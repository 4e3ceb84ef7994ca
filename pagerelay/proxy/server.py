"""
pagerelay HTTP server.

Routes:
  /proxy?url=&get=       -> binary passthrough or rendered + rewritten HTML
  /screenshot?url=...    -> PNG of the rendered page
  /pdf?url=              -> A4 PDF of the rendered page
  /headers?url=          -> JSON headers of the page's own response
  anything else          -> health document

Every target is validated before any network or engine work (400 for a
missing/malformed url, 403 for local hosts). Other failures answer 500 with
the error message as text/plain.

Security:
- No authentication (deploy behind something that provides it)
- Loopback targets are refused; private network ranges are not
"""

import time
import uuid

import httpx
from aiohttp import web

from pagerelay.engine.impersonation import capture_headers, reusable_headers
from pagerelay.engine.pool import EnginePool
from pagerelay.proxy.health import build_health_document
from pagerelay.relay.artifacts import capture_pdf, capture_response_headers, capture_screenshot
from pagerelay.relay.classifier import ContentClassifier, is_html
from pagerelay.relay.passthrough import PassthroughFetcher
from pagerelay.relay.render import render_and_rewrite
from pagerelay.relay.target import RelayMode, parse_bool, parse_target
from pagerelay.relay.upstream import create_upstream_client
from pagerelay.relay.viewport import resolve_viewport
from pagerelay.utils.config import Settings, get_settings
from pagerelay.utils.errors import RelayError, RelayErrorCode
from pagerelay.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

SETTINGS_KEY = web.AppKey("settings", Settings)
POOL_KEY = web.AppKey("pool", EnginePool)
CLIENT_KEY = web.AppKey("upstream_client", httpx.AsyncClient)
CLASSIFIER_KEY = web.AppKey("classifier", ContentClassifier)
FETCHER_KEY = web.AppKey("fetcher", PassthroughFetcher)

# Set once a streamed body has started; errors after that cannot become a 500
STREAM_STARTED = web.RequestKey("stream_started", bool)


def _text_response(message: str, status: int) -> web.Response:
    return web.Response(text=message, status=status, content_type="text/plain")


@web.middleware
async def request_logging_middleware(
    request: web.Request,
    handler,
) -> web.StreamResponse:
    """Bind a request_id for the request and log method, path, status and latency."""
    started = time.perf_counter()
    status = 500
    with LogContext(request_id=uuid.uuid4().hex[:12]):
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as e:
            status = e.status
            raise
        finally:
            logger.info(
                "Request handled",
                method=request.method,
                path=request.path,
                status=status,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            )


@web.middleware
async def relay_error_middleware(
    request: web.Request,
    handler,
) -> web.StreamResponse:
    """Map RelayError to its status and anything unexpected to 500, message as body."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except RelayError as e:
        if request.get(STREAM_STARTED):
            logger.error("Relay failed mid-stream", path=request.path, **e.to_dict())
            raise
        if e.http_status < 500:
            logger.info("Rejected target", path=request.path, **e.to_dict())
        else:
            logger.error("Relay request failed", path=request.path, **e.to_dict())
        return _text_response(e.message, e.http_status)
    except Exception as e:
        if request.get(STREAM_STARTED):
            logger.exception("Unexpected error mid-stream", path=request.path)
            raise
        error = RelayError(RelayErrorCode.INTERNAL_ERROR, str(e) or type(e).__name__)
        logger.exception("Unexpected error", path=request.path, **error.to_dict())
        return _text_response(error.message, error.http_status)


async def _relay_passthrough(request: web.Request, url: str, mode: RelayMode) -> web.StreamResponse:
    app = request.app
    cors = app[SETTINGS_KEY].server.cors_allow_origin
    headers = reusable_headers(await capture_headers(app[POOL_KEY], url))
    fetcher = app[FETCHER_KEY]

    if mode is RelayMode.RAW_GET:
        upstream = await fetcher.fetch(url, headers)
        return web.Response(
            body=upstream.body,
            status=upstream.status,
            headers=upstream.relay_headers(cors),
        )

    async with fetcher.stream(url, headers) as upstream:
        response = web.StreamResponse(status=upstream.status, headers=upstream.relay_headers(cors))
        request[STREAM_STARTED] = True
        await response.prepare(request)
        async for chunk in upstream.iter_bytes():
            await response.write(chunk)
        await response.write_eof()
        return response


async def handle_proxy(request: web.Request) -> web.StreamResponse:
    """Relay a target: binaries pass through, HTML is rendered and rewritten."""
    settings = request.app[SETTINGS_KEY]
    raw = parse_bool(request.query.get("get"))
    target = parse_target(
        request.query.get("url"),
        mode=RelayMode.RAW_GET if raw else RelayMode.DEFAULT,
    )

    content_type = await request.app[CLASSIFIER_KEY].classify(target.url)
    if not is_html(content_type):
        return await _relay_passthrough(request, target.url, target.mode)

    html = await render_and_rewrite(
        request.app[POOL_KEY],
        target.url,
        raw=target.mode is RelayMode.RAW_GET,
        relay_path=settings.server.relay_path,
        config=settings.rewrite,
    )
    return web.Response(
        text=html,
        content_type="text/html",
        headers={"Access-Control-Allow-Origin": settings.server.cors_allow_origin},
    )


async def handle_screenshot(request: web.Request) -> web.Response:
    """PNG screenshot at the requested viewport."""
    query = request.query
    viewport = resolve_viewport(
        width=query.get("width"),
        height=query.get("height"),
        preset=query.get("preset"),
        size=query.get("size"),
        config=request.app[SETTINGS_KEY].screenshot,
    )
    target = parse_target(
        query.get("url"),
        viewport=viewport,
        full_page=parse_bool(query.get("fullpage")),
    )
    image = await capture_screenshot(
        request.app[POOL_KEY],
        target.url,
        viewport,
        full_page=target.full_page,
    )
    return web.Response(body=image, content_type="image/png")


async def handle_pdf(request: web.Request) -> web.Response:
    """A4 PDF of the rendered page."""
    target = parse_target(request.query.get("url"))
    document = await capture_pdf(request.app[POOL_KEY], target.url)
    return web.Response(body=document, content_type="application/pdf")


async def handle_headers(request: web.Request) -> web.Response:
    """Response headers of the page itself (exact URL match)."""
    target = parse_target(request.query.get("url"))
    headers = await capture_response_headers(request.app[POOL_KEY], target.url)
    return web.json_response(headers)


async def handle_health(request: web.Request) -> web.Response:
    """Health document (served for any unmatched method/path)."""
    return web.json_response(build_health_document(request.app[POOL_KEY]))


async def _start_engine(app: web.Application) -> None:
    if app[SETTINGS_KEY].engine.eager_start:
        await app[POOL_KEY].start()


async def _close_resources(app: web.Application) -> None:
    await app[CLIENT_KEY].aclose()
    await app[POOL_KEY].shutdown()


def create_app(
    settings: Settings | None = None,
    *,
    pool: EnginePool | None = None,
    client: httpx.AsyncClient | None = None,
) -> web.Application:
    """Create aiohttp application.

    Args:
        settings: Settings (defaults to get_settings()).
        pool: Engine pool; created from settings.engine when omitted.
        client: Upstream httpx client; created from settings.upstream when omitted.

    The app owns both on cleanup: the client is closed and the pool shut down.
    """
    settings = settings or get_settings()
    pool = pool or EnginePool(settings.engine)
    client = client or create_upstream_client(settings.upstream)

    app = web.Application(middlewares=[request_logging_middleware, relay_error_middleware])
    app[SETTINGS_KEY] = settings
    app[POOL_KEY] = pool
    app[CLIENT_KEY] = client
    app[CLASSIFIER_KEY] = ContentClassifier(client)
    app[FETCHER_KEY] = PassthroughFetcher(client, chunk_size=settings.upstream.chunk_size)

    app.on_startup.append(_start_engine)
    app.on_cleanup.append(_close_resources)

    # Routes
    app.router.add_get(settings.server.relay_path, handle_proxy)
    app.router.add_get("/screenshot", handle_screenshot)
    app.router.add_get("/pdf", handle_pdf)
    app.router.add_get("/headers", handle_headers)

    # Catch-all health document, registered last
    app.router.add_route("*", "/{tail:.*}", handle_health)

    return app
