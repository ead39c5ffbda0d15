import logging
from typing import Optional
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse, Response
from opentelemetry import trace

from mirrorcast.proxy.headers import filter_headers
from mirrorcast.proxy.html_rewriter import rewrite_html
from mirrorcast.utils.exception_logging import format_exception_message
from mirrorcast.utils.traced_requests import traced_request
from mirrorcast.vars import (
    PROXY_DEFAULT_USER_AGENT,
    PROXY_FOLLOW_REDIRECTS,
    PROXY_TIMEOUT,
)

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

DEFAULT_CONTENT_TYPE = "text/html; charset=utf-8"

# Recomputed by the server for the body we actually send, or only meaningful
# on the upstream hop (RFC 2616)
SERVER_MANAGED_HEADERS = {
    "content-length",
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "upgrade",
}


class InvalidTargetURL(ValueError):
    """The ``url`` parameter is not an absolute URL with a scheme and a host."""


def parse_target_url(raw: str) -> str:
    """Validate the requested target and return it ready for the outbound fetch."""
    target = raw.strip()
    try:
        parts = urlsplit(target)
        # Raises ValueError for a non-numeric or out-of-range port
        parts.port
    except ValueError as e:
        raise InvalidTargetURL(str(e)) from e

    if not parts.scheme:
        raise InvalidTargetURL(f"'{target}' has no scheme")
    if not parts.hostname:
        raise InvalidTargetURL(f"'{target}' has no host")
    return target


def outbound_headers(request: Request) -> dict:
    return {
        "User-Agent": request.headers.get("user-agent") or PROXY_DEFAULT_USER_AGENT,
    }


def with_utf8_charset(content_type: str) -> str:
    """Replace any charset parameter with utf-8, matching re-encoded text bodies."""
    params = [p.strip() for p in content_type.split(";")]
    kept = [p for p in params[1:] if p and not p.lower().startswith("charset=")]
    return "; ".join([params[0], *kept, "charset=utf-8"])


async def fetch_upstream(target_url: str, headers: dict) -> httpx.Response:
    """
    GET the target with a fresh client.

    httpx advertises the encodings it can decode and ``get`` reads the whole
    body, so ``response.content`` is always the complete decoded payload.
    """
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(PROXY_TIMEOUT),
        follow_redirects=PROXY_FOLLOW_REDIRECTS,
    ) as client:
        return await client.get(target_url, headers=headers)


def build_proxy_response(upstream: httpx.Response, target_url: str) -> Response:
    """
    Re-serve an upstream response without its framing restrictions.

    HTML bodies get a ``<base>`` tag pointing at the target's origin and are
    re-encoded as UTF-8; everything else is passed through byte for byte.
    """
    content_type = upstream.headers.get("content-type") or DEFAULT_CONTENT_TYPE

    if "text/html" in content_type.lower():
        body = rewrite_html(upstream.text, target_url).encode("utf-8")
        content_type = with_utf8_charset(content_type)
    else:
        body = upstream.content

    response = Response(content=body, status_code=200)
    for name, value in filter_headers(upstream.headers):
        if name.lower() in SERVER_MANAGED_HEADERS:
            continue
        response.headers.append(name, value)

    # Set last so an upstream value can never shadow it
    response.headers["content-type"] = content_type
    return response


@router.get("/proxy")
async def proxy_page(
    request: Request,
    url: Optional[str] = Query(
        None, description="Absolute URL of the page or resource to fetch"
    ),
):
    """Fetch ``url`` on behalf of the caller so it can be shown in an iframe."""
    if not url:
        return PlainTextResponse("Missing 'url' query parameter.", status_code=400)

    try:
        target_url = parse_target_url(url)
    except InvalidTargetURL as e:
        logger.debug(f"[Proxy] Rejected target {url!r}: {e}")
        return PlainTextResponse(
            f"Invalid 'url' query parameter: {e}", status_code=400
        )

    with traced_request(
        tracer,
        operation="proxy_request",
        start_message=f"[Proxy] GET {target_url}",
        extra_attrs={"proxy.target_url": target_url},
    ) as span:
        try:
            upstream = await fetch_upstream(target_url, outbound_headers(request))
        except httpx.TimeoutException as e:
            logger.error(f"[Proxy] Timeout fetching {target_url}: {e!r}")
            span.set_attribute("proxy.error", "timeout")
            return PlainTextResponse(
                f"Proxy fetch failed: {format_exception_message(e)}",
                status_code=504,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"[Proxy] Failed to fetch {target_url}: {e!r}")
            span.set_attribute("proxy.error", type(e).__name__)
            return PlainTextResponse(
                f"Proxy fetch failed: {format_exception_message(e)}",
                status_code=502,
            )
        except Exception as e:
            logger.error(f"[Proxy] Proxy error for {target_url}: {e}", exc_info=True)
            span.set_attribute("proxy.error", str(e))
            return PlainTextResponse(
                f"Proxy fetch failed: {format_exception_message(e)}",
                status_code=502,
            )

        span.set_attribute("proxy.status_code", upstream.status_code)
        response = build_proxy_response(upstream, target_url)
        span.set_attribute("proxy.content_type", response.headers["content-type"])
        logger.debug(
            f"[Proxy] {target_url} -> upstream {upstream.status_code}, "
            f"{response.headers['content-type']}, {len(response.body)} bytes"
        )
        return response
