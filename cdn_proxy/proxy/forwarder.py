import logging
from typing import AsyncIterable, Optional, Union

import httpx
from fastapi import Request

from cdn_proxy.proxy.errors import UpstreamFetchError
from cdn_proxy.vars import UPSTREAM_TIMEOUT

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def build_client() -> httpx.AsyncClient:
    """Client for a single upstream exchange; the caller closes it."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(UPSTREAM_TIMEOUT),
        follow_redirects=False,
    )


def get_upstream_url(request: Request, upstream_host: str) -> str:
    """The inbound URL with its host replaced; scheme, path and query are kept."""
    return str(request.url.replace(netloc=upstream_host))


def prepare_headers(request: Request, upstream_host: str, upstream_url: str) -> httpx.Headers:
    """
    Copy the inbound headers for the upstream call.

    Repeated headers are kept. Host points at the upstream and Referer at
    the rewritten URL.
    """
    headers = httpx.Headers(
        [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        ]
    )
    headers["host"] = upstream_host
    headers["referer"] = upstream_url
    return headers


async def forward(
    client: httpx.AsyncClient,
    request: Request,
    upstream_host: str,
    body: Optional[Union[bytes, AsyncIterable[bytes]]] = None,
) -> httpx.Response:
    """
    Issue the single upstream request for ``request``.

    ``body`` may be the inbound request stream, which is relayed as it
    arrives without buffering. The response is returned unread (streaming
    mode) so that its body can either be passed through or buffered for
    rewriting. The caller owns closing it. Transport failures are raised
    as ``UpstreamFetchError``; there is no retry.
    """
    upstream_url = get_upstream_url(request, upstream_host)
    headers = prepare_headers(request, upstream_host, upstream_url)

    logger.debug(f"Proxying {request.method} {request.url.path} -> {upstream_url}")

    try:
        upstream_request = client.build_request(
            method=request.method,
            url=upstream_url,
            headers=headers,
            content=body or None,
        )
        return await client.send(upstream_request, stream=True)
    except httpx.TimeoutException as e:
        raise UpstreamFetchError(f"Timeout calling {upstream_url}: {e}") from e
    except httpx.HTTPError as e:
        raise UpstreamFetchError(
            f"Failed to fetch {upstream_url}: {type(e).__name__}: {e}"
        ) from e
