"""
HTML body rewriting.

Only responses whose Content-Type contains ``text/html`` are rewritten; they
are read fully, run through the policy's rewrite rules and sent back as a
new body. Everything else is streamed to the caller untouched, byte for
byte, without buffering.
"""

import logging
from importlib.util import find_spec
from typing import AsyncIterator, Iterable, List, Tuple

import httpx
from fastapi.responses import Response, StreamingResponse

from cdn_proxy.policy.config import CUSTOM_DOMAIN_TOKEN, UPSTREAM_TOKEN, RewriteRule
from cdn_proxy.proxy.errors import MalformedUpstreamResponse

logger = logging.getLogger("uvicorn.error")

# Describe the upstream body as it was on the wire; stale once it is rewritten
BODY_BOUND_HEADERS = ("content-length", "content-encoding")

# Codings httpx can undo; br and zstd depend on the optional decoder packages
DECODABLE_CODINGS = {"identity", "gzip", "deflate"}
if find_spec("brotli") or find_spec("brotlicffi"):
    DECODABLE_CODINGS.add("br")
if find_spec("zstandard"):
    DECODABLE_CODINGS.add("zstd")

# Responses that never carry a body; their headers describe the GET body
BODILESS_STATUS_CODES = {204, 304}


def is_rewritable(content_type: str) -> bool:
    return bool(content_type) and "text/html" in content_type


def _resolve_tokens(value: str, upstream_host: str, custom_domain: str) -> str:
    return value.replace(UPSTREAM_TOKEN, upstream_host).replace(
        CUSTOM_DOMAIN_TOKEN, custom_domain
    )


def resolve_rules(
    rules: Iterable[RewriteRule], upstream_host: str, custom_domain: str
) -> List[Tuple[str, str]]:
    """
    Substitute ``$upstream`` and ``$custom_domain`` in every rule.

    The result keeps declaration order. Rules whose pattern resolves to an
    empty string are dropped, as they would match between every character.
    """
    resolved = []
    for rule in rules:
        pattern = _resolve_tokens(rule.pattern, upstream_host, custom_domain)
        replacement = _resolve_tokens(rule.replacement, upstream_host, custom_domain)
        if not pattern:
            logger.warning(f"[Rewrite] Skipping rule {rule.pattern!r}: empty pattern")
            continue
        resolved.append((pattern, replacement))
    return resolved


def apply_rules(text: str, resolved: Iterable[Tuple[str, str]]) -> str:
    """
    Replace every literal occurrence of each pattern, in order.

    Each rule runs on the output of the previous one, so text produced by an
    earlier replacement can be matched again by a later rule.
    """
    for pattern, replacement in resolved:
        text = text.replace(pattern, replacement)
    return text


async def read_text(upstream: httpx.Response) -> Tuple[str, str]:
    """Buffer the whole upstream body and decode it. Returns ``(text, encoding)``."""
    codings = [
        coding.strip().lower()
        for coding in upstream.headers.get("content-encoding", "").split(",")
        if coding.strip()
    ]
    unsupported = [coding for coding in codings if coding not in DECODABLE_CODINGS]
    if unsupported:
        raise MalformedUpstreamResponse(
            f"Cannot decode Content-Encoding {', '.join(unsupported)} for rewriting"
        )
    try:
        await upstream.aread()
        encoding = upstream.encoding or "utf-8"
        return upstream.content.decode(encoding, errors="replace"), encoding
    except (httpx.HTTPError, LookupError) as e:
        raise MalformedUpstreamResponse(
            f"Could not read upstream body: {type(e).__name__}: {e}"
        ) from e


async def _aclose(upstream: httpx.Response, client: httpx.AsyncClient) -> None:
    try:
        await upstream.aclose()
    finally:
        await client.aclose()


async def stream_upstream(
    upstream: httpx.Response, client: httpx.AsyncClient
) -> AsyncIterator[bytes]:
    """Relay the raw upstream bytes; Content-Encoding stays as the upstream sent it."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await _aclose(upstream, client)


async def maybe_rewrite(
    upstream: httpx.Response,
    client: httpx.AsyncClient,
    headers: httpx.Headers,
    rules: Iterable[RewriteRule],
    upstream_host: str,
    custom_domain: str,
) -> Response:
    """
    Build the outbound response for an upstream exchange.

    ``headers`` are the already sanitized upstream headers. HTML bodies are
    decoded (including any Content-Encoding), rewritten and re-encoded in
    the upstream charset; Content-Length is then recomputed. Other bodies,
    and responses without a body (HEAD, 204, 304), are streamed through
    unchanged with their headers as sent. Upstream response and client are
    closed once the body has been consumed.
    """
    content_type = headers.get("content-type", "")
    bodiless = (
        upstream.request.method == "HEAD"
        or upstream.status_code in BODILESS_STATUS_CODES
    )

    if bodiless or not is_rewritable(content_type):
        response = StreamingResponse(
            stream_upstream(upstream, client), status_code=upstream.status_code
        )
        for name, value in headers.multi_items():
            response.headers.append(name, value)
        return response

    try:
        text, encoding = await read_text(upstream)
    finally:
        await _aclose(upstream, client)

    resolved = resolve_rules(rules, upstream_host, custom_domain)
    rewritten = apply_rules(text, resolved)
    try:
        body = rewritten.encode(encoding, errors="xmlcharrefreplace")
    except LookupError as e:
        raise MalformedUpstreamResponse(f"Unknown body encoding {encoding}") from e

    logger.debug(
        f"[Rewrite] Applied {len(resolved)} rules to {len(text)} chars of HTML"
    )

    response = Response(content=body, status_code=upstream.status_code)
    for name, value in headers.multi_items():
        if name.lower() in BODY_BOUND_HEADERS:
            continue
        response.headers.append(name, value)
    return response
