import logging

import httpx
from fastapi import Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from opentelemetry import trace

from cdn_proxy.policy.config import ProxyPolicy
from cdn_proxy.policy.evaluator import Deny, Redirect, evaluate
from cdn_proxy.proxy.errors import ProxyError
from cdn_proxy.proxy.forwarder import HOP_BY_HOP_HEADERS, build_client, forward
from cdn_proxy.proxy.rewriter import maybe_rewrite
from cdn_proxy.proxy.sanitizer import sanitize_headers
from cdn_proxy.utils.exception_logging import log_exception_with_details
from cdn_proxy.utils.traced_requests import traced_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def _end_to_end_headers(headers: httpx.Headers) -> httpx.Headers:
    return httpx.Headers(
        [
            (name, value)
            for name, value in headers.multi_items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        ]
    )


def _has_body(request: Request) -> bool:
    length = request.headers.get("content-length")
    if length is not None:
        return length.strip() != "0"
    return "transfer-encoding" in request.headers


async def fetch_and_apply(request: Request, policy: ProxyPolicy) -> Response:
    """
    Run one inbound request through the proxy.

    Policy evaluation may answer directly with a 405/403 or a redirect to
    https. Otherwise the request is forwarded once to the selected upstream,
    the response headers are sanitized and HTML bodies are rewritten. Any
    failure after the policy checks becomes a plain 500; the cause is only
    logged.
    """
    with traced_request(
        tracer,
        operation="proxy_request",
        method=request.method,
        path=request.url.path,
        start_message=f"[Proxy] {request.method} {request.url}",
    ) as span:
        decision = evaluate(request, policy)
        span.set_attribute("proxy.decision", type(decision).__name__.lower())

        if isinstance(decision, Deny):
            span.set_attribute("http.response.status_code", decision.status_code)
            return PlainTextResponse(decision.reason, status_code=decision.status_code)

        if isinstance(decision, Redirect):
            span.set_attribute("http.response.status_code", decision.status_code)
            return RedirectResponse(decision.url, status_code=decision.status_code)

        upstream_host = decision.upstream_host
        custom_domain = request.url.netloc
        span.set_attribute("proxy.upstream_host", upstream_host)

        client = build_client()
        try:
            body = request.stream() if _has_body(request) else None
            upstream = await forward(client, request, upstream_host, body)
        except Exception as e:
            await client.aclose()
            log_exception_with_details(logger, "[Proxy]", e)
            span.set_attribute(
                "proxy.error",
                type(e).__name__ if isinstance(e, ProxyError) else "unexpected",
            )
            return PlainTextResponse(INTERNAL_ERROR_MESSAGE, status_code=500)

        span.set_attribute("http.response.status_code", upstream.status_code)

        try:
            headers = sanitize_headers(_end_to_end_headers(upstream.headers))
            return await maybe_rewrite(
                upstream,
                client,
                headers,
                policy.rewrite_rules,
                upstream_host,
                custom_domain,
            )
        except Exception as e:
            # No-op for whatever maybe_rewrite already closed
            await upstream.aclose()
            await client.aclose()
            log_exception_with_details(logger, "[Proxy]", e)
            span.set_attribute("proxy.error", type(e).__name__)
            return PlainTextResponse(INTERNAL_ERROR_MESSAGE, status_code=500)
