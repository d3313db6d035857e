from typing import Dict, Optional

import httpx


def upstream_response(
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
    body: bytes = b"",
) -> httpx.Response:
    """
    An unread upstream response, as a real origin would deliver it.

    ``httpx.Response(content=...)`` is read eagerly on construction, which
    hides how the proxy consumes the stream; wrapping the body in a
    ``ByteStream`` keeps it pending until the proxy reads it.
    """
    headers = dict(headers or {})
    if not any(name.lower() == "content-length" for name in headers):
        headers["content-length"] = str(len(body))
    return httpx.Response(status_code, headers=headers, stream=httpx.ByteStream(body))


async def read_body(response) -> bytes:
    """Collect the body of a Starlette response, streamed or not."""
    if hasattr(response, "body_iterator"):
        return b"".join([chunk async for chunk in response.body_iterator])
    return response.body
