from typing import Mapping, Union

import httpx

CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-credentials": "true",
}

# Security headers that would stop the mirrored pages from loading under our domain
STRIPPED_HEADERS = (
    "content-security-policy",
    "content-security-policy-report-only",
    "clear-site-data",
)


def sanitize_headers(headers: Union[httpx.Headers, Mapping[str, str]]) -> httpx.Headers:
    """Return a copy of the upstream headers with CORS opened and CSP removed."""
    sanitized = httpx.Headers(headers)
    for name, value in CORS_HEADERS.items():
        sanitized[name] = value
    for name in STRIPPED_HEADERS:
        if name in sanitized:
            del sanitized[name]
    return sanitized
