import logging
from dataclasses import dataclass
from typing import Union

from fastapi import Request

from cdn_proxy.policy.config import ProxyPolicy

logger = logging.getLogger("uvicorn.error")

UNKNOWN_REGION = "UNKNOWN"

MOBILE_AGENTS = (
    "Android",
    "iPhone",
    "SymbianOS",
    "Windows Phone",
    "iPad",
    "iPod",
    "BlackBerry",
    "Mobile",
)

METHOD_NOT_ALLOWED_MESSAGE = "Method Not Allowed"
REGION_BLOCKED_MESSAGE = (
    "Access denied: WorkersProxy is not available in your region yet."
)
IP_BLOCKED_MESSAGE = "Access denied: Your IP address is blocked by WorkersProxy."


@dataclass(frozen=True)
class Allow:
    upstream_host: str


@dataclass(frozen=True)
class Deny:
    reason: str
    status_code: int


@dataclass(frozen=True)
class Redirect:
    url: str
    status_code: int = 301


DecisionOutcome = Union[Allow, Deny, Redirect]


def is_mobile_device(user_agent: str) -> bool:
    """Case-insensitive substring match against the known mobile tokens."""
    if not user_agent:
        return False
    lowered = user_agent.lower()
    return any(agent.lower() in lowered for agent in MOBILE_AGENTS)


def select_upstream(user_agent: str, policy: ProxyPolicy) -> str:
    return policy.upstream_mobile if is_mobile_device(user_agent) else policy.upstream


def evaluate(request: Request, policy: ProxyPolicy) -> DecisionOutcome:
    """
    Decide what to do with an inbound request.

    Checks run in a fixed order and the first failing one wins: method,
    scheme, then region and IP. The upstream host is chosen from the
    User-Agent before the block-lists are consulted.
    """
    if request.method not in policy.allowed_methods:
        return Deny(METHOD_NOT_ALLOWED_MESSAGE, 405)

    if request.url.scheme == "http":
        return Redirect(str(request.url.replace(scheme="https")), 301)

    region = (request.headers.get(policy.region_header) or "").upper() or UNKNOWN_REGION
    ip_address = request.headers.get(policy.ip_header) or ""
    user_agent = request.headers.get("user-agent") or ""

    upstream_host = select_upstream(user_agent, policy)

    if region in policy.blocked_regions:
        logger.warning(f"[Policy] Region {region} blocked for {request.url.path}")
        return Deny(REGION_BLOCKED_MESSAGE, 403)

    if ip_address in policy.blocked_ips:
        logger.warning(f"[Policy] IP {ip_address} blocked for {request.url.path}")
        return Deny(IP_BLOCKED_MESSAGE, 403)

    return Allow(upstream_host)
