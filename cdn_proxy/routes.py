import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from cdn_proxy.models import HealthStatus, ServiceInfo
from cdn_proxy.policy.config import ProxyPolicy
from cdn_proxy.proxy.pipeline import fetch_and_apply
from cdn_proxy.vars import SERVICE_NAME, SERVICE_VERSION

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

PROXIED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def _timestamp() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def get_policy(request: Request) -> ProxyPolicy:
    """The policy loaded at startup; override this dependency to inject another."""
    return request.app.state.policy


@router.get("/health", response_model=HealthStatus)
async def health():
    return HealthStatus(
        status="ok",
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        timestamp=_timestamp(),
    )


@router.get("/", response_model=ServiceInfo)
async def info():
    return ServiceInfo(
        status="ok",
        message=f"This is a {SERVICE_NAME} service.",
        timestamp=_timestamp(),
    )


# Register catch-all route for proxying; the policy decides which methods are served
@router.api_route("/{path:path}", methods=PROXIED_METHODS)
async def proxy_all(
    request: Request, path: str, policy: ProxyPolicy = Depends(get_policy)
) -> Response:
    """Catch-all route that mirrors every other path from the upstream."""
    return await fetch_and_apply(request, policy)
