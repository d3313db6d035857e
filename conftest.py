# Make `import cdn_proxy.*` resolve to this checkout when pytest runs from the root.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

import httpx  # noqa: E402
import pytest  # noqa: E402

from cdn_proxy.policy.config import ProxyPolicy, RewriteRule  # noqa: E402
from cdn_proxy.utils_tests.upstream import upstream_response  # noqa: E402


@pytest.fixture
def policy():
    """A policy with distinct desktop and mobile upstreams."""
    return ProxyPolicy(
        upstream="upstream.example",
        upstream_mobile="m.upstream.example",
        blocked_regions={"KP", "RU"},
        blocked_ips={"0.0.0.0", "127.0.0.1"},
        rewrite_rules=(
            RewriteRule(pattern="$upstream", replacement="$custom_domain"),
            RewriteRule(pattern="//cdn.jsdelivr.net", replacement=""),
        ),
        allowed_methods={"GET", "HEAD", "OPTIONS"},
    )


@pytest.fixture
def upstream(monkeypatch):
    """
    Route upstream calls to an in-process handler.

    Set ``upstream.handler`` to a function taking an ``httpx.Request`` and
    returning an ``httpx.Response``; every request seen is recorded in
    ``upstream.requests``.
    """

    class _Upstream:
        def __init__(self):
            self.requests = []
            self.handler = lambda request: upstream_response(200)

        def _dispatch(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.handler(request)

    fake = _Upstream()

    def _build_client():
        return httpx.AsyncClient(
            transport=httpx.MockTransport(fake._dispatch), follow_redirects=False
        )

    monkeypatch.setattr("cdn_proxy.proxy.pipeline.build_client", _build_client)
    return fake
