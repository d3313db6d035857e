from .errors import MalformedUpstreamResponse, ProxyError, UpstreamFetchError
from .pipeline import fetch_and_apply

__all__ = [
    "fetch_and_apply",
    "ProxyError",
    "UpstreamFetchError",
    "MalformedUpstreamResponse",
]
