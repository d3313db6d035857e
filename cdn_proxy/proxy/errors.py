class ProxyError(Exception):
    """Base class for failures after the request passed the policy checks."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamFetchError(ProxyError):
    """The upstream could not be reached or the transfer failed."""


class MalformedUpstreamResponse(ProxyError):
    """The upstream body could not be read or decoded for rewriting."""
