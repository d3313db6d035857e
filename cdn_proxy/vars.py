import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "CDN Proxy")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "2.0")

# Optional JSON file holding the proxy policy; environment values override it
PROXY_POLICY_FILE = os.getenv("PROXY_POLICY_FILE", "")

UPSTREAM = os.getenv("UPSTREAM", "")
UPSTREAM_MOBILE = os.getenv("UPSTREAM_MOBILE", "")
CACHE_TTL = os.getenv("CACHE_TTL", "")
REGION_HEADER = os.getenv("REGION_HEADER", "")
CLIENT_IP_HEADER = os.getenv("CLIENT_IP_HEADER", "")

UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "300"))

# The one path besides /health and / that is served locally instead of mirrored
METRICS_PATH = os.getenv("METRICS_PATH", "/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


def _parse_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_rewrite_rules(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            key, val = entry.split("=", 1)
            key = key.strip()
            # An empty replacement deletes the pattern
            if key:
                mapping[key] = val.strip()
    return mapping


BLOCKED_REGIONS = _parse_list(os.getenv("BLOCKED_REGIONS", ""))
BLOCKED_IP_ADDRESSES = _parse_list(os.getenv("BLOCKED_IP_ADDRESSES", ""))
ALLOWED_METHODS = _parse_list(os.getenv("ALLOWED_METHODS", ""))
REWRITE_RULES = _parse_rewrite_rules(os.getenv("REWRITE_RULES", ""))
