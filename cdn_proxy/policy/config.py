"""
Proxy policy model and loading.

The policy is read once at startup and shared read-only by every request.
Field names follow the service's historical configuration keys as well
(``blocked_region``, ``blocked_ip_address``, ``replace_dict``) so existing
policy files keep working.
"""

import json
import logging
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from cdn_proxy.vars import (
    ALLOWED_METHODS,
    BLOCKED_IP_ADDRESSES,
    BLOCKED_REGIONS,
    CACHE_TTL,
    CLIENT_IP_HEADER,
    PROXY_POLICY_FILE,
    REGION_HEADER,
    REWRITE_RULES,
    UPSTREAM,
    UPSTREAM_MOBILE,
)

logger = logging.getLogger("uvicorn.error")

UPSTREAM_TOKEN = "$upstream"
CUSTOM_DOMAIN_TOKEN = "$custom_domain"

DEFAULT_UPSTREAM = "cdn.jsdelivr.net"


class RewriteRule(BaseModel):
    """A literal text substitution applied to HTML bodies."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(min_length=1)
    replacement: str = ""


DEFAULT_REWRITE_RULES = (
    RewriteRule(pattern=UPSTREAM_TOKEN, replacement=CUSTOM_DOMAIN_TOKEN),
    RewriteRule(pattern="//cdn.jsdelivr.net", replacement=""),
)


class ProxyPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    upstream: str = DEFAULT_UPSTREAM
    upstream_mobile: str = DEFAULT_UPSTREAM
    blocked_regions: frozenset[str] = Field(
        default=frozenset({"KP", "RU"}),
        validation_alias=AliasChoices("blocked_regions", "blocked_region"),
    )
    blocked_ips: frozenset[str] = Field(
        default=frozenset({"0.0.0.0", "127.0.0.1"}),
        validation_alias=AliasChoices("blocked_ips", "blocked_ip_address"),
    )
    rewrite_rules: tuple[RewriteRule, ...] = Field(
        default=DEFAULT_REWRITE_RULES,
        validation_alias=AliasChoices("rewrite_rules", "replace_dict"),
    )
    # Reserved for a response cache; forwarding does not read it
    cache_ttl: int = Field(default=86400, ge=0)
    allowed_methods: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS"})
    region_header: str = "cf-ipcountry"
    ip_header: str = "cf-connecting-ip"

    @field_validator("upstream", "upstream_mobile")
    @classmethod
    def _require_host(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("upstream host must not be empty")
        return value

    @field_validator("blocked_regions", "allowed_methods", mode="before")
    @classmethod
    def _upper_case(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(str(v).strip().upper() for v in value if str(v).strip())

    @field_validator("blocked_ips", mode="before")
    @classmethod
    def _strip_ips(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(str(v).strip() for v in value if str(v).strip())

    @field_validator("rewrite_rules", mode="before")
    @classmethod
    def _rules_from_mapping(cls, value):
        # Dicts keep insertion order, which is the order rules are applied in
        if isinstance(value, dict):
            return tuple(
                RewriteRule(pattern=pattern, replacement=replacement)
                for pattern, replacement in value.items()
            )
        return value


def _env_overrides() -> dict:
    overrides: dict = {}
    if UPSTREAM:
        overrides["upstream"] = UPSTREAM
    if UPSTREAM_MOBILE:
        overrides["upstream_mobile"] = UPSTREAM_MOBILE
    if BLOCKED_REGIONS:
        overrides["blocked_regions"] = BLOCKED_REGIONS
    if BLOCKED_IP_ADDRESSES:
        overrides["blocked_ips"] = BLOCKED_IP_ADDRESSES
    if ALLOWED_METHODS:
        overrides["allowed_methods"] = ALLOWED_METHODS
    if REWRITE_RULES:
        overrides["rewrite_rules"] = REWRITE_RULES
    if CACHE_TTL:
        overrides["cache_ttl"] = CACHE_TTL
    if REGION_HEADER:
        overrides["region_header"] = REGION_HEADER
    if CLIENT_IP_HEADER:
        overrides["ip_header"] = CLIENT_IP_HEADER
    return overrides


def load_policy(policy_file: Optional[str] = None) -> ProxyPolicy:
    """
    Build the process-wide policy.

    Built-in defaults are overlaid with the JSON policy file (if any) and
    then with values from the environment. Raises ``pydantic.ValidationError``
    for invalid data and ``OSError``/``json.JSONDecodeError`` for an
    unreadable file, so a bad configuration stops startup.
    """
    path = policy_file if policy_file is not None else PROXY_POLICY_FILE
    data: dict = {}
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            data.update(json.load(fh))
        logger.info(f"[Policy] Loaded policy file {path}")

    overrides = _env_overrides()
    if overrides:
        # Environment wins over any alias spelling used in the file
        for field, alias in (
            ("blocked_regions", "blocked_region"),
            ("blocked_ips", "blocked_ip_address"),
            ("rewrite_rules", "replace_dict"),
        ):
            if field in overrides:
                data.pop(alias, None)
        data.update(overrides)

    policy = ProxyPolicy.model_validate(data)
    logger.info(
        f"[Policy] upstream={policy.upstream} upstream_mobile={policy.upstream_mobile} "
        f"blocked_regions={sorted(policy.blocked_regions)} "
        f"blocked_ips={len(policy.blocked_ips)} rules={len(policy.rewrite_rules)} "
        f"allowed_methods={sorted(policy.allowed_methods)}"
    )
    return policy
