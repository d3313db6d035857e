import json

import pytest
from pydantic import ValidationError

from cdn_proxy.policy.config import (
    DEFAULT_REWRITE_RULES,
    ProxyPolicy,
    RewriteRule,
    load_policy,
)


class TestProxyPolicy:
    def test_defaults_mirror_jsdelivr(self):
        policy = ProxyPolicy()

        assert policy.upstream == "cdn.jsdelivr.net"
        assert policy.upstream_mobile == "cdn.jsdelivr.net"
        assert policy.blocked_regions == frozenset({"KP", "RU"})
        assert policy.blocked_ips == frozenset({"0.0.0.0", "127.0.0.1"})
        assert policy.rewrite_rules == DEFAULT_REWRITE_RULES
        assert policy.cache_ttl == 86400
        assert policy.allowed_methods == frozenset({"GET", "HEAD", "OPTIONS"})

    def test_regions_and_methods_are_upper_cased(self):
        policy = ProxyPolicy(blocked_regions=["kp", " ru "], allowed_methods=["get"])

        assert policy.blocked_regions == frozenset({"KP", "RU"})
        assert policy.allowed_methods == frozenset({"GET"})

    def test_rewrite_rules_from_mapping_keep_order(self):
        policy = ProxyPolicy(rewrite_rules={"b": "1", "a": "2", "c": "3"})

        assert [r.pattern for r in policy.rewrite_rules] == ["b", "a", "c"]

    def test_legacy_key_names(self):
        policy = ProxyPolicy.model_validate(
            {
                "blocked_region": ["CN"],
                "blocked_ip_address": ["10.0.0.1"],
                "replace_dict": {"$upstream": "$custom_domain"},
            }
        )

        assert policy.blocked_regions == frozenset({"CN"})
        assert policy.blocked_ips == frozenset({"10.0.0.1"})
        assert policy.rewrite_rules == (
            RewriteRule(pattern="$upstream", replacement="$custom_domain"),
        )

    def test_policy_is_immutable(self):
        policy = ProxyPolicy()

        with pytest.raises(ValidationError):
            policy.upstream = "elsewhere.example"

    def test_empty_upstream_rejected(self):
        with pytest.raises(ValidationError):
            ProxyPolicy(upstream="  ")

    def test_negative_cache_ttl_rejected(self):
        with pytest.raises(ValidationError):
            ProxyPolicy(cache_ttl=-1)

    def test_empty_rule_pattern_rejected(self):
        with pytest.raises(ValidationError):
            RewriteRule(pattern="", replacement="x")


class TestLoadPolicy:
    def test_defaults_without_file_or_env(self):
        assert load_policy("") == ProxyPolicy()

    def test_policy_file(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(
            json.dumps(
                {
                    "upstream": "origin.example",
                    "upstream_mobile": "m.origin.example",
                    "blocked_region": ["kp"],
                    "replace_dict": {"origin.example": "$custom_domain"},
                    "cache_ttl": 60,
                }
            ),
            encoding="utf-8",
        )

        policy = load_policy(str(path))

        assert policy.upstream == "origin.example"
        assert policy.upstream_mobile == "m.origin.example"
        assert policy.blocked_regions == frozenset({"KP"})
        assert policy.rewrite_rules[0].pattern == "origin.example"
        assert policy.cache_ttl == 60

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "policy.json"
        path.write_text(
            json.dumps({"upstream": "origin.example", "blocked_region": ["KP"]}),
            encoding="utf-8",
        )
        monkeypatch.setattr("cdn_proxy.policy.config.UPSTREAM", "env.example")
        monkeypatch.setattr("cdn_proxy.policy.config.BLOCKED_REGIONS", ["de"])
        monkeypatch.setattr("cdn_proxy.policy.config.CACHE_TTL", "120")

        policy = load_policy(str(path))

        assert policy.upstream == "env.example"
        assert policy.blocked_regions == frozenset({"DE"})
        assert policy.cache_ttl == 120

    def test_invalid_file_fails(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(json.dumps({"cache_ttl": "forever"}), encoding="utf-8")

        with pytest.raises(ValidationError):
            load_policy(str(path))

    def test_missing_file_fails(self, tmp_path):
        with pytest.raises(OSError):
            load_policy(str(tmp_path / "missing.json"))
