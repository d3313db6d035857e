from .config import ProxyPolicy, RewriteRule, load_policy
from .evaluator import Allow, Deny, Redirect, evaluate, is_mobile_device

__all__ = [
    "ProxyPolicy",
    "RewriteRule",
    "load_policy",
    "Allow",
    "Deny",
    "Redirect",
    "evaluate",
    "is_mobile_device",
]
