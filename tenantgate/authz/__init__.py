"""Authorization core: policy evaluation, guards and query scoping."""

from tenantgate.authz.evaluator import PolicyEvaluator, ResolvedTarget, RuleScope, TargetRef
from tenantgate.authz.guard import Guard
from tenantgate.authz.scoper import QueryScoper

__all__ = [
    "Guard",
    "PolicyEvaluator",
    "QueryScoper",
    "ResolvedTarget",
    "RuleScope",
    "TargetRef",
]
