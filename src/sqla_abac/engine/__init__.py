"""Decision engine — item-level evaluation and collection-level data scopes."""

from sqla_abac.engine._evaluator import PolicyEvaluator, evaluate
from sqla_abac.engine._models import DataScope, Decision, PolicyResult
from sqla_abac.engine._scope import DataScopeResolver, get_data_scope

__all__ = [
    "DataScope",
    "DataScopeResolver",
    "Decision",
    "PolicyEvaluator",
    "PolicyResult",
    "evaluate",
    "get_data_scope",
]
