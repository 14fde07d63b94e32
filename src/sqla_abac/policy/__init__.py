"""Policy model, store, and sources."""

from sqla_abac.policy._base import Policy, TimeWindow
from sqla_abac.policy._decorator import policy
from sqla_abac.policy._permissions import permission_policies, permission_policy
from sqla_abac.policy._sources import (
    JsonFilePolicySource,
    PolicySource,
    StaticPolicySource,
    policies_from_documents,
)
from sqla_abac.policy._sql_source import PolicyBase, PolicyRecord, SQLAlchemyPolicySource
from sqla_abac.policy._store import PolicySnapshot, PolicyStore, get_default_store

__all__ = [
    "JsonFilePolicySource",
    "Policy",
    "PolicyBase",
    "PolicyRecord",
    "PolicySnapshot",
    "PolicySource",
    "PolicyStore",
    "SQLAlchemyPolicySource",
    "StaticPolicySource",
    "TimeWindow",
    "get_default_store",
    "permission_policies",
    "permission_policy",
    "policies_from_documents",
    "policy",
]
