"""Declarative data filters — build, match in memory, compile to SQL."""

from sqla_abac.filters._build import (
    condition_to_filter,
    exclude_filters,
    filter_fields,
    intersect_filters,
    is_match_all,
    is_match_nothing,
    match_nothing,
    union_filters,
)
from sqla_abac.filters._match import matches_filter
from sqla_abac.filters._sql import apply_data_scope, compile_filter

__all__ = [
    "apply_data_scope",
    "compile_filter",
    "condition_to_filter",
    "exclude_filters",
    "filter_fields",
    "intersect_filters",
    "is_match_all",
    "is_match_nothing",
    "match_nothing",
    "matches_filter",
    "union_filters",
]
