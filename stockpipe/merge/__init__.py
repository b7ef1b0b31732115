"""Upsert merger and its conflict-resolution policies."""

from .merger import ENTITY_POLICIES, MergeOutcome, MergeReport, UpsertMerger, upsert_row, utcnow
from .policies import (
    Extreme,
    add_months,
    cursor_allows,
    improves,
    merge_extreme,
    overwrite_fields,
    validate_record,
)


__all__ = [
    "ENTITY_POLICIES",
    "MergeOutcome",
    "MergeReport",
    "UpsertMerger",
    "upsert_row",
    "utcnow",
    "Extreme",
    "add_months",
    "cursor_allows",
    "improves",
    "merge_extreme",
    "overwrite_fields",
    "validate_record",
]
