"""Station resolution and cross-provider journey matching."""

from trainy_mcp.matching.journey_matcher import match_journeys, primary_key
from trainy_mcp.matching.normalizers import (
    compact_name,
    fuzzy_names_overlap,
    names_overlap,
    normalize_text,
    normalize_train_id,
    normalize_train_number,
    remove_accents,
    strip_parenthetical,
)
from trainy_mcp.matching.station_resolver import StationRegistry

__all__ = [
    # Matchers
    "match_journeys",
    "primary_key",
    # Registry
    "StationRegistry",
    # Normalizers
    "normalize_text",
    "remove_accents",
    "strip_parenthetical",
    "compact_name",
    "names_overlap",
    "fuzzy_names_overlap",
    "normalize_train_id",
    "normalize_train_number",
]
