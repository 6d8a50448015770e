"""Provider Directory — Search, Ranking and Deduplication Algorithms."""

from .text import (
    convert_to_ascii,
    escape_regex,
    literal_regex,
    strip_empty,
)
from .phone import (
    clean_phone,
    normalize_phone,
)
from .geo_proximity import (
    GeoPoint,
    distance_km,
    haversine_km,
    nearest,
)
from .entry_types import (
    ENTRY_TYPES,
    EntryType,
    get_entry_type,
    type_label,
)
from .entry_query import (
    EntryQuery,
    FilterCriteria,
    Visibility,
    build_entry_query,
)
from .ranking import (
    RankedPage,
    rank_by_distance,
    rank_by_recency,
)
from .gazetteer import (
    GeoPlace,
    find_place_by_point,
    find_places_by_text,
)
from .duplicate_scorer import (
    DuplicateConfig,
    DuplicateMatch,
    find_possible_duplicate,
    score_candidates,
    score_pair,
)
from .filter_compiler import (
    CompiledFilter,
    FilterCompilationError,
    compile_filter,
)

__all__ = [
    "convert_to_ascii",
    "escape_regex",
    "literal_regex",
    "strip_empty",
    "clean_phone",
    "normalize_phone",
    "GeoPoint",
    "distance_km",
    "haversine_km",
    "nearest",
    "ENTRY_TYPES",
    "EntryType",
    "get_entry_type",
    "type_label",
    "EntryQuery",
    "FilterCriteria",
    "Visibility",
    "build_entry_query",
    "RankedPage",
    "rank_by_distance",
    "rank_by_recency",
    "GeoPlace",
    "find_place_by_point",
    "find_places_by_text",
    "DuplicateConfig",
    "DuplicateMatch",
    "find_possible_duplicate",
    "score_candidates",
    "score_pair",
    "CompiledFilter",
    "FilterCompilationError",
    "compile_filter",
]
