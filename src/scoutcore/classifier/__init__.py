"""Query classification: AI with a keyword fallback."""

from .classifier import QueryClassifier, extract_json_block, parse_array, repair_json
from .keywords import (
    classify_by_keywords,
    detect_category,
    extract_entities,
    extract_values_from_text,
    normalize_query,
    suggested_sources_for,
)

__all__ = [
    "QueryClassifier",
    "classify_by_keywords",
    "detect_category",
    "extract_entities",
    "extract_json_block",
    "extract_values_from_text",
    "normalize_query",
    "parse_array",
    "repair_json",
    "suggested_sources_for",
]
