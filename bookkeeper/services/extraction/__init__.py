"""Statement extraction package (Gemini vision + reply normalization)."""

from bookkeeper.services.extraction.gateway import handle_extraction_request
from bookkeeper.services.extraction.gemini_service import GeminiStatementExtractor
from bookkeeper.services.extraction.normalizer import (
    build_sample_statement,
    find_json_object,
    is_sample_statement,
    normalize_statement,
    parse_model_output,
)

__all__ = [
    "GeminiStatementExtractor",
    "build_sample_statement",
    "find_json_object",
    "handle_extraction_request",
    "is_sample_statement",
    "normalize_statement",
    "parse_model_output",
]
