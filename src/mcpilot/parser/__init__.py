"""Recognition of tool-invocation markers in LLM output."""

from .extractor import (
    INTERNAL_MARKER_TAG,
    MARKER_TAG,
    ParsedInternalToolRequest,
    ParsedToolRequest,
    RequestExtractor,
)

__all__ = [
    "INTERNAL_MARKER_TAG",
    "MARKER_TAG",
    "ParsedInternalToolRequest",
    "ParsedToolRequest",
    "RequestExtractor",
]
