"""Model output parsing services."""

from sentinel.services.parsing.output_parser import (
    OutputParser,
    LegacyTriagePayload,
    output_parser,
)
from sentinel.services.parsing.text_cleanup import (
    clean_explanation,
    strip_thinking_block,
    truncate_to_sentences,
)

__all__ = [
    "OutputParser",
    "LegacyTriagePayload",
    "output_parser",
    "clean_explanation",
    "strip_thinking_block",
    "truncate_to_sentences",
]
