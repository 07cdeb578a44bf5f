"""Prompt template and assembly services."""

from sentinel.services.prompt.prompt_assembler import (
    NOT_AVAILABLE,
    PromptAssembler,
    PromptContext,
    truncate,
)
from sentinel.services.prompt.prompt_templates import (
    DEFAULT_TEMPLATES,
    ConfigurationError,
    PromptTemplateLoader,
)

__all__ = [
    # Assembly
    "NOT_AVAILABLE",
    "PromptAssembler",
    "PromptContext",
    "truncate",
    # Templates
    "DEFAULT_TEMPLATES",
    "ConfigurationError",
    "PromptTemplateLoader",
]
