"""
Model Text Cleanup

Removes chain-of-thought markup and echoed prompt text from free-text
model output, and bounds explanations to a fixed number of sentences
before anything reaches the user.
"""

import re

from sentinel.config.logging_config import get_logger

logger = get_logger(__name__)


THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
ECHO_MARKER = "UPDATED SUMMARY:"
SENTENCE_END = frozenset(".!?")


def strip_thinking_block(text: str) -> str:
    """
    Strip thinking blocks and echoed prompt endings.

    Handles:
    - An echoed prompt: keep only what follows the last "UPDATED SUMMARY:"
    - Formal <think>...</think> blocks
    - An informal leading "thought" preamble: keep the final paragraph,
      or drop the first line when there is a single paragraph
    """
    result = text

    marker_at = result.rfind(ECHO_MARKER)
    if marker_at != -1:
        result = result[marker_at + len(ECHO_MARKER):]

    result = THINK_BLOCK.sub("", result)

    trimmed = result.strip()
    if trimmed.lower().startswith("thought"):
        paragraphs = [p.strip() for p in trimmed.split("\n\n") if p.strip()]
        if len(paragraphs) > 1:
            logger.info("Stripped informal thinking block", paragraphs_removed=len(paragraphs) - 1)
            result = paragraphs[-1]
        else:
            lines = trimmed.splitlines()
            if len(lines) > 1:
                result = "\n".join(lines[1:])

    return result.strip()


def truncate_to_sentences(text: str, max_sentences: int = 2) -> str:
    """
    Keep at most `max_sentences` sentences.

    Sentences end at '.', '!' or '?' followed by whitespace or the end of
    the text, so decimals like "z=-2.5" stay intact. Trailing text without
    terminal punctuation counts as a sentence when the limit is not reached.
    """
    if max_sentences <= 0:
        return ""
    cleaned = text.strip()
    if not cleaned:
        return ""

    sentences: list[str] = []
    current: list[str] = []
    for i, char in enumerate(cleaned):
        current.append(char)
        at_boundary = i + 1 == len(cleaned) or cleaned[i + 1].isspace()
        if char in SENTENCE_END and at_boundary:
            sentence = "".join(current).strip()
            if sentence:
                sentences.append(sentence)
            current = []
            if len(sentences) >= max_sentences:
                break

    leftover = "".join(current).strip()
    if len(sentences) < max_sentences and leftover:
        sentences.append(leftover)

    return " ".join(sentences)


def clean_explanation(text: str, max_sentences: int = 2) -> str:
    """Strip thinking markup, then bound to `max_sentences` sentences."""
    return truncate_to_sentences(strip_thinking_block(text), max_sentences)
