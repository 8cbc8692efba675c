"""
DSPy Signatures for translation.

Signatures define the input/output structure for AI tasks.
DSPy handles prompting and parsing.
"""

from __future__ import annotations

import dspy


class TranslateMarkup(dspy.Signature):
    """
    Translate literary HTML content from the source language to the target language.

    Rules:
    - Preserve ALL HTML tags, attributes, classes, IDs and structure exactly
    - Only translate text content between tags
    - Every <section> carries a data-id attribute: keep every section and its data-id unchanged
    - Do not add, remove, merge or reorder sections or other elements
    - Keep entities, special characters and inline formatting (<em>, <strong>, <i>, <b>)
    - The translation must read naturally for literary/narrative content
    - Return ONLY the translated HTML, with no explanations and no code blocks
    """

    markup: str = dspy.InputField(desc="HTML made of <section data-id=...> elements")
    source_language: str = dspy.InputField(desc="Language the markup is written in")
    target_language: str = dspy.InputField(desc="Language to translate into")

    translated_markup: str = dspy.OutputField(
        desc="The same HTML with text translated and every section data-id preserved"
    )
