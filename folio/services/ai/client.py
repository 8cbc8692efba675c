"""
LLM client configuration using DSPy.

Supports Gemini (primary), OpenAI, and Anthropic.
"""

from __future__ import annotations

import os
from functools import lru_cache

import dspy

from folio.config import get_settings


@lru_cache
def get_lm(
    provider: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dspy.LM:
    """
    Get configured language model.

    Args:
        provider: 'gemini', 'openai', or 'anthropic'. Defaults to settings.llm_provider.
        model: Model name. Defaults to the standard translation model.
        temperature: Sampling temperature. Defaults to settings.
        max_tokens: Output token cap. Defaults to settings.

    Returns:
        Configured DSPy LM instance.
    """
    settings = get_settings()
    provider = provider or settings.llm_provider
    model = model or settings.translation_model_standard
    temperature = settings.translation_temperature if temperature is None else temperature
    max_tokens = max_tokens or settings.translation_max_tokens

    if provider == "gemini":
        # Accept both GOOGLE_API_KEY and GEMINI_API_KEY
        api_key = (
            settings.google_api_key
            or settings.gemini_api_key
            or os.getenv("GOOGLE_API_KEY")
            or os.getenv("GEMINI_API_KEY")
        )
        if not api_key:
            raise ValueError("GOOGLE_API_KEY or GEMINI_API_KEY not set")

        # Use gemini/ prefix for litellm
        return dspy.LM(
            model=f"gemini/{model}",
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    elif provider == "openai":
        api_key = settings.openai_api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY not set")

        return dspy.LM(
            model=f"openai/{model}",
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    elif provider == "anthropic":
        api_key = settings.anthropic_api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

        return dspy.LM(
            model=f"anthropic/{model}",
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    else:
        raise ValueError(f"Unknown provider: {provider}")
