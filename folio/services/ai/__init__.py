"""
AI services using DSPy.

DSPy provides a structured way to define AI behaviors as "signatures"
that can be optimized and tested.
"""

from folio.services.ai.client import get_lm
from folio.services.ai.signatures import TranslateMarkup

__all__ = [
    "get_lm",
    "TranslateMarkup",
]
