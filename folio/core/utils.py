"""
Shared utility functions for the folio pipeline.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "job", "alert", "metric")

    Returns:
        A unique ID like "job_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    """Accounting month for a datetime, as 'YYYY-MM'."""
    return moment.strftime("%Y-%m")


def sha256_hex(content: str) -> str:
    """SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def record_key(content_unit_id: str, language: str) -> str:
    """Storage key for the (content unit, language) pair."""
    return f"{content_unit_id}:{language}"
