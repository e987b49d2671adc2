"""Shared utility functions used across bookworm."""
from __future__ import annotations

from typing import Any

import orjson


def truncate_text(text: str, max_chars: int = 80) -> str:
    """Truncate text for log and display purposes."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


def dumps_json(data: Any) -> str:
    """Serialise data to a JSON string using orjson (handles datetime/UUID)."""
    return orjson.dumps(data, option=orjson.OPT_NON_STR_KEYS).decode("utf-8")


def batched(items: list, size: int) -> list[list]:
    """Split a list into consecutive sub-lists of at most `size` items."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    return [items[i: i + size] for i in range(0, len(items), size)]
