"""Bounded previews of arbitrary event payloads."""

from __future__ import annotations

import json
from typing import Any

DEFAULT_PREVIEW_LENGTH = 200
ELLIPSIS = "..."


def preview_payload(value: Any, max_length: int = DEFAULT_PREVIEW_LENGTH) -> str | None:
    """Return a display-safe preview of a JSON payload.

    Short strings are returned verbatim. Longer strings and every other value
    are stringified (compact JSON) and cut to ``max_length`` with an ellipsis
    marker. ``None`` and values that cannot be stringified yield ``None``.
    """
    if value is None:
        return None
    if max_length < 0:
        raise ValueError("max_length must be >= 0")

    if isinstance(value, str):
        if len(value) <= max_length:
            return value
        return value[:max_length] + ELLIPSIS

    try:
        text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError, RecursionError):
        return None

    if len(text) > max_length:
        return text[:max_length] + ELLIPSIS
    return text
