"""Helper utilities for Gmail payloads and batch identifiers."""

import base64
import binascii
from typing import Any, Dict, Iterable, List, Optional

from .text_cleaner import collapse_whitespace, html_to_text

MAX_PART_DEPTH = 10


def decode_base64url(data: str) -> str:
    """Decode Gmail's URL-safe base64 body data. Returns '' on malformed input."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def header_value(headers: Iterable[Dict[str, Any]], name: str) -> str:
    """Case-insensitive header lookup; last occurrence wins."""
    value = ""
    wanted = name.lower()
    for h in headers or []:
        if str(h.get("name", "")).lower() == wanted:
            value = str(h.get("value", ""))
    return value


def _find_part(payload: Dict[str, Any], mime_type: str, depth: int = 0) -> Optional[str]:
    if not payload or depth > MAX_PART_DEPTH:
        return None
    if payload.get("mimeType") == mime_type:
        data = (payload.get("body") or {}).get("data")
        if data:
            return decode_base64url(data)
    for part in payload.get("parts") or []:
        found = _find_part(part, mime_type, depth + 1)
        if found:
            return found
    return None


def extract_body(payload: Dict[str, Any]) -> str:
    """
    Plain-text body of a Gmail message payload.
    Prefers text/plain anywhere in the part tree, then text/html (tags stripped).
    """
    plain = _find_part(payload, "text/plain")
    if plain:
        return collapse_whitespace(plain)
    rich = _find_part(payload, "text/html")
    if rich:
        return html_to_text(rich)
    return ""


def deduplicate_ids(ids: Iterable[str]) -> List[str]:
    """Drop blank and repeated ids, keeping first-seen order."""
    seen: set[str] = set()
    result: List[str] = []
    for raw in ids:
        key = (raw or "").strip()
        if key and key not in seen:
            seen.add(key)
            result.append(key)
    return result
