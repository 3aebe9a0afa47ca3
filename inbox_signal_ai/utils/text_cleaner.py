"""Clean and normalize mail bodies for LLM analysis."""

import html
import re


def html_to_text(html_text: str) -> str:
    """
    Convert an HTML mail part into readable plain text.
    Removes scripts, styles, excessive whitespace.
    """
    if not html_text or not html_text.strip():
        return ""

    text = html_text

    # Remove script and style blocks (content between tags)
    text = re.sub(r"<script[^>]*>[\s\S]*?</script>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<style[^>]*>[\s\S]*?</style>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<head[^>]*>[\s\S]*?</head>", " ", text, flags=re.IGNORECASE)

    # Replace block elements with newlines to preserve structure
    for tag in ("br", "p", "div", "li", "tr", "h1", "h2", "h3", "h4"):
        text = re.sub(rf"</{tag}\s*>", "\n", text, flags=re.IGNORECASE)
        text = re.sub(rf"<{tag}[^>]*>", "\n", text, flags=re.IGNORECASE)

    # Strip all remaining HTML tags
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text).replace("\xa0", " ")

    return collapse_whitespace(text)


def collapse_whitespace(text: str) -> str:
    """Collapse runs of spaces and blank lines."""
    text = re.sub(r"[ \t]+", " ", text or "")
    text = re.sub(r"\n\s*\n", "\n\n", text)
    return text.strip()


def truncate_body(text: str, max_chars: int) -> str:
    """Cut the body to max_chars, marking the cut with '...'."""
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text
