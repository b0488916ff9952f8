"""Text processing utilities."""
import re


_WHITESPACE = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    """
    Trim and collapse whitespace, keeping the original case.

    Args:
        text: Raw message text

    Returns:
        Normalized text
    """
    if not text:
        return ''
    return _WHITESPACE.sub(' ', text).strip()


def matching_form(text: str) -> str:
    """Lowercased normalized text used only for pattern matching."""
    return normalize_text(text).lower()


def preview(text: str, limit: int = 50) -> str:
    """Shorten text for log lines."""
    text = normalize_text(text)
    return text if len(text) <= limit else f"{text[:limit]}..."
