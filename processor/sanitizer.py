"""Markup sanitization for values copied onto generated occurrences."""
from typing import Iterable
from urllib.parse import urlparse

from bs4 import BeautifulSoup

# Removed together with their content
DANGEROUS_TAGS = [
    'script', 'style', 'iframe', 'frame', 'frameset', 'object', 'embed',
    'applet', 'form', 'input', 'button', 'textarea', 'select', 'link',
    'meta', 'base', 'svg', 'math', 'noscript', 'template',
]

# Kept in rich text; any other tag is unwrapped to its text
ALLOWED_TAGS = (
    'a', 'em', 'strong', 'cite', 'blockquote', 'code',
    'ul', 'ol', 'li', 'dl', 'dt', 'dd', 'p', 'br',
)

ALLOWED_ATTRIBUTES = {
    'a': ('href', 'title'),
}

SAFE_URL_SCHEMES = ('', 'http', 'https', 'mailto')

# Entity-encoded markup can decode into new markup, so text is re-parsed
# until it is stable
MAX_STRIP_PASSES = 3


def strip_markup(value: str) -> str:
    """
    Remove all markup from a string, dropping script-like content entirely.

    Args:
        value: Raw string that may contain HTML

    Returns:
        Plain text with surrounding whitespace removed
    """
    text = value
    for _ in range(MAX_STRIP_PASSES):
        soup = BeautifulSoup(text, 'html.parser')
        for tag in soup.find_all(DANGEROUS_TAGS):
            tag.decompose()
        stripped = soup.get_text()
        if stripped == text:
            break
        text = stripped
    return text.strip()


def sanitize_markup(value: str, allowed_tags: Iterable[str] = ALLOWED_TAGS) -> str:
    """
    Strip executable markup from a rich-text string.

    Dangerous elements are removed with their content, tags outside
    ``allowed_tags`` are unwrapped, and attributes are reduced to a safe
    allow-list. Strings without markup are returned unchanged.

    Args:
        value: Raw string that may contain HTML
        allowed_tags: Tag names to keep

    Returns:
        Sanitized string
    """
    if '<' not in value:
        return value

    allowed = set(allowed_tags)
    soup = BeautifulSoup(value, 'html.parser')

    for tag in soup.find_all(DANGEROUS_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in allowed:
            tag.unwrap()
            continue
        permitted = ALLOWED_ATTRIBUTES.get(tag.name, ())
        tag.attrs = {
            name: attr_value for name, attr_value in tag.attrs.items()
            if name in permitted and _is_safe_attribute(name, attr_value)
        }

    return str(soup)


def sanitize_title(title: str, max_length: int) -> str:
    """Strip all markup from a title and truncate it to ``max_length``."""
    return strip_markup(title)[:max_length].strip()


def _is_safe_attribute(name: str, value) -> bool:
    if name != 'href':
        return True
    if not isinstance(value, str):
        return False
    return urlparse(value.strip()).scheme.lower() in SAFE_URL_SCHEMES
