"""Shared utility functions used across route and service modules."""
import re
import time

import bleach
from markupsafe import Markup
from slugify import slugify

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")

ALLOWED_RICH_TEXT_TAGS = [
    'p', 'br', 'strong', 'em', 'b', 'i', 'u', 'blockquote', 'code', 'pre',
    'ul', 'ol', 'li', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'a', 'img', 'table', 'thead', 'tbody', 'tr', 'th', 'td', 'hr', 'div', 'span'
]
ALLOWED_RICH_TEXT_ATTRIBUTES = {
    '*': ['class'],
    'a': ['href', 'title', 'target', 'rel'],
    'img': ['src', 'alt', 'title', 'width', 'height'],
}
ALLOWED_RICH_TEXT_PROTOCOLS = ['http', 'https', 'mailto', 'data']


def clean_text(value, max_length=255):
    return (value or '').strip()[:max_length]


def escape_like(value):
    """Escape SQL LIKE wildcard characters."""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def is_valid_email(value):
    return bool(EMAIL_RE.match(value or ''))


def is_valid_slug(value):
    return bool(SLUG_RE.match(value or ''))


SLUG_MAX_LENGTH = 200


def generate_slug(text, max_length=SLUG_MAX_LENGTH):
    return slugify(text or '', max_length=max_length)


def timestamp_suffixed_slug(slug, max_length=SLUG_MAX_LENGTH):
    # Millisecond epoch keeps the suffix unique for back-to-back creates.
    suffix = f'-{int(time.time() * 1000)}'
    base = slug[:max_length - len(suffix)].rstrip('-')
    return f'{base}{suffix}'


def sanitize_html(value, max_length=100000):
    html = (value or '').strip()
    cleaned = bleach.clean(
        html,
        tags=ALLOWED_RICH_TEXT_TAGS,
        attributes=ALLOWED_RICH_TEXT_ATTRIBUTES,
        protocols=ALLOWED_RICH_TEXT_PROTOCOLS,
        strip=True,
    )
    return cleaned[:max_length]


def rich_text(value):
    """Jinja filter: HTML content blocks render through the bleach allow-list."""
    return Markup(sanitize_html(value if isinstance(value, str) else ''))  # nosec B704


def parse_positive_int(value):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed <= 0:
        return None
    return parsed
