"""HTML sanitization for order messages."""

import bleach

ALLOWED_TAGS = [
    "p", "br", "strong", "em", "code",
    "a", "ul", "ol", "li",
]

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel"],
}

ALLOWED_PROTOCOLS = ["http", "https", "mailto"]


def sanitize_order_message(text: str) -> str:
    """Strip unsafe markup from a message body, keeping basic formatting."""
    return bleach.clean(
        text,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    ).strip()


def strip_html_tags(html: str) -> str:
    """Strip all HTML tags, returning plain text. Used for log previews."""
    return bleach.clean(html, tags=[], strip=True)
