"""
Helpers that derive the denormalized display fields of an activity.
"""
import re

PREVIEW_MAX_LENGTH = 150

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_HEADER = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_EMPHASIS = re.compile(r"[*_~`]")
_NEWLINES = re.compile(r"\n+")


def slugify(title: str, entity_id: str | None = None) -> str:
    """
    Lower-case URL slug for `title`, suffixed with `entity_id` so slugs of
    equally-titled entities never collide.

    >>> slugify("Grandma's Apple Pie!", "r42")
    'grandma-s-apple-pie-r42'
    """
    slug = _NON_SLUG.sub("-", title.lower()).strip("-")
    if entity_id:
        slug = f"{slug}-{entity_id}" if slug else entity_id
    return slug


def extract_preview(content: str | None, max_length: int = PREVIEW_MAX_LENGTH) -> str:
    """Plain-text excerpt of markdown `content`, truncated with '...'."""
    if not content:
        return ""
    text = _HEADER.sub("", content)
    text = _LINK.sub(r"\1", text)
    text = _EMPHASIS.sub("", text)
    text = _NEWLINES.sub(" ", text).strip()
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text
