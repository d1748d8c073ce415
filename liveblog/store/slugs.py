"""URL slug generation."""

import re
from typing import Callable

MAX_SLUG_LENGTH = 80


def to_slug(text: str) -> str:
    """Turn a headline into a URL slug.

    >>> to_slug("Storm Maria: Live Updates!")
    'storm-maria-live-updates'
    """
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:MAX_SLUG_LENGTH].strip("-")


def unique_slug(text: str, is_taken: Callable[[str], bool]) -> str:
    """Generate a slug for ``text`` that ``is_taken`` does not reject.

    Collisions get ``-1``, ``-2``, ... appended to the base slug.
    """
    base = to_slug(text) or "live"
    slug = base
    counter = 1
    while is_taken(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug
