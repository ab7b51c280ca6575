"""URL-safe slug and random code generation utilities."""

import re
import secrets
import string
import unicodedata

from dline.utils.constants import (
    INVITE_CODE_LENGTH,
    MAX_SLUG_LENGTH,
    SHARE_CODE_LENGTH,
    SLUG_SUFFIX_LENGTH,
)

_INVITE_ALPHABET = string.ascii_uppercase + string.digits
_SHARE_ALPHABET = string.ascii_letters + string.digits
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def slugify(text: str) -> str:
    """Convert text to a URL-safe slug (lowercase, hyphens, no special chars).

    Args:
        text: Text to slugify (e.g. "Pool Play vs. Ring").

    Returns:
        Slugified text (e.g. "pool-play-vs-ring"), at most 50 characters.
    """
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = text.lower().strip()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")[:MAX_SLUG_LENGTH].strip("-")
    return text or "untitled"


def slug_with_suffix(base: str) -> str:
    """Append a random suffix to a slug that is already taken."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(SLUG_SUFFIX_LENGTH))
    return f"{base}-{suffix}"


def generate_invite_code() -> str:
    """Six uppercase letters/digits, used as a case-insensitive join key."""
    return "".join(secrets.choice(_INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def generate_share_code() -> str:
    """Unguessable read-only token for public game links."""
    return "".join(secrets.choice(_SHARE_ALPHABET) for _ in range(SHARE_CODE_LENGTH))
