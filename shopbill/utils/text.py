import re
import secrets
import string
from typing import Optional

_SLUG_JUNK = re.compile(r"[^a-z0-9]+")
_BASE36 = string.digits + string.ascii_lowercase


def clean_str(val, max_len: int) -> Optional[str]:
    """Строка из тела запроса: trim, обрезка по длине, пустое -> None."""
    if val is None:
        return None
    s = str(val).strip()[:max_len]
    return s or None


def slugify(text: str) -> str:
    slug = _SLUG_JUNK.sub("-", (text or "").strip().lower()).strip("-")
    return slug[:80] or "shop"


def unique_slug(base_slug: str) -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{base_slug}-{suffix}"
