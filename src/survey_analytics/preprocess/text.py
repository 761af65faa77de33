from __future__ import annotations

import re
from typing import Any

SCRIPT_BLOCK_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
HTML_TAG_RE = re.compile(r"<[^>]*>")
UNSAFE_SCHEME_RE = re.compile(r"(?:javascript|vbscript):", re.IGNORECASE)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MAX_EMAIL_LENGTH = 254
MAX_EMAIL_LOCAL_PART_LENGTH = 64


def sanitize_text(value: Any) -> str:
    """Strip markup and script schemes from free text; non-strings become ''."""
    if not isinstance(value, str):
        return ""
    cleaned = SCRIPT_BLOCK_RE.sub("", value)
    cleaned = HTML_TAG_RE.sub("", cleaned)
    cleaned = UNSAFE_SCHEME_RE.sub("", cleaned)
    return cleaned.strip()


def optional_text(value: Any) -> str | None:
    cleaned = sanitize_text(value)
    return cleaned or None


def normalize_email_address(value: Any) -> str | None:
    """Return the lower-cased address when it is deliverable, else ``None``."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate or len(candidate) > MAX_EMAIL_LENGTH:
        return None
    if not EMAIL_RE.match(candidate):
        return None
    local_part = candidate.split("@", 1)[0]
    if len(local_part) > MAX_EMAIL_LOCAL_PART_LENGTH:
        return None
    return candidate.lower()
