from typing import List, Optional


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Drops NUL characters, which Postgres TEXT rejects, and forces valid UTF-8."""
    if value is None:
        return None
    return value.replace("\x00", "").encode("utf-8", "replace").decode("utf-8")


def sanitize_content(entries: List[Optional[str]]) -> List[str]:
    """Sanitizes every conversation entry; a missing entry becomes an empty string."""
    return [sanitize_text(entry) or "" for entry in entries]
