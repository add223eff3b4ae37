"""Email address helpers shared by auth, users and notifications."""
import re

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_email(email: str) -> str:
    """Trim and lowercase so lookups are case-insensitive."""
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(email or "") is not None


def split_recipients(value: str) -> list:
    """Split a comma-separated recipient list, dropping blanks."""
    return [part.strip() for part in (value or "").split(",") if part.strip()]
