import re
from typing import Optional

INSTALLER_PASSWORD_MIN_LENGTH = 8


def validate_installer_password(password: Optional[str]) -> Optional[str]:
    """Return an error message, or None when the password is acceptable."""
    p = password or ""
    if len(p) < INSTALLER_PASSWORD_MIN_LENGTH:
        return f"Password must be at least {INSTALLER_PASSWORD_MIN_LENGTH} characters long."
    # Letter + digit baseline matches most hosted auth password policies
    if not re.search(r"[A-Za-z]", p) or not re.search(r"\d", p):
        return "Use at least 1 letter and 1 number."
    return None
