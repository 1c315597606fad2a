"""Input sanitizers for user-editable profile fields."""

USERNAME_MIN_LENGTH = 1
USERNAME_MAX_LENGTH = 50


def sanitize_string(value: str) -> str:
    """Trim whitespace and strip angle brackets."""
    return value.strip().replace("<", "").replace(">", "")


def sanitize_email(value: str) -> str:
    """Trim whitespace and lowercase."""
    return value.strip().lower()


def sanitize_username(value: str) -> str:
    """Sanitize a username and enforce its length bounds.

    Raises:
        ValueError: If the sanitized username is empty or too long.
    """
    username = sanitize_string(value)
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        msg = (
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} "
            "characters long"
        )
        raise ValueError(msg)
    return username
