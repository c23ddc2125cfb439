"""Email address normalization and display-name derivation.

Token records, rate-limit identities, and user lookups are all keyed by
the normalized form produced here.
"""

from email_validator import EmailNotValidError, validate_email

from app.core.errors import ValidationError

_MAX_EMAIL_LENGTH = 255
# users.first_name column width
_MAX_NAME_LENGTH = 100


def normalize_email(email: str) -> str:
    """Validate an email address and return its normalized form.

    Normalization is trim + lower-case of the whole address. Deliverability
    (DNS) is not checked.

    Args:
        email: Raw email address from the caller.

    Returns:
        Trimmed, lower-cased email address.

    Raises:
        ValidationError: If the address is empty, too long, or malformed.
    """
    candidate = (email or "").strip().lower()
    if not candidate:
        raise ValidationError("Email is required")
    if len(candidate) > _MAX_EMAIL_LENGTH:
        raise ValidationError("Email address is too long")
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("Please provide a valid email address") from exc
    return candidate


def derive_first_name(email: str) -> str:
    """Derive a display first name from the email local part.

    >>> derive_first_name("jane.doe@example.com")
    'Jane.doe'
    """
    local_part = email.split("@", 1)[0]
    return (local_part[:1].upper() + local_part[1:])[:_MAX_NAME_LENGTH]
