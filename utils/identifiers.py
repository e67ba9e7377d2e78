import re

import phonenumbers

from security.errors import ValidationError

_EMAIL = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def to_e164(value: str):
    """
    Returns the E.164 form of an international phone number, or None when
    value is not one. Only '+'-prefixed input is considered, there is no
    default region to guess national numbers against.
    """
    if not isinstance(value, str) or not value.strip().startswith("+"):
        return None
    try:
        num = phonenumbers.parse(value, None)
    except phonenumbers.NumberParseException:
        return None
    # possible, not valid: unassigned ranges such as +1 555 still pass
    if not phonenumbers.is_possible_number(num):
        return None
    return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.E164)


def is_phone(value: str) -> bool:
    return to_e164(value) is not None


def is_email(value: str) -> bool:
    return isinstance(value, str) and len(value) <= 255 and _EMAIL.fullmatch(value) is not None


def normalize_identifier(value: str) -> str:
    """
    Canonical form used as a storage/lock key.

    Email-shaped identifiers compare case-insensitively and phone numbers
    collapse to E.164, so "+1 555 123 4567" and "+15551234567" share a key.
    Opaque login names are kept as typed.
    """
    value = (value or "").strip()
    if is_email(value):
        return normalize_email(value)
    return to_e164(value) or value


def require_otp_identifier(value) -> str:
    """
    Returns the normalized identifier or raises ValidationError when it is
    neither an international phone number nor an email address.
    """
    if not isinstance(value, str):
        raise ValidationError("Identifier must be a phone number or email")
    value = normalize_identifier(value)
    if is_phone(value) or is_email(value):
        return value
    raise ValidationError("Invalid identifier. Use E.164 phone format (+15551234567) or an email address")
