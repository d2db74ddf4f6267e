# core/identity.py
from core.exceptions import InputValidationError


def normalize_email(raw_email) -> str:
    """
    Canonicalizes a raw email into the identity key used for every session lookup.

    Trims surrounding whitespace and case-folds, so '  A@B.com ' and 'a@b.com' map to the
    same key. Anything that is not a non-blank string is rejected.
    """
    if not isinstance(raw_email, str):
        raise InputValidationError("Email is required and must be a string")
    key = raw_email.strip().lower()
    if not key:
        raise InputValidationError("Email is required and must be a string")
    if "@" not in key:
        raise InputValidationError(f"'{raw_email.strip()}' is not a valid email address")
    return key
