"""
Normalization helpers shared by the sync path and the seed CLI.

Organization names are matched by their normalized form, so both paths must
go through ``normalize_org_name``.
"""

import re
from typing import Any, Mapping, Optional

_PHONE_STRIP_RE = re.compile(r"[^\d+]")


def normalize_org_name(
    name: Optional[str],
    aliases: Optional[Mapping[str, str]] = None
) -> Optional[str]:
    """
    Trim and uppercase an organization name, then apply the alias map.

    Alias keys are compared in normalized form as well, so ``{"acme": "ACME CORP"}``
    and ``{"ACME": "ACME CORP"}`` behave the same.

    Returns:
        The normalized key, or None for empty/blank input
    """
    key = (name or "").strip().upper()
    if not key:
        return None
    if aliases:
        for alias, canonical in aliases.items():
            if alias.strip().upper() == key:
                return canonical.strip().upper() or key
    return key


def normalize_email(email: Optional[str]) -> Optional[str]:
    value = (email or "").strip().lower()
    return value or None


def email_domain(email: Optional[str]) -> Optional[str]:
    """Domain part of an email address, lower-cased."""
    if not email:
        return None
    at = email.find("@")
    if at < 0 or at == len(email) - 1:
        return None
    return email[at + 1:].strip().lower() or None


def email_local_part(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    at = email.find("@")
    return email[:at] if at > 0 else None


def clean_phone(phone: Any) -> Optional[str]:
    """Keep digits and '+' only."""
    if phone is None:
        return None
    cleaned = _PHONE_STRIP_RE.sub("", str(phone))
    return cleaned or None


def to_int(value: Any) -> Optional[int]:
    """
    Coerce a remote identifier (int or numeric string) to int.

    Returns None for missing, blank, non-numeric or boolean values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None
