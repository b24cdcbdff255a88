"""Phone number normalisation and fingerprinting.

Contact matching never sees raw numbers: each side normalises a number
to a canonical ``+<digits>`` form and exchanges only its SHA-256 hex
digest. There is no salt or key, so the same number always produces the
same fingerprint on every device and on the server.
"""

import hashlib
import re

from wakecheck.config import settings

_NON_DIALABLE = re.compile(r"[^0-9+]")

# Domestic trunk-prefixed numbers carry the country code as the first digit
_DOMESTIC_LENGTH = 10


def normalize_phone_number(raw: str, country_code: str | None = None) -> str:
    """Normalise a phone number to canonical ``+<digits>`` form.

    Rules, applied to the number with everything except digits and ``+``
    stripped:

    - already ``+``-prefixed: returned as is
    - 10 digits: treated as domestic, the default country code is prepended
    - 11 digits starting with the country code: promoted to ``+`` form
    - anything else: ``+`` is prepended as a best effort

    Args:
        raw: Number as typed or as stored in the address book.
        country_code: Calling code for domestic numbers; defaults to
            ``settings.default_country_code``.

    Returns:
        Canonical number, or an empty string if ``raw`` has no digits.
    """
    code = country_code or settings.default_country_code
    normalized = _NON_DIALABLE.sub("", raw)

    if not normalized.lstrip("+"):
        return ""

    if normalized.startswith("+"):
        return normalized

    if len(normalized) == _DOMESTIC_LENGTH:
        return f"+{code}{normalized}"

    if len(normalized) == _DOMESTIC_LENGTH + len(code) and normalized.startswith(code):
        return f"+{normalized}"

    return f"+{normalized}"


def fingerprint_phone_number(canonical: str) -> str:
    """Return the lowercase hex SHA-256 of the canonical number's UTF-8 bytes."""
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def phone_fingerprint(raw: str) -> str:
    """Normalise then fingerprint a raw number.

    Raises:
        ValueError: If the number contains no digits.
    """
    canonical = normalize_phone_number(raw)
    if not canonical:
        raise ValueError("Phone number must contain digits")
    return fingerprint_phone_number(canonical)
