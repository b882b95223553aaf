import re
import uuid
from typing import Optional

from crm.config import settings

E164_MIN_DIGITS = 8
E164_MAX_DIGITS = 15
NATIONAL_NUMBER_LENGTHS = (10, 11)


def normalize_email(value: Optional[str]) -> Optional[str]:
    v = (value or "").strip().lower()
    return v or None


def normalize_phone(value: Optional[str], default_country_code: Optional[str] = None) -> Optional[str]:
    """E.164 (``+<digits>``) or None.

    Numbers without ``+``/``00`` and with a national length get the default
    country code; anything else is taken as already international.

    This is a length heuristic, not a numbering-plan parser:

    * "National length" means 10 or 11 digits after trunk zeros are dropped,
      which fits the default country (Brazil, 55) and NANP-style plans. A
      local number of another length in the default country is taken as
      international as-is, so ``987654321`` becomes ``+987654321``.
    * Country codes and per-country number lengths are not validated. Any
      8 to 15 digit string not starting with 0 is accepted.
    * Extensions and vanity letters are not understood. Non-digits are
      dropped, so ``ext. 12`` is merged into the number.

    Contacts must therefore be stored in the same E.164 form for identity
    matching to find them.
    """
    v = (value or "").strip()
    if not v:
        return None
    international = v.startswith("+") or v.startswith("00")
    digits = re.sub(r"\D", "", v)
    if v.startswith("00"):
        digits = digits[2:]
    if not international:
        national = digits.lstrip("0")
        if len(national) in NATIONAL_NUMBER_LENGTHS:
            digits = (default_country_code or settings.default_phone_country_code) + national
    if not (E164_MIN_DIGITS <= len(digits) <= E164_MAX_DIGITS) or digits.startswith("0"):
        return None
    return f"+{digits}"


def sanitize_uuid(value: Optional[str]) -> Optional[str]:
    """Canonical lower-case UUID string, or None."""
    if not value:
        return None
    try:
        return str(uuid.UUID(str(value).strip()))
    except ValueError:
        return None
