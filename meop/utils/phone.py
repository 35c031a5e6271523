from __future__ import annotations

import re

from ..errors import StepConfigurationError

_NON_DIGITS = re.compile(r"\D")


def format_phone_e164(phone: str) -> str:
    """Normalize ``phone`` to E.164.

    Ten digit numbers are treated as US numbers and get ``+1``; eleven digit
    numbers starting with ``1`` get ``+``. Anything else keeps its digits with
    a leading ``+``.
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits:
        raise StepConfigurationError(f"Phone number is invalid: {phone!r}")
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"
