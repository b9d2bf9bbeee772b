"""
utils/phone.py
--------------
Phone number normalisation shared by the scheduler and the client directory.
"""

import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str:
    """
    Reduce a stored phone number to its international digits form.

    - strips everything that is not a digit;
    - a leading national "8" prefix becomes the "7" country code;
    - a number without the "7" country code gets it prepended.

    Examples:
        "+7 (912) 345-67-89" -> "79123456789"
        "8 912 345 67 89"    -> "79123456789"
        "9123456789"         -> "79123456789"

    Returns:
        The normalised digits, or "" if the input holds no digits at all.
    """
    phone = _NON_DIGITS.sub("", raw or "")
    if not phone:
        return ""
    if phone.startswith("8"):
        phone = "7" + phone[1:]
    if not phone.startswith("7"):
        phone = "7" + phone
    return phone
