"""Bangladeshi mobile number helpers used when building courier payloads."""

import re

BD_PHONE_REGEX = re.compile(r"^(?:\+?88)?01[3-9]\d{8}$")


def is_valid_bd_phone(phone: str | None) -> bool:
    return bool(phone) and bool(BD_PHONE_REGEX.match(str(phone).strip()))


def normalize_bd_phone(phone: str | None) -> str | None:
    """Reduce +8801XXXXXXXXX / 8801XXXXXXXXX / 08801... forms to the 11-digit local form.

    Anything that does not normalise cleanly is returned unchanged.
    """
    if not phone:
        return phone
    digits = re.sub(r"\D", "", str(phone))
    if digits.startswith("88") and len(digits) == 13:
        digits = digits[2:]
    if digits.startswith("088") and len(digits) == 14:
        digits = digits[3:]
    if len(digits) == 11 and digits.startswith("01"):
        return digits
    return phone
