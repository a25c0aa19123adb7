import re

_NON_DIGITS = re.compile(r"\D")


def only_digits(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


def format_whatsapp_address(phone: str) -> str | None:
    """``whatsapp:+55...`` address for a Brazilian number, or None when malformed."""
    digits = only_digits(phone)
    # DDD + 8 or 9 digit number, optionally already carrying the 55 country code
    if len(digits) in (10, 11):
        digits = f"55{digits}"
    elif not (len(digits) in (12, 13) and digits.startswith("55")):
        return None
    return f"whatsapp:+{digits}"


def mask_cpf(cpf: str) -> str:
    digits = only_digits(cpf)
    if len(digits) != 11:
        return digits
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"
