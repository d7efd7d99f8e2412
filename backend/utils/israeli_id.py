"""Israeli national ID (Teudat Zehut) check-digit validation."""
import re

_NON_DIGITS = re.compile(r"\D")


def is_valid_israeli_id(value) -> bool:
    """Luhn-style check over the ID padded to 9 digits.

    Non-digit characters are ignored; 5 to 9 digits are accepted.
    """
    digits = _NON_DIGITS.sub("", str(value or ""))
    if not 5 <= len(digits) <= 9:
        return False
    digits = digits.zfill(9)
    total = 0
    for index, char in enumerate(digits):
        num = int(char) * (index % 2 + 1)
        total += num - 9 if num > 9 else num
    return total % 10 == 0
