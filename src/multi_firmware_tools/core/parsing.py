"""
Centralized parsing helpers for CLI values.

Front ends must import these helpers rather than re-implement.
"""

from typing import Optional


def parse_offset(value: Optional[str]) -> Optional[int]:
    """
    Parse offset value from string, supporting multiple formats.

    Accepts:
        - Decimal: "8192"
        - Hex with 0x prefix: "0x2000" or "0X2000"
        - Hex with h suffix: "2000h" or "2000H"
        - None or empty for "not given"

    Returns:
        Parsed integer offset, or None if value is None or empty.

    Raises:
        ValueError: If value cannot be parsed or is negative.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        if value.lower().startswith("0x"):
            result = int(value, 16)
        elif value.lower().endswith("h"):
            result = int(value[:-1], 16)
        else:
            result = int(value)
    except ValueError:
        raise ValueError(
            f"Invalid offset '{value}'. Use decimal (8192), hex (0x2000), or suffix (2000h)."
        )
    if result < 0:
        raise ValueError(f"Offset must not be negative: '{value}'")
    return result


_YES = {"y", "yes"}
_NO = {"n", "no"}
_CANCEL = {"c", "cancel"}


def parse_yes_no_cancel(value: str) -> Optional[bool]:
    """
    Parse a yes/no/cancel answer.

    Returns True for yes, False for no, None for cancel.

    Raises:
        ValueError: If the answer is not recognized.
    """
    answer = value.strip().lower()
    if answer in _YES:
        return True
    if answer in _NO:
        return False
    if answer in _CANCEL:
        return None
    raise ValueError(f"Invalid answer '{value}'. Use yes, no or cancel.")
