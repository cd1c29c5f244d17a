"""Input validators for the capture steps of the booking dialogue.

Both functions are total: any input, including non-strings, yields a bool.
"""

import re

MIN_NAME_LENGTH = 3

DATE_TIME_PATTERN = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4}) (\d{1,2}):(\d{2})", re.ASCII)


def is_valid_date_time(value: str) -> bool:
    """Check a ``dd/mm/yyyy hh:mm`` string (1-2 digit day, month and hour).

    Field ranges are checked, calendar correctness is not: ``31/2/2025 10:00``
    passes.
    """
    if not isinstance(value, str):
        return False
    match = DATE_TIME_PATTERN.fullmatch(value)
    if not match:
        return False

    day, month, _year, hour, minute = (int(group) for group in match.groups())
    return (
        1 <= month <= 12
        and 1 <= day <= 31
        and 0 <= hour <= 23
        and 0 <= minute <= 59
    )


def _parses_as_number(text: str) -> bool:
    """True for anything a number parser would take: decimals, exponents,
    ``inf``/``nan``, digit separators and prefixed integers like ``0x1F``."""
    try:
        float(text)
        return True
    except ValueError:
        pass
    try:
        int(text, 0)
        return True
    except ValueError:
        return False


def is_valid_name(value: str) -> bool:
    """A name needs at least three characters and must not be a bare number."""
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if len(trimmed) < MIN_NAME_LENGTH:
        return False
    return not _parses_as_number(trimmed)
