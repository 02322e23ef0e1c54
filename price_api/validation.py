"""Symbol validation.

Pure functions, no I/O. Accepted symbols come back upper-cased so callers
never have to normalise them a second time.
"""

import re
from typing import Any, List

from price_api.errors import ValidationError

SYMBOL_PATTERN = re.compile(r"[A-Za-z0-9]+")
MIN_SYMBOL_LENGTH = 2
MAX_SYMBOL_LENGTH = 20
DEFAULT_MAX_BATCH_SYMBOLS = 20


def validate_symbol(value: Any) -> str:
    """Return ``value`` upper-cased, or raise :class:`ValidationError`."""
    if not isinstance(value, str) or not value:
        raise ValidationError("Symbol must be a non-empty string", {"symbol": value})

    # checked on the raw input: str.upper() can turn non-ASCII into ASCII
    if not SYMBOL_PATTERN.fullmatch(value):
        raise ValidationError(
            "Symbol must contain only letters and numbers", {"symbol": value}
        )

    if not MIN_SYMBOL_LENGTH <= len(value) <= MAX_SYMBOL_LENGTH:
        raise ValidationError(
            f"Symbol must be between {MIN_SYMBOL_LENGTH} and {MAX_SYMBOL_LENGTH} characters",
            {"symbol": value},
        )

    return value.upper()


def validate_batch(values: Any, max_symbols: int = DEFAULT_MAX_BATCH_SYMBOLS) -> List[str]:
    """Validate a whole batch request and return the normalised symbols.

    The batch is rejected as a unit: the first bad entry fails the request and
    the message names its index and original value.
    """
    if not isinstance(values, (list, tuple)):
        raise ValidationError("Symbols must be an array")

    if not values:
        raise ValidationError("Symbols array cannot be empty")

    if len(values) > max_symbols:
        raise ValidationError(
            f"Cannot request more than {max_symbols} symbols at once",
            {"provided": len(values), "max": max_symbols},
        )

    symbols = []
    for index, value in enumerate(values):
        try:
            symbols.append(validate_symbol(value))
        except ValidationError as exc:
            raise ValidationError(
                f"Invalid symbol at index {index} ({value!r}): {exc.message}",
                {"index": index, "symbol": value},
            ) from exc

    seen = set()
    duplicates = []
    for symbol in symbols:
        if symbol in seen and symbol not in duplicates:
            duplicates.append(symbol)
        seen.add(symbol)
    if duplicates:
        raise ValidationError(
            "Duplicate symbols are not allowed",
            {"provided": len(symbols), "unique": len(seen), "duplicates": duplicates},
        )

    return symbols
