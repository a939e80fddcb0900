"""Size-checked arithmetic for analysis scripts.

Big-integer powers, products, shifts and sequence repetition run as one C
call that holds the GIL, so the trace deadline cannot interrupt them. The
script's ``**``, ``*`` and ``<<`` operators are rewritten to these helpers,
which refuse any result larger than the limits below before computing it.
"""

from __future__ import annotations

import math
from typing import Any

MAX_INT_BITS = 1_000_000
MAX_SEQUENCE_LENGTH = 10_000_000

_SEQUENCE_TYPES = (str, bytes, bytearray, list, tuple)


class ResultTooLarge(OverflowError):
    pass


def _is_int(value: Any) -> bool:
    return isinstance(value, int)


def checked_pow(base: Any, exponent: Any) -> Any:
    if _is_int(base) and _is_int(exponent) and exponent > 0 and abs(base) > 1:
        if exponent * math.log2(abs(base)) > MAX_INT_BITS:
            raise ResultTooLarge(f"Power would exceed {MAX_INT_BITS:,} bits")
    return base ** exponent


def _check_repeat(sequence: Any, times: int) -> None:
    if times > 0 and len(sequence) * times > MAX_SEQUENCE_LENGTH:
        raise ResultTooLarge(
            f"Repeating a {type(sequence).__name__} of length {len(sequence):,} "
            f"would exceed {MAX_SEQUENCE_LENGTH:,} items"
        )


def checked_mul(left: Any, right: Any) -> Any:
    if _is_int(left) and _is_int(right):
        if left.bit_length() + right.bit_length() > MAX_INT_BITS:
            raise ResultTooLarge(f"Product would exceed {MAX_INT_BITS:,} bits")
    elif isinstance(left, _SEQUENCE_TYPES) and _is_int(right):
        _check_repeat(left, right)
    elif _is_int(left) and isinstance(right, _SEQUENCE_TYPES):
        _check_repeat(right, left)
    return left * right


def checked_lshift(value: Any, shift: Any) -> Any:
    if _is_int(value) and _is_int(shift) and shift > 0 and value.bit_length() + shift > MAX_INT_BITS:
        raise ResultTooLarge(f"Shift would exceed {MAX_INT_BITS:,} bits")
    return value << shift


def checked_range(*args: int) -> range:
    span = range(*args)
    if len(span) > MAX_SEQUENCE_LENGTH:
        raise ResultTooLarge(f"range() of {len(span):,} items exceeds {MAX_SEQUENCE_LENGTH:,}")
    return span
