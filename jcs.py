"""RFC 8785 JCS (JSON Canonicalization Scheme) for claim hashing.

Claim identifiers and witness seeds are hashed from canonical text, so the
output here must match the JavaScript ``canonicalize`` package byte for
byte: keys ordered by UTF-16 code units, no insignificant whitespace, and
numbers printed the way ECMAScript ``Number.prototype.toString`` prints
them. Any drift between implementations makes verification fail silently.
"""
from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

__all__ = ["canonicalize", "canonicalize_bytes"]

# Largest integer a double represents exactly (Number.MAX_SAFE_INTEGER).
MAX_SAFE_INTEGER = 2**53 - 1


def canonicalize(value: Any) -> str:
    """Return the canonical JSON text for *value*."""
    return _serialize(value, set())


def canonicalize_bytes(value: Any) -> bytes:
    """Serialize *value* to canonical JSON as UTF-8 bytes."""
    return canonicalize(value).encode("utf-8")


def _serialize(value: Any, active: set[int]) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, (int, float, Decimal)):
        return _encode_number(value)
    if isinstance(value, Mapping):
        with _CycleGuard(value, active):
            items = []
            for key, item in value.items():
                if not isinstance(key, str):
                    raise TypeError("canonical JSON requires string keys")
                items.append((key, item))
            items.sort(key=lambda kv: kv[0].encode("utf-16-be", "surrogatepass"))
            body = ",".join(
                f"{_encode_string(key)}:{_serialize(item, active)}" for key, item in items
            )
        return "{" + body + "}"
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        with _CycleGuard(value, active):
            body = ",".join(_serialize(item, active) for item in value)
        return "[" + body + "]"
    raise TypeError(f"unsupported type for canonical JSON: {type(value)!r}")


class _CycleGuard:
    """Track containers on the current path to reject cyclic values."""

    def __init__(self, container: Any, active: set[int]):
        self.key = id(container)
        self.active = active

    def __enter__(self):
        if self.key in self.active:
            raise ValueError("cyclic structure cannot be canonicalized")
        self.active.add(self.key)

    def __exit__(self, *exc):
        self.active.discard(self.key)
        return False


def _encode_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _encode_number(value: Any) -> str:
    if isinstance(value, int) and abs(value) <= MAX_SAFE_INTEGER:
        return str(value)
    number = float(value)
    if not math.isfinite(number):
        raise ValueError("non-finite number not permitted in canonical JSON")
    if number == 0:
        return "0"
    return _format_double(number)


def _format_double(number: float) -> str:
    # repr() yields the shortest digit string that round-trips, which is the
    # digit sequence ECMAScript uses; only the layout below differs.
    sign = "-" if number < 0 else ""
    dec = Decimal(repr(abs(number))).normalize()
    _, digit_tuple, exponent = dec.as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits

    e = n - 1
    exp = f"e+{e}" if e >= 0 else f"e-{-e}"
    if k == 1:
        return sign + digits + exp
    return sign + digits[0] + "." + digits[1:] + exp
