"""
Canonical JSON encoding (RFC 8785 / JCS).

Every byte string that is hashed or signed goes through ``canonicalize`` so
that structurally equal values always produce the same bytes:

- object keys sorted by their UTF-16 code units
- no insignificant whitespace
- numbers in ECMAScript shortest form (``1.0`` encodes as ``1``)
- strings escaped minimally, output is UTF-8
"""

from __future__ import annotations

import json
import math
from typing import Any, List, Set

from claimattest.protocol.enums import ErrorKind
from claimattest.protocol.errors import ClaimAttestError


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def json_loads(s: str) -> Any:
    return json.loads(s)


def canonicalize(value: Any) -> bytes:
    """Encode ``value`` canonically. Raises ClaimAttestError(ENCODING_ERROR)."""
    out: List[str] = []
    _encode(value, out, set())
    text = "".join(out)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ClaimAttestError(
            "Value contains a string that is not valid Unicode", ErrorKind.ENCODING_ERROR, e
        ) from e


def canonicalize_str(value: Any) -> str:
    return canonicalize(value).decode("utf-8")


def _encode(value: Any, out: List[str], active: Set[int]) -> None:
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, (int, float)):
        out.append(format_number(value))
    elif isinstance(value, dict):
        _enter(value, active)
        keys = list(value.keys())
        for key in keys:
            if not isinstance(key, str):
                raise ClaimAttestError(
                    f"Object keys must be strings, got {type(key).__name__}",
                    ErrorKind.ENCODING_ERROR,
                )
        out.append("{")
        for i, key in enumerate(sorted(keys, key=_utf16_key)):
            if i:
                out.append(",")
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":")
            _encode(value[key], out, active)
        out.append("}")
        active.discard(id(value))
    elif isinstance(value, (list, tuple)):
        _enter(value, active)
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _encode(item, out, active)
        out.append("]")
        active.discard(id(value))
    elif hasattr(value, "to_dict"):
        _encode(value.to_dict(), out, active)
    else:
        raise ClaimAttestError(
            f"Cannot canonicalize value of type {type(value).__name__}",
            ErrorKind.ENCODING_ERROR,
        )


def _enter(container: Any, active: Set[int]) -> None:
    if id(container) in active:
        raise ClaimAttestError("Cannot canonicalize a cyclic structure", ErrorKind.ENCODING_ERROR)
    active.add(id(container))


def _utf16_key(key: str) -> bytes:
    return key.encode("utf-16-be", "surrogatepass")


def format_number(value: Any) -> str:
    """Format a number the way ECMAScript ``Number.prototype.toString`` does."""
    if isinstance(value, int):
        return str(int(value))
    if not math.isfinite(value):
        raise ClaimAttestError(f"Cannot canonicalize non-finite number {value!r}", ErrorKind.ENCODING_ERROR)
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    digits, point = _shortest_digits(abs(value))
    k = len(digits)

    if k <= point <= 21:
        body = digits + "0" * (point - k)
    elif 0 < point <= 21:
        body = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        body = "0." + "0" * (-point) + digits
    else:
        exponent = point - 1
        exp_sign = "+" if exponent >= 0 else "-"
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        body = f"{mantissa}e{exp_sign}{abs(exponent)}"
    return sign + body


def _shortest_digits(value: float):
    """
    Return (digits, point) such that value == 0.<digits> * 10**point, using
    the shortest round-tripping representation Python's repr already picks.
    """
    text = repr(value)
    exponent = 0
    if "e" in text:
        text, exp_text = text.split("e")
        exponent = int(exp_text)
    if "." in text:
        int_part, frac_part = text.split(".")
    else:
        int_part, frac_part = text, ""
    raw = int_part + frac_part
    stripped = raw.lstrip("0")
    leading_zeros = len(raw) - len(stripped)
    digits = stripped.rstrip("0") or "0"
    point = len(int_part) + exponent - leading_zeros
    return digits, point
