"""
Converters for the built-in primitive descriptors.

All atoms are plain text; numeric and boolean meaning lives here.
"""

import math
import operator
import re
from typing import Any, Dict

import numpy as np

from .converter import Converter
from ..sexp.value import EMPTY, Atom, Sexp, SexpList
from ..shared.errors import UnexpectedShapeError
from ..utils.config import BOOLEAN_FALSE_LITERAL, BOOLEAN_TRUE_LITERAL

_INT_RE = re.compile(r"([+-]?)(0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|[0-9][0-9_]*)")
_INT_BASES = {"x": 16, "o": 8, "b": 2}
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_FLOAT_SPECIALS = {"nan": math.nan, "inf": math.inf, "+inf": math.inf, "-inf": -math.inf}


def _expect_atom(what: str, expected: str, sexp: Sexp) -> str:
    if not isinstance(sexp, Atom):
        raise UnexpectedShapeError(what, expected, sexp, detail="got a list")
    return sexp.text


def sexp_of_unit(value: Any) -> Sexp:
    if value is not None:
        raise TypeError(f"sexp_of_unit: expected None, got {type(value).__name__}")
    return EMPTY


def unit_of_sexp(sexp: Sexp) -> None:
    if isinstance(sexp, SexpList) and not sexp.items:
        return None
    raise UnexpectedShapeError("unit_of_sexp", "()", sexp)


def sexp_of_bool(value: Any) -> Sexp:
    if not isinstance(value, (bool, np.bool_)):
        raise TypeError(f"sexp_of_bool: expected bool, got {type(value).__name__}")
    return Atom(BOOLEAN_TRUE_LITERAL if value else BOOLEAN_FALSE_LITERAL)


def bool_of_sexp(sexp: Sexp) -> bool:
    text = _expect_atom("bool_of_sexp", "true or false", sexp)
    if text in (BOOLEAN_TRUE_LITERAL, "True"):
        return True
    if text in (BOOLEAN_FALSE_LITERAL, "False"):
        return False
    raise UnexpectedShapeError("bool_of_sexp", "true or false", sexp)


def sexp_of_int(value: Any) -> Sexp:
    if isinstance(value, (bool, np.bool_)):
        raise TypeError("sexp_of_int: expected int, got bool")
    return Atom(str(operator.index(value)))


def int_of_sexp(sexp: Sexp) -> int:
    """Decimal, 0x/0o/0b prefixed, with optional sign and underscores."""
    text = _expect_atom("int_of_sexp", "an integer atom", sexp)
    match = _INT_RE.fullmatch(text)
    if match is not None:
        sign, digits = match.groups()
        base = _INT_BASES.get(digits[1:2].lower(), 10) if len(digits) > 1 and digits[0] == "0" else 10
        if base != 10:
            digits = digits[2:]
        digits = digits.replace("_", "")
        if digits:
            result = int(digits, base)
            return -result if sign == "-" else result
    raise UnexpectedShapeError("int_of_sexp", "an integer atom", sexp)


def sexp_of_float(value: Any) -> Sexp:
    number = float(value)
    if math.isnan(number):
        return Atom("nan")
    if math.isinf(number):
        return Atom("inf" if number > 0 else "-inf")
    return Atom(repr(number))


def float_of_sexp(sexp: Sexp) -> float:
    """Decimal or exponent notation, plus the ``nan``, ``inf`` and ``-inf`` atoms."""
    text = _expect_atom("float_of_sexp", "a float atom", sexp)
    if text in _FLOAT_SPECIALS:
        return _FLOAT_SPECIALS[text]
    if _FLOAT_RE.fullmatch(text) is None:
        raise UnexpectedShapeError("float_of_sexp", "a float atom", sexp)
    return float(text)


def sexp_of_string(value: Any) -> Sexp:
    if not isinstance(value, str):
        raise TypeError(f"sexp_of_string: expected str, got {type(value).__name__}")
    return Atom(value)


def string_of_sexp(sexp: Sexp) -> str:
    return _expect_atom("string_of_sexp", "an atom", sexp)


def sexp_of_char(value: Any) -> Sexp:
    if not isinstance(value, str) or len(value) != 1:
        raise TypeError(f"sexp_of_char: expected a one-character str, got {value!r}")
    return Atom(value)


def char_of_sexp(sexp: Sexp) -> str:
    text = _expect_atom("char_of_sexp", "a single-character atom", sexp)
    if len(text) != 1:
        raise UnexpectedShapeError("char_of_sexp", "a single-character atom", sexp)
    return text


def sexp_of_bytes(value: Any) -> Sexp:
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"sexp_of_bytes: expected bytes, got {type(value).__name__}")
    return Atom(bytes(value).decode("latin-1"))


def bytes_of_sexp(sexp: Sexp) -> bytes:
    text = _expect_atom("bytes_of_sexp", "an atom", sexp)
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError:
        raise UnexpectedShapeError("bytes_of_sexp", "an atom of 8-bit characters", sexp) from None


def sexp_of_sexp(value: Any) -> Sexp:
    if not isinstance(value, (Atom, SexpList)):
        raise TypeError(f"sexp_of_sexp: expected a Sexp, got {type(value).__name__}")
    return value


def sexp_identity(sexp: Sexp) -> Sexp:
    return sexp


UNIT_CONVERTER = Converter("unit", sexp_of_unit, unit_of_sexp)
BOOL_CONVERTER = Converter("bool", sexp_of_bool, bool_of_sexp)
INT_CONVERTER = Converter("int", sexp_of_int, int_of_sexp)
FLOAT_CONVERTER = Converter("float", sexp_of_float, float_of_sexp)
STRING_CONVERTER = Converter("string", sexp_of_string, string_of_sexp)
CHAR_CONVERTER = Converter("char", sexp_of_char, char_of_sexp)
BYTES_CONVERTER = Converter("bytes", sexp_of_bytes, bytes_of_sexp)
SEXP_CONVERTER = Converter("sexp", sexp_of_sexp, sexp_identity)

PRIMITIVE_CONVERTERS: Dict[str, Converter] = {
    c.name: c for c in (
        UNIT_CONVERTER, BOOL_CONVERTER, INT_CONVERTER, FLOAT_CONVERTER,
        STRING_CONVERTER, CHAR_CONVERTER, BYTES_CONVERTER, SEXP_CONVERTER,
    )
}

# numpy dtypes for arrays of primitives; everything else is stored as object
PRIMITIVE_DTYPES: Dict[str, Any] = {
    "int": np.int64,
    "float": np.float64,
    "bool": np.bool_,
}
