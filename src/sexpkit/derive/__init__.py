"""
Converter derivation from type descriptors.
"""

from .converter import Converter, ToSexp, OfSexp
from .engine import Deriver, default_deriver, derive, family, values_equal
from .primitives import (
    PRIMITIVE_CONVERTERS, PRIMITIVE_DTYPES,
    UNIT_CONVERTER, BOOL_CONVERTER, INT_CONVERTER, FLOAT_CONVERTER,
    STRING_CONVERTER, CHAR_CONVERTER, BYTES_CONVERTER, SEXP_CONVERTER,
    sexp_of_unit, unit_of_sexp, sexp_of_bool, bool_of_sexp, sexp_of_int, int_of_sexp,
    sexp_of_float, float_of_sexp, sexp_of_string, string_of_sexp,
    sexp_of_char, char_of_sexp, sexp_of_bytes, bytes_of_sexp,
)
