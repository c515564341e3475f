"""
sexpkit: S-expression values, parsing and printing, and converters derived
from type descriptors.
"""

from .sexp import (
    Atom, Sexp, SexpList, EMPTY, atom, sexp_list,
    Parser, parse, parse_many, iter_parse, load_sexp, load_sexps,
    to_string, to_string_hum, to_string_mach, save_sexp, save_sexps,
    to_sexpdata, from_sexpdata,
)
from .shared import (
    SourceLocation, SexpError, ParseError, DescriptorError, ConversionError,
    ArityMismatchError, UnknownTagError, MissingFieldError, DuplicateFieldError,
    UnknownFieldError, UnexpectedShapeError, OpaqueReconstructionError,
)
from .types import (
    Primitive, Product, Record, Field, Sum, PolyVariant, Constructor,
    ListOf, Array, Option, Opaque, TypeParam, TypeDefinition, Recursive, Applied, Custom,
    Optionality, DropPolicy, Variant,
    UNIT, BOOL, INT, FLOAT, STRING, CHAR, BYTES, SEXP,
)
from .derive import Converter, Deriver, default_deriver, derive, family
from .registry import ExceptionRegistry, default_registry, register, sexp_of_exn
from .utils import flags

__version__ = "0.1.0"
