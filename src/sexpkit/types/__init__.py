"""
Type descriptor model.
"""

from .descriptors import (
    Descriptor, DescriptorKind, DescriptorVisitor,
    Primitive, Product, Record, Field, Sum, PolyVariant, Constructor,
    ListOf, Array, Option, Opaque, TypeParam, TypeDefinition, Recursive, Applied, Custom,
    Optionality, DropPolicy, MISSING,
    UNIT, BOOL, INT, FLOAT, STRING, CHAR, BYTES, SEXP,
)
from .variant import Variant
