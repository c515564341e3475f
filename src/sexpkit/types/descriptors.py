"""
Type Descriptors

A reflective description of a data type's shape. The derivation engine walks
these to build sexp converters. Descriptors are immutable once built; the only
exception is TypeDefinition, whose body is assigned exactly once so that
recursive types can refer to themselves.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Sequence, Tuple, TypeVar, Union
from abc import ABC, abstractmethod
from enum import Enum

from ..shared.errors import DescriptorError


class DescriptorKind(Enum):
    """Descriptor kind, used for visitor dispatch."""
    PRIMITIVE = "primitive"
    PRODUCT = "product"
    RECORD = "record"
    SUM = "sum"
    POLY_VARIANT = "poly_variant"
    LIST = "list"
    ARRAY = "array"
    OPTION = "option"
    OPAQUE = "opaque"
    TYPE_PARAM = "type_param"
    RECURSIVE = "recursive"
    APPLIED = "applied"
    CUSTOM = "custom"


class Optionality(Enum):
    """
    How a record field behaves when it is absent from the input.

    REQUIRED: error unless the field has a default
    OPTION: the field's own descriptor is written; absent reads as the
        default, or None (the descriptor must then be an Option)
    SEXP_OPTION: None is omitted, other values written bare; absent reads as
        None, and no other default is allowed
    SEXP_LIST / SEXP_ARRAY: empty is omitted; absent reads as empty
    SEXP_BOOL: True is written as ``(name)``, False omitted; absent reads as False
    """
    REQUIRED = "required"
    OPTION = "option"
    SEXP_OPTION = "sexp_option"
    SEXP_LIST = "sexp_list"
    SEXP_ARRAY = "sexp_array"
    SEXP_BOOL = "sexp_bool"


class DropPolicy(Enum):
    """When a record field is left out of the output."""
    NONE = "none"
    IF_DEFAULT = "drop_if_default"
    IF_DEFAULT_SEXP = "drop_if_default_sexp"
    IF = "drop_if"


class _Missing:
    """Marker for "no default"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

T = TypeVar('T')


@dataclass(frozen=True)
class Descriptor:
    """
    Base of all descriptors.

    Immutable (frozen dataclass); dispatch goes through ``accept`` so callers
    never chain isinstance checks.
    """
    kind: DescriptorKind

    def accept(self, visitor: 'DescriptorVisitor[T]') -> T:
        handler = getattr(visitor, _VISIT_METHODS[self.kind])
        return handler(self)


@dataclass(frozen=True)
class Primitive(Descriptor):
    """Built-in leaf type (int, float, string, ...)."""
    name: str

    def __init__(self, name: str):
        super().__init__(kind=DescriptorKind.PRIMITIVE)
        object.__setattr__(self, 'name', name)

    def __repr__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Product(Descriptor):
    """Tuple of a fixed number of parts; values are Python tuples."""
    parts: Tuple[Descriptor, ...]

    def __init__(self, parts: Sequence[Descriptor]):
        super().__init__(kind=DescriptorKind.PRODUCT)
        object.__setattr__(self, 'parts', tuple(parts))


@dataclass(frozen=True)
class Field:
    """One record field."""
    name: str
    descriptor: Optional[Descriptor] = None
    optionality: Optionality = Optionality.REQUIRED
    default: Any = MISSING
    drop: DropPolicy = DropPolicy.NONE
    drop_if: Optional[Callable[[Any], bool]] = None

    def __post_init__(self):
        if self.drop_if is not None and self.drop is DropPolicy.NONE:
            object.__setattr__(self, 'drop', DropPolicy.IF)

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True)
class Record(Descriptor):
    """
    Named fields, written as ``((name value) ...)``.

    Values are dicts unless ``record_type`` is given, in which case fields are
    read with getattr and values built with ``record_type(**fields)``.
    """
    fields: Tuple[Field, ...]
    record_type: Optional[type] = None
    allow_extra_fields: bool = False

    def __init__(self, fields: Sequence[Field], record_type: Optional[type] = None,
                 allow_extra_fields: bool = False):
        super().__init__(kind=DescriptorKind.RECORD)
        object.__setattr__(self, 'fields', tuple(fields))
        object.__setattr__(self, 'record_type', record_type)
        object.__setattr__(self, 'allow_extra_fields', allow_extra_fields)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)


@dataclass(frozen=True)
class Constructor:
    """
    One case of a Sum or PolyVariant.

    - args: argument descriptors, written after the tag
    - cls: optional Python class for this case (a dataclass whose fields are the
      arguments in order); Variant is used otherwise
    - record: inline record arguments, written ``(Tag (field value) ...)``
    - list_args: a single list argument spliced into the form, ``(Tag a b c)``
    """
    tag: str
    args: Tuple[Descriptor, ...] = ()
    cls: Optional[type] = None
    record: Optional[Record] = None
    list_args: bool = False

    def __post_init__(self):
        if not isinstance(self.args, tuple):
            object.__setattr__(self, 'args', tuple(self.args))

    @property
    def is_constant(self) -> bool:
        return not self.args and self.record is None


@dataclass(frozen=True)
class Sum(Descriptor):
    """Variant type; tags are read case-insensitively."""
    constructors: Tuple[Constructor, ...]

    def __init__(self, constructors: Sequence[Constructor]):
        super().__init__(kind=DescriptorKind.SUM)
        object.__setattr__(self, 'constructors', tuple(constructors))


@dataclass(frozen=True)
class PolyVariant(Descriptor):
    """
    Polymorphic variant; tags must match case exactly.

    A case may itself be a PolyVariant, whose cases are included in order.
    """
    cases: Tuple[Union[Constructor, 'PolyVariant'], ...]

    def __init__(self, cases: Sequence[Union[Constructor, 'PolyVariant']]):
        super().__init__(kind=DescriptorKind.POLY_VARIANT)
        object.__setattr__(self, 'cases', tuple(cases))

    def flatten(self) -> Tuple[Constructor, ...]:
        out = []
        for case in self.cases:
            if isinstance(case, PolyVariant):
                out.extend(case.flatten())
            else:
                out.append(case)
        return tuple(out)


@dataclass(frozen=True)
class ListOf(Descriptor):
    element: Descriptor

    def __init__(self, element: Descriptor):
        super().__init__(kind=DescriptorKind.LIST)
        object.__setattr__(self, 'element', element)


@dataclass(frozen=True)
class Array(Descriptor):
    """One-dimensional numpy array. ``dtype`` defaults from the element."""
    element: Descriptor
    dtype: Any = None

    def __init__(self, element: Descriptor, dtype: Any = None):
        super().__init__(kind=DescriptorKind.ARRAY)
        object.__setattr__(self, 'element', element)
        object.__setattr__(self, 'dtype', dtype)


@dataclass(frozen=True)
class Option(Descriptor):
    inner: Descriptor

    def __init__(self, inner: Descriptor):
        super().__init__(kind=DescriptorKind.OPTION)
        object.__setattr__(self, 'inner', inner)


@dataclass(frozen=True)
class Opaque(Descriptor):
    """Written as a placeholder, never read back."""

    def __init__(self):
        super().__init__(kind=DescriptorKind.OPAQUE)


@dataclass(frozen=True)
class TypeParam(Descriptor):
    """Position of a type parameter; bound to a converter at derivation."""
    index: int
    name: Optional[str] = None

    def __init__(self, index: int, name: Optional[str] = None):
        super().__init__(kind=DescriptorKind.TYPE_PARAM)
        object.__setattr__(self, 'index', index)
        object.__setattr__(self, 'name', name)


class TypeDefinition:
    """
    Named, possibly parametric, possibly recursive type.

    Declare first, then ``define`` the body once; the body may refer back to
    the definition through Recursive. Equality is identity.
    """

    def __init__(self, name: str, params: Sequence[str] = (), body: Optional[Descriptor] = None):
        self.name = name
        self.params = tuple(params)
        self._body = body

    def define(self, body: Descriptor) -> 'TypeDefinition':
        if self._body is not None:
            raise DescriptorError(f"type `{self.name}` is already defined")
        self._body = body
        return self

    @property
    def is_defined(self) -> bool:
        return self._body is not None

    @property
    def body(self) -> Descriptor:
        if self._body is None:
            raise DescriptorError(f"type `{self.name}` is declared but has no body")
        return self._body

    @property
    def arity(self) -> int:
        return len(self.params)

    def __call__(self, *args: Descriptor) -> 'Applied':
        return Applied(self, args)

    def __repr__(self) -> str:
        if self.params:
            return f"{self.name}[{', '.join(self.params)}]"
        return self.name


@dataclass(frozen=True)
class Recursive(Descriptor):
    """
    Reference to a definition resolved on first use.

    ``args`` defaults to the enclosing definition's own parameters, in order.
    """
    definition: TypeDefinition
    args: Optional[Tuple[Descriptor, ...]] = None

    def __init__(self, definition: TypeDefinition, args: Optional[Sequence[Descriptor]] = None):
        super().__init__(kind=DescriptorKind.RECURSIVE)
        object.__setattr__(self, 'definition', definition)
        object.__setattr__(self, 'args', tuple(args) if args is not None else None)


@dataclass(frozen=True)
class Applied(Descriptor):
    """A parametric definition applied to argument descriptors."""
    definition: TypeDefinition
    args: Tuple[Descriptor, ...] = ()

    def __init__(self, definition: TypeDefinition, args: Sequence[Descriptor] = ()):
        super().__init__(kind=DescriptorKind.APPLIED)
        object.__setattr__(self, 'definition', definition)
        object.__setattr__(self, 'args', tuple(args))


@dataclass(frozen=True)
class Custom(Descriptor):
    """A hand-written converter pair used as a leaf."""
    converter: Any

    def __init__(self, converter: Any):
        super().__init__(kind=DescriptorKind.CUSTOM)
        object.__setattr__(self, 'converter', converter)


class DescriptorVisitor(ABC, Generic[T]):
    """Visitor over every descriptor kind."""

    @abstractmethod
    def visit_primitive(self, desc: Primitive) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_product(self, desc: Product) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_record(self, desc: Record) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_sum(self, desc: Sum) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_poly_variant(self, desc: PolyVariant) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_list(self, desc: ListOf) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_array(self, desc: Array) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_option(self, desc: Option) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_opaque(self, desc: Opaque) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_type_param(self, desc: TypeParam) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_recursive(self, desc: Recursive) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_applied(self, desc: Applied) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_custom(self, desc: Custom) -> T:
        raise NotImplementedError


_VISIT_METHODS: Dict[DescriptorKind, str] = {
    DescriptorKind.PRIMITIVE: "visit_primitive",
    DescriptorKind.PRODUCT: "visit_product",
    DescriptorKind.RECORD: "visit_record",
    DescriptorKind.SUM: "visit_sum",
    DescriptorKind.POLY_VARIANT: "visit_poly_variant",
    DescriptorKind.LIST: "visit_list",
    DescriptorKind.ARRAY: "visit_array",
    DescriptorKind.OPTION: "visit_option",
    DescriptorKind.OPAQUE: "visit_opaque",
    DescriptorKind.TYPE_PARAM: "visit_type_param",
    DescriptorKind.RECURSIVE: "visit_recursive",
    DescriptorKind.APPLIED: "visit_applied",
    DescriptorKind.CUSTOM: "visit_custom",
}


# Built-in primitives
UNIT = Primitive("unit")
BOOL = Primitive("bool")
INT = Primitive("int")
FLOAT = Primitive("float")
STRING = Primitive("string")
CHAR = Primitive("char")
BYTES = Primitive("bytes")
SEXP = Primitive("sexp")
