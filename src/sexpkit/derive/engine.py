"""
Derivation Engine
=================

Builds a Converter from a type descriptor by structural recursion.

- Product: ``(a b c)``, positional, exact arity
- Record: ``((name value) ...)``, with per-field optionality and drop policies
- Sum: ``Tag`` or ``(Tag args...)``, tags matched case-insensitively on read
- PolyVariant: like Sum, but tags must match case exactly
- Option: ``none`` / ``(some v)``; legacy ``()`` / ``(v)`` per process flags
- ListOf / Array: ``(e1 e2 ...)``
- Opaque: a placeholder atom that never reads back
- TypeParam: the converter bound to that parameter
- Recursive / Applied: converters of (parametric) type definitions

Converters are memoized per descriptor identity and argument converters.
Recursive positions hold a lazy cell that resolves to the cached converter on
first use, so cyclic types are never expanded eagerly.
"""

import copy
import dataclasses
import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .converter import Converter
from .primitives import PRIMITIVE_CONVERTERS, PRIMITIVE_DTYPES
from ..sexp.value import EMPTY, Atom, Sexp, SexpList
from ..shared.errors import (
    ArityMismatchError,
    ConversionError,
    DescriptorError,
    DuplicateFieldError,
    MissingFieldError,
    OpaqueReconstructionError,
    UnexpectedShapeError,
    UnknownFieldError,
    UnknownTagError,
)
from ..types.descriptors import (
    Applied, Array, Constructor, Custom, Descriptor, DescriptorVisitor,
    DropPolicy, Field, ListOf, Opaque, Option, Optionality, PolyVariant, Primitive,
    Product, Record, Recursive, Sum, TypeDefinition, TypeParam,
)
from ..types.variant import Variant
from ..utils.config import (
    OPAQUE_PLACEHOLDER,
    OPTION_NONE_ATOM,
    OPTION_NONE_ATOMS,
    OPTION_SOME_TAG,
    OPTION_SOME_TAGS,
)
from ..utils.flags import flags

logger = logging.getLogger(__name__)

_CacheKey = Tuple[int, Tuple[int, ...]]


class _LazyCell:
    """
    Construct-once slot.

    The factory runs at most once, under the cell's lock; later reads take
    the fast path without locking.
    """

    __slots__ = ("_factory", "_value", "_lock")

    def __init__(self, factory: Callable[[], Converter]):
        self._factory = factory
        self._value: Optional[Converter] = None
        self._lock = threading.Lock()

    def get(self) -> Converter:
        value = self._value
        if value is None:
            with self._lock:
                if self._value is None:
                    self._value = self._factory()
                    self._factory = None
                value = self._value
        return value


def _lazy_converter(name: str, cell: _LazyCell) -> Converter:
    return Converter(
        name,
        lambda value: cell.get().to_sexp(value),
        lambda sexp: cell.get().of_sexp(sexp),
    )


def values_equal(a: Any, b: Any) -> bool:
    """Equality that understands numpy arrays."""
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        if not (isinstance(a, np.ndarray) and isinstance(b, np.ndarray)):
            return False
        return a.shape == b.shape and bool(np.array_equal(a, b))
    result = a == b
    if isinstance(result, np.ndarray):
        return bool(result.all())
    return bool(result)


def _empty_array(dtype: Any) -> np.ndarray:
    return np.array([], dtype=dtype)


def _to_array(values: List[Any], dtype: Any) -> np.ndarray:
    """
    One-dimensional array of ``values``.

    Raises _ElementError for the first element the dtype cannot hold; integer
    dtypes are range-checked rather than wrapped.
    """
    # Element-wise assignment keeps tuples and lists as single elements.
    out = np.empty(len(values), dtype=dtype)
    bounds = np.iinfo(out.dtype) if out.dtype.kind in "iu" else None
    for i, value in enumerate(values):
        if bounds is not None and isinstance(value, int) and not bounds.min <= value <= bounds.max:
            raise _ElementError(i, f"{value} is outside the range of {out.dtype}")
        try:
            out[i] = value
        except (OverflowError, ValueError, TypeError) as e:
            raise _ElementError(i, str(e)) from e
    return out


class _ElementError(Exception):
    def __init__(self, index: int, reason: str):
        super().__init__(reason)
        self.index = index
        self.reason = reason


# ---------------------------------------------------------------------------
# Record fields
# ---------------------------------------------------------------------------

@dataclass
class _FieldPlan:
    """Everything needed to write and read one record field."""
    field: Field
    converter: Optional[Converter]
    what: str
    array_dtype: Any = None

    @property
    def name(self) -> str:
        return self.field.name

    @property
    def absent_is_error(self) -> bool:
        return self.field.optionality is Optionality.REQUIRED and not self.field.has_default

    def absent_value(self) -> Any:
        f = self.field
        kind = f.optionality
        if f.has_default and kind in (Optionality.REQUIRED, Optionality.OPTION):
            return copy.deepcopy(f.default)
        if kind is Optionality.SEXP_LIST:
            return []
        if kind is Optionality.SEXP_ARRAY:
            return _empty_array(self.array_dtype)
        if kind is Optionality.SEXP_BOOL:
            return False
        return None

    def should_drop(self, value: Any) -> bool:
        f = self.field
        if f.drop is DropPolicy.IF_DEFAULT:
            return values_equal(value, f.default)
        if f.drop is DropPolicy.IF_DEFAULT_SEXP:
            return self.converter.to_sexp(value) == self.converter.to_sexp(f.default)
        if f.drop is DropPolicy.IF:
            return bool(f.drop_if(value))
        return False

    def write(self, value: Any) -> Optional[SexpList]:
        name = Atom(self.name)
        kind = self.field.optionality
        if kind is Optionality.SEXP_BOOL:
            return SexpList((name,)) if value else None
        if kind is Optionality.SEXP_OPTION and value is None:
            return None
        if kind in (Optionality.SEXP_LIST, Optionality.SEXP_ARRAY) and len(value) == 0:
            return None
        return SexpList((name, self.converter.to_sexp(value)))

    def read(self, entry: SexpList) -> Any:
        if self.field.optionality is Optionality.SEXP_BOOL:
            if len(entry) != 1:
                raise UnexpectedShapeError(self.what, f"({self.name}) with no value", entry,
                                           detail="boolean fields are present or absent")
            return True
        if len(entry) != 2:
            raise UnexpectedShapeError(self.what, f"({self.name} value)", entry,
                                       detail=f"got {len(entry) - 1} values")
        return self.converter.of_sexp(entry.items[1])


# ---------------------------------------------------------------------------
# Sum / polymorphic variant cases
# ---------------------------------------------------------------------------

@dataclass
class _CasePlan:
    constructor: Constructor
    args: Tuple[Converter, ...]
    record: Optional[Converter] = None

    @property
    def tag(self) -> str:
        return self.constructor.tag

    def make(self, args: Sequence[Any]) -> Any:
        cls = self.constructor.cls
        if cls is not None:
            return cls(*args)
        return Variant(self.tag, tuple(args))


class _ConverterBuilder(DescriptorVisitor[Converter]):
    """Builds converters for the descriptors of one derivation."""

    def __init__(self, deriver: 'Deriver', params: Tuple[Converter, ...],
                 definition: Optional[TypeDefinition] = None):
        self.deriver = deriver
        self.params = params
        self.definition = definition

    def build(self, desc: Descriptor) -> Converter:
        if not isinstance(desc, Descriptor):
            raise DescriptorError(f"expected a type descriptor, got {desc!r}")
        return desc.accept(self)

    def _what(self, shape: str) -> str:
        if self.definition is not None:
            return f"{self.definition.name}_of_sexp"
        return f"{shape}_of_sexp"

    def _writer(self, shape: str) -> str:
        if self.definition is not None:
            return f"sexp_of_{self.definition.name}"
        return f"sexp_of_{shape}"

    # ---- leaves ----------------------------------------------------------

    def visit_primitive(self, desc: Primitive) -> Converter:
        converter = PRIMITIVE_CONVERTERS.get(desc.name)
        if converter is None:
            raise DescriptorError(f"unknown primitive type `{desc.name}`")
        return converter

    def visit_opaque(self, desc: Opaque) -> Converter:
        what = self._what("opaque")

        def to_sexp(value: Any) -> Sexp:
            return Atom(OPAQUE_PLACEHOLDER)

        def of_sexp(sexp: Sexp) -> Any:
            raise OpaqueReconstructionError(what, sexp)

        return Converter("opaque", to_sexp, of_sexp)

    def visit_type_param(self, desc: TypeParam) -> Converter:
        if not 0 <= desc.index < len(self.params):
            label = desc.name or f"#{desc.index}"
            raise DescriptorError(
                f"type parameter {label} is unbound ({len(self.params)} argument(s) supplied)"
            )
        return self.params[desc.index]

    def visit_custom(self, desc: Custom) -> Converter:
        if not isinstance(desc.converter, Converter):
            raise DescriptorError(f"Custom descriptor needs a Converter, got {desc.converter!r}")
        return desc.converter

    # ---- definitions -----------------------------------------------------

    def _definition_args(self, definition: TypeDefinition,
                         args: Optional[Tuple[Descriptor, ...]]) -> Tuple[Converter, ...]:
        if args is None:
            converters = self.params
        else:
            converters = tuple(self.build(a) for a in args)
        if len(converters) != definition.arity:
            raise DescriptorError(
                f"type `{definition.name}` takes {definition.arity} argument(s), got {len(converters)}"
            )
        return converters

    def visit_recursive(self, desc: Recursive) -> Converter:
        definition = desc.definition
        args = self._definition_args(definition, desc.args)
        deriver = self.deriver
        cell = _LazyCell(lambda: deriver.derive_definition(definition, args))
        return _lazy_converter(definition.name, cell)

    def visit_applied(self, desc: Applied) -> Converter:
        args = self._definition_args(desc.definition, desc.args)
        return self.deriver.derive_definition(desc.definition, args)

    # ---- containers ------------------------------------------------------

    def visit_option(self, desc: Option) -> Converter:
        if isinstance(desc.inner, Option):
            raise DescriptorError(
                "nested Option cannot be represented: None would be ambiguous between layers"
            )
        inner = self.build(desc.inner)
        what = self._what("option")

        def to_sexp(value: Any) -> Sexp:
            if value is None:
                return EMPTY if flags.write_old_option_format else Atom(OPTION_NONE_ATOM)
            if flags.write_old_option_format:
                return SexpList((inner.to_sexp(value),))
            return SexpList((Atom(OPTION_SOME_TAG), inner.to_sexp(value)))

        def of_sexp(sexp: Sexp) -> Any:
            if isinstance(sexp, Atom):
                if sexp.text in OPTION_NONE_ATOMS:
                    return None
            else:
                items = sexp.items
                if len(items) == 2 and isinstance(items[0], Atom) and items[0].text in OPTION_SOME_TAGS:
                    return inner.of_sexp(items[1])
                if flags.read_old_option_format:
                    if not items:
                        return None
                    if len(items) == 1:
                        return inner.of_sexp(items[0])
            raise UnexpectedShapeError(what, "none or (some value)", sexp)

        return Converter(f"{inner.name} option", to_sexp, of_sexp)

    def _sequence_of_sexp(self, element: Converter, what: str) -> Callable[[Sexp], List[Any]]:
        def of_sexp(sexp: Sexp) -> List[Any]:
            if not isinstance(sexp, SexpList):
                raise UnexpectedShapeError(what, "a list", sexp)
            out = []
            for index, item in enumerate(sexp.items):
                try:
                    out.append(element.of_sexp(item))
                except ConversionError as e:
                    e.add_context(index)
                    raise
            return out
        return of_sexp

    def visit_list(self, desc: ListOf) -> Converter:
        element = self.build(desc.element)

        def to_sexp(value: Any) -> Sexp:
            return SexpList(tuple(element.to_sexp(item) for item in value))

        return Converter(f"{element.name} list", to_sexp, self._sequence_of_sexp(element, self._what("list")))

    def _array_dtype(self, element: Descriptor, dtype: Any) -> Any:
        if dtype is not None:
            return dtype
        if isinstance(element, Primitive):
            return PRIMITIVE_DTYPES.get(element.name, object)
        return object

    def _array_converter(self, element_desc: Descriptor, dtype: Any) -> Converter:
        element = self.build(element_desc)
        dtype = self._array_dtype(element_desc, dtype)
        what = self._what("array")
        read_items = self._sequence_of_sexp(element, what)
        writer = self._writer("array")

        def to_sexp(value: Any) -> Sexp:
            if isinstance(value, np.ndarray) and value.ndim != 1:
                raise ValueError(f"{writer}: expected a one-dimensional array, got shape {value.shape}")
            return SexpList(tuple(element.to_sexp(item) for item in value))

        def of_sexp(sexp: Sexp) -> np.ndarray:
            try:
                return _to_array(read_items(sexp), dtype)
            except _ElementError as e:
                err = UnexpectedShapeError(what, f"elements fitting {np.dtype(dtype)}",
                                           sexp.items[e.index], detail=e.reason)
                raise err.add_context(e.index) from None

        return Converter(f"{element.name} array", to_sexp, of_sexp)

    def visit_array(self, desc: Array) -> Converter:
        return self._array_converter(desc.element, desc.dtype)

    # ---- products --------------------------------------------------------

    def visit_product(self, desc: Product) -> Converter:
        parts = tuple(self.build(p) for p in desc.parts)
        arity = len(parts)
        what = self._what("tuple")
        writer = self._writer("tuple")

        def to_sexp(value: Any) -> Sexp:
            if len(value) != arity:
                raise ValueError(f"{writer}: expected a {arity}-tuple, got {len(value)} elements")
            return SexpList(tuple(c.to_sexp(v) for c, v in zip(parts, value)))

        def of_sexp(sexp: Sexp) -> Tuple[Any, ...]:
            if not isinstance(sexp, SexpList):
                raise UnexpectedShapeError(what, f"a list of {arity} elements", sexp)
            if len(sexp) != arity:
                raise ArityMismatchError(what, arity, len(sexp), sexp)
            out = []
            for index, (part, item) in enumerate(zip(parts, sexp.items)):
                try:
                    out.append(part.of_sexp(item))
                except ConversionError as e:
                    e.add_context(index)
                    raise
            return tuple(out)

        return Converter("(" + " * ".join(p.name for p in parts) + ")", to_sexp, of_sexp)

    def _field_plan(self, f: Field, what: str) -> _FieldPlan:
        kind = f.optionality
        if f.drop in (DropPolicy.IF_DEFAULT, DropPolicy.IF_DEFAULT_SEXP) and not f.has_default:
            raise DescriptorError(f"field `{f.name}`: {f.drop.value} requires a default")
        if f.drop is DropPolicy.IF and f.drop_if is None:
            raise DescriptorError(f"field `{f.name}`: drop_if requires a predicate")
        if kind is Optionality.SEXP_BOOL:
            if f.drop is DropPolicy.IF_DEFAULT_SEXP:
                raise DescriptorError(f"field `{f.name}`: sexp_bool fields have no converter to compare with")
            return _FieldPlan(f, None, what)
        if f.descriptor is None:
            raise DescriptorError(f"field `{f.name}` has no descriptor")
        # Absence reads as None, which must be writable again.
        if kind is Optionality.OPTION and not f.has_default and not isinstance(f.descriptor, Option):
            raise DescriptorError(
                f"field `{f.name}`: option fields need an Option descriptor or a default"
            )
        if kind is Optionality.SEXP_OPTION and f.has_default and f.default is not None:
            raise DescriptorError(
                f"field `{f.name}`: sexp_option fields default to None, got {f.default!r}"
            )
        if kind is Optionality.SEXP_LIST:
            return _FieldPlan(f, self.visit_list(ListOf(f.descriptor)), what)
        if kind is Optionality.SEXP_ARRAY:
            dtype = self._array_dtype(f.descriptor, None)
            return _FieldPlan(f, self._array_converter(f.descriptor, None), what, array_dtype=dtype)
        return _FieldPlan(f, self.build(f.descriptor), what)

    def visit_record(self, desc: Record) -> Converter:
        what = self._what("record")
        writer = self._writer("record")
        names = desc.field_names
        if len(set(names)) != len(names):
            raise DescriptorError(f"record declares a field more than once: {', '.join(names)}")
        plans = tuple(self._field_plan(f, what) for f in desc.fields)
        by_name = {plan.name: plan for plan in plans}
        record_type = desc.record_type
        allow_extra = desc.allow_extra_fields

        if record_type is None:
            def get(value: Any, plan: _FieldPlan) -> Any:
                if plan.name in value:
                    return value[plan.name]
                if plan.absent_is_error:
                    raise KeyError(f"{writer}: record value has no field {plan.name!r}")
                return plan.absent_value()
            make: Callable[..., Any] = dict
        else:
            def get(value: Any, plan: _FieldPlan) -> Any:
                return getattr(value, plan.name)
            make = record_type

        def to_sexp(value: Any) -> Sexp:
            entries = []
            for plan in plans:
                field_value = get(value, plan)
                if plan.should_drop(field_value):
                    continue
                entry = plan.write(field_value)
                if entry is not None:
                    entries.append(entry)
            return SexpList(tuple(entries))

        def of_sexp(sexp: Sexp) -> Any:
            if not isinstance(sexp, SexpList):
                raise UnexpectedShapeError(what, "a list of (field value) pairs", sexp)
            present: Dict[str, SexpList] = {}
            for entry in sexp.items:
                if not (isinstance(entry, SexpList) and entry.items and isinstance(entry.items[0], Atom)):
                    raise UnexpectedShapeError(what, "a (field value) pair", entry)
                name = entry.items[0].text
                if name not in by_name:
                    if allow_extra or not flags.check_extra_fields:
                        continue
                    raise UnknownFieldError(what, name, names, entry)
                if name in present:
                    raise DuplicateFieldError(what, name, entry)
                present[name] = entry
            missing = [plan.name for plan in plans if plan.absent_is_error and plan.name not in present]
            if missing:
                raise MissingFieldError(what, missing, sexp)
            values = {}
            for plan in plans:
                entry = present.get(plan.name)
                if entry is None:
                    values[plan.name] = plan.absent_value()
                    continue
                try:
                    values[plan.name] = plan.read(entry)
                except ConversionError as e:
                    e.add_context(plan.name)
                    raise
            return make(**values)

        return Converter(record_type.__name__ if record_type is not None else "record", to_sexp, of_sexp)

    # ---- variants --------------------------------------------------------

    def _case_plan(self, constructor: Constructor) -> _CasePlan:
        if constructor.record is not None:
            if constructor.args or constructor.list_args:
                raise DescriptorError(f"constructor `{constructor.tag}`: inline record excludes other arguments")
            inline = Record(
                constructor.record.fields,
                record_type=constructor.cls or constructor.record.record_type,
                allow_extra_fields=constructor.record.allow_extra_fields,
            )
            return _CasePlan(constructor, (), self.visit_record(inline))
        if constructor.list_args and len(constructor.args) != 1:
            raise DescriptorError(f"constructor `{constructor.tag}`: list_args needs exactly one element type")
        return _CasePlan(constructor, tuple(self.build(a) for a in constructor.args))

    def _variant_converter(self, constructors: Sequence[Constructor], case_insensitive: bool,
                           shape: str) -> Converter:
        what = self._what(shape)
        writer = self._writer(shape)
        cases = [self._case_plan(c) for c in constructors]
        exact: Dict[str, _CasePlan] = {}
        for case in cases:
            if case.tag in exact:
                raise DescriptorError(f"{shape}: constructor `{case.tag}` declared more than once")
            exact[case.tag] = case
        # Case-folded lookup; tags that collide after folding only match exactly.
        folded: Dict[str, Optional[_CasePlan]] = {}
        if case_insensitive:
            for case in cases:
                key = case.tag.casefold()
                folded[key] = None if key in folded else case
        by_class = {c.constructor.cls: c for c in cases if c.constructor.cls is not None}
        tags = tuple(exact)

        def lookup(tag: str, node: Sexp) -> _CasePlan:
            case = exact.get(tag)
            if case is None and case_insensitive:
                case = folded.get(tag.casefold())
            if case is None:
                raise UnknownTagError(what, tag, tags, node)
            return case

        def to_sexp(value: Any) -> Sexp:
            if isinstance(value, Variant):
                case = exact.get(value.tag)
                args = value.args
            else:
                case = by_class.get(type(value))
                args = None
            if case is None:
                raise ValueError(f"{writer}: no constructor matches {value!r}")
            tag = Atom(case.tag)
            if case.record is not None:
                record_value = value if args is None else args[0]
                return SexpList((tag,) + case.record.to_sexp(record_value).items)
            if case.constructor.is_constant:
                return tag
            if args is None:
                args = tuple(getattr(value, f.name) for f in dataclasses.fields(value))
            if case.constructor.list_args:
                element = case.args[0]
                return SexpList((tag,) + tuple(element.to_sexp(item) for item in args[0]))
            if len(args) != len(case.args):
                raise ValueError(
                    f"{writer}: constructor {case.tag} takes {len(case.args)} argument(s), got {len(args)}"
                )
            return SexpList((tag,) + tuple(c.to_sexp(a) for c, a in zip(case.args, args)))

        def of_sexp(sexp: Sexp) -> Any:
            if isinstance(sexp, Atom):
                case = lookup(sexp.text, sexp)
                if not case.constructor.is_constant:
                    raise UnexpectedShapeError(what, f"({case.tag} ...)", sexp,
                                               detail=f"constructor {case.tag} takes arguments")
                return case.make(())
            items = sexp.items
            if not items:
                raise UnexpectedShapeError(what, "a constructor", sexp, detail="empty list")
            head = items[0]
            if not isinstance(head, Atom):
                raise UnexpectedShapeError(what, "a constructor tag", head, detail="nested list in tag position")
            case = lookup(head.text, head)
            if case.constructor.is_constant:
                raise UnexpectedShapeError(what, f"the atom {case.tag}", sexp,
                                           detail=f"constructor {case.tag} takes no arguments")
            rest = items[1:]
            try:
                if case.record is not None:
                    record_value = case.record.of_sexp(SexpList(rest, sexp.location))
                    if case.constructor.cls is None:
                        return Variant(case.tag, (record_value,))
                    return record_value
                if case.constructor.list_args:
                    element = case.args[0]
                    values = []
                    for index, item in enumerate(rest):
                        try:
                            values.append(element.of_sexp(item))
                        except ConversionError as e:
                            e.add_context(index)
                            raise
                    return case.make((values,))
                if len(rest) != len(case.args):
                    raise ArityMismatchError(f"{what}: constructor {case.tag}", len(case.args), len(rest), sexp)
                values = []
                for index, (converter, item) in enumerate(zip(case.args, rest)):
                    try:
                        values.append(converter.of_sexp(item))
                    except ConversionError as e:
                        e.add_context(index)
                        raise
                return case.make(values)
            except ConversionError as e:
                if not isinstance(e, ArityMismatchError) or e.sexp is not sexp:
                    e.add_context(case.tag)
                raise

        return Converter(shape, to_sexp, of_sexp)

    def visit_sum(self, desc: Sum) -> Converter:
        return self._variant_converter(desc.constructors, case_insensitive=True, shape="sum")

    def visit_poly_variant(self, desc: PolyVariant) -> Converter:
        return self._variant_converter(desc.flatten(), case_insensitive=False, shape="variant")


class Deriver:
    """
    Derives and caches converters.

    The cache is keyed by descriptor (or definition) identity plus the
    identities of the argument converters. A re-entrant lock is held while a
    converter is being built; conversions themselves never lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._cache: Dict[_CacheKey, Tuple[Any, Tuple[Converter, ...], Converter]] = {}
        # Keys being derived by the thread holding the lock.
        self._in_progress: Set[_CacheKey] = set()

    def derive(self, target: Union[Descriptor, TypeDefinition, Converter],
               *args: Union[Descriptor, TypeDefinition, Converter]) -> Converter:
        """
        Converter for ``target``.

        Args:
            target: descriptor, type definition, or an existing converter
            args: converters (or descriptors) for the type parameters

        Returns:
            The memoized converter
        """
        if isinstance(target, Converter):
            if args:
                raise DescriptorError(f"converter {target.name} takes no type arguments")
            return target
        converters = tuple(self._as_converter(a) for a in args)
        if isinstance(target, TypeDefinition):
            return self.derive_definition(target, converters)
        if isinstance(target, Descriptor):
            return self._derive_cached(target, None, converters)
        raise DescriptorError(f"cannot derive a converter for {target!r}")

    def family(self, definition: TypeDefinition) -> Callable[..., Converter]:
        """Function from argument converters to the applied converter."""
        return functools.partial(self.derive, definition)

    def derive_definition(self, definition: TypeDefinition,
                          args: Sequence[Converter] = ()) -> Converter:
        args = tuple(args)
        if len(args) != definition.arity:
            raise DescriptorError(
                f"type `{definition.name}` takes {definition.arity} argument(s), got {len(args)}"
            )
        return self._derive_cached(definition.body, definition, args)

    def _as_converter(self, arg: Any) -> Converter:
        if isinstance(arg, Converter):
            return arg
        return self.derive(arg)

    def _derive_cached(self, body: Descriptor, definition: Optional[TypeDefinition],
                       args: Tuple[Converter, ...]) -> Converter:
        subject: Any = definition if definition is not None else body
        key = (id(subject), tuple(id(a) for a in args))
        entry = self._cache.get(key)
        if entry is not None:
            return entry[2]
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                return entry[2]
            if key in self._in_progress:
                # Eager reference to a definition still being built.
                logger.debug(f"Deferring in-progress derivation of {subject!r}")
                return _lazy_converter(
                    getattr(subject, "name", "recursive"),
                    _LazyCell(lambda: self._derive_cached(body, definition, args)),
                )
            self._in_progress.add(key)
            try:
                converter = _ConverterBuilder(self, args, definition).build(body)
                if definition is not None:
                    converter = dataclasses.replace(converter, name=self._definition_name(definition, args))
            finally:
                self._in_progress.discard(key)
            self._cache[key] = (subject, args, converter)
            logger.debug(f"Derived converter {converter.name} ({len(self._cache)} cached)")
            return converter

    @staticmethod
    def _definition_name(definition: TypeDefinition, args: Tuple[Converter, ...]) -> str:
        if not args:
            return definition.name
        return f"{definition.name}[{', '.join(a.name for a in args)}]"

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


default_deriver = Deriver()


def derive(target: Union[Descriptor, TypeDefinition, Converter],
           *args: Union[Descriptor, TypeDefinition, Converter]) -> Converter:
    """Derive with the process-wide default Deriver."""
    return default_deriver.derive(target, *args)


def family(definition: TypeDefinition) -> Callable[..., Converter]:
    return default_deriver.family(definition)
