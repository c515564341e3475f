"""
Exception registry: runtime exception type -> Sexp converter.

Registration is additive. Registering the same type again replaces the
previous converter (last registration wins); there is no removal. Lookup walks
the exception's MRO, so a converter registered for a base class also covers
its subclasses unless a more specific one exists.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Sequence

from ..derive.converter import Converter
from ..sexp.value import Atom, Sexp, SexpList

logger = logging.getLogger("sexpkit.registry")

ExnConverter = Callable[[BaseException], Sexp]

_SCALAR_TYPES = (str, int, float, bool)


def _payload_sexp(arg: Any) -> Sexp:
    if isinstance(arg, (Atom, SexpList)):
        return arg
    if isinstance(arg, _SCALAR_TYPES):
        return Atom(str(arg))
    return Atom(repr(arg))


def generic_sexp_of_exn(exc: BaseException) -> Sexp:
    """``(ClassName payload...)`` built from ``exc.args``; ``ClassName`` alone without args."""
    name = Atom(type(exc).__name__)
    args = getattr(exc, "args", ())
    if not args:
        return name
    return SexpList((name,) + tuple(_payload_sexp(a) for a in args))


class ExceptionRegistry:
    """Thread-safe mapping from exception types to converters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._converters: Dict[type, ExnConverter] = {}

    def register(self, exc_type: type, converter: ExnConverter) -> None:
        if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
            raise TypeError(f"expected an exception type, got {exc_type!r}")
        with self._lock:
            replaced = exc_type in self._converters
            self._converters[exc_type] = converter
        logger.debug(f"{'Replaced' if replaced else 'Registered'} converter for {exc_type.__qualname__}")

    def register_derived(self, exc_type: type, arg_converters: Sequence[Converter]) -> None:
        """
        Register ``(Name a1 ... an)`` where each ``ai`` is ``exc.args[i]``
        written with the matching converter.
        """
        converters = tuple(arg_converters)
        name = exc_type.__name__

        def convert(exc: BaseException) -> Sexp:
            args = exc.args
            if len(args) != len(converters):
                raise ValueError(
                    f"{name}: expected {len(converters)} argument(s), got {len(args)}"
                )
            if not converters:
                return Atom(name)
            return SexpList((Atom(name),) + tuple(c.to_sexp(a) for c, a in zip(converters, args)))

        self.register(exc_type, convert)

    def lookup(self, exc_type: type) -> Optional[ExnConverter]:
        with self._lock:
            for klass in exc_type.__mro__:
                converter = self._converters.get(klass)
                if converter is not None:
                    return converter
        return None

    def __contains__(self, exc_type: type) -> bool:
        with self._lock:
            return exc_type in self._converters

    def __len__(self) -> int:
        with self._lock:
            return len(self._converters)

    def convert(self, exc: BaseException) -> Sexp:
        """
        Sexp for any exception value. Never raises.

        Uses the registered converter when there is one. A converter that
        raises is logged and the generic form is used instead.
        """
        converter = self.lookup(type(exc))
        if converter is not None:
            try:
                result = converter(exc)
            except Exception as e:
                logger.warning(
                    f"Converter for {type(exc).__qualname__} raised {type(e).__name__}: {e}; "
                    f"using the generic form"
                )
            else:
                if isinstance(result, (Atom, SexpList)):
                    return result
                logger.warning(
                    f"Converter for {type(exc).__qualname__} returned {type(result).__name__}, not a Sexp"
                )
        try:
            return generic_sexp_of_exn(exc)
        except Exception:
            logger.debug("Generic exception form failed", exc_info=True)
        return Atom(_describe(exc))


def _describe(exc: BaseException) -> str:
    try:
        return str(exc)
    except Exception:
        return type(exc).__name__


default_registry = ExceptionRegistry()


def register(exc_type: type, converter: ExnConverter) -> None:
    """Register on the process-wide default registry."""
    default_registry.register(exc_type, converter)


def sexp_of_exn(exc: BaseException) -> Sexp:
    return default_registry.convert(exc)
