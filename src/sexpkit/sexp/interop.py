"""
Interop with sexpdata structures.

sexpdata represents S-expressions as nested Python lists with
``sexpdata.Symbol`` for bare words and plain ``str`` for string literals,
plus native numbers and booleans. These helpers convert in both directions.
"""

from typing import Any

import sexpdata

from .value import Atom, Sexp, SexpList, needs_quotes
from ..utils.config import BOOLEAN_FALSE_LITERAL, BOOLEAN_TRUE_LITERAL


def to_sexpdata(sexp: Sexp) -> Any:
    """
    Structured sexpr for sexpdata.

    Atoms that can be written bare become ``Symbol``s, the rest ``str``, so
    ``sexpdata.dumps`` quotes exactly the atoms that need it.
    """
    if isinstance(sexp, Atom):
        if needs_quotes(sexp.text):
            return sexp.text
        return sexpdata.Symbol(sexp.text)
    if isinstance(sexp, SexpList):
        return [to_sexpdata(item) for item in sexp.items]
    raise TypeError(f"Expected a Sexp, got {type(sexp).__name__}")


def from_sexpdata(obj: Any) -> Sexp:
    """Convert a sexpdata structure (as returned by ``sexpdata.loads``) to a Sexp."""
    if obj is None:
        return SexpList(())
    if isinstance(obj, bool):
        return Atom(BOOLEAN_TRUE_LITERAL if obj else BOOLEAN_FALSE_LITERAL)
    if isinstance(obj, (int, float)):
        return Atom(repr(obj))
    # Check Symbol before str (sexpdata.Symbol subclasses str)
    if isinstance(obj, sexpdata.Symbol):
        return Atom(str(obj))
    if isinstance(obj, str):
        return Atom(obj)
    if isinstance(obj, sexpdata.Quoted):
        return SexpList((Atom("quote"), from_sexpdata(obj.value())))
    if isinstance(obj, sexpdata.Brackets):
        return SexpList(tuple(from_sexpdata(item) for item in obj.I))
    if isinstance(obj, (list, tuple)):
        return SexpList(tuple(from_sexpdata(item) for item in obj))
    raise TypeError(f"Cannot convert {type(obj).__name__} to a Sexp")
