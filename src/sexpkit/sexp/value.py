"""
Sexp Value Model

An S-expression is either an Atom (opaque text) or a SexpList of
S-expressions. Values are immutable; equality and hashing are structural and
ignore the source location recorded by the parser.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, Iterator, Optional, Tuple, TypeVar, overload

from ..shared.source_location import SourceLocation

T = TypeVar('T')

# Maximal run of characters allowed in an unquoted atom.
BARE_ATOM_PATTERN = r'[^\s()";]+'
_BARE_ATOM_RE = re.compile(BARE_ATOM_PATTERN)


class Sexp:
    """Base class of Atom and SexpList"""

    __slots__ = ()

    location: Optional[SourceLocation]

    def accept(self, visitor: 'SexpVisitor[T]') -> T:
        raise NotImplementedError

    def is_atom(self) -> bool:
        return False

    def is_list(self) -> bool:
        return False

    def with_location(self, location: Optional[SourceLocation]) -> 'Sexp':
        raise NotImplementedError

    def __str__(self) -> str:
        from .printer import to_string
        return to_string(self)


@dataclass(frozen=True)
class Atom(Sexp):
    """Leaf text token."""
    text: str
    location: Optional[SourceLocation] = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.text, str):
            raise TypeError(f"Atom text must be str, not {type(self.text).__name__}")

    def accept(self, visitor: 'SexpVisitor[T]') -> T:
        return visitor.visit_atom(self)

    def is_atom(self) -> bool:
        return True

    def is_bare(self) -> bool:
        """True if the text can be written without quotes."""
        return not needs_quotes(self.text)

    def with_location(self, location: Optional[SourceLocation]) -> 'Atom':
        return Atom(self.text, location)


@dataclass(frozen=True)
class SexpList(Sexp):
    """Ordered sequence of Sexp values."""
    items: Tuple[Sexp, ...] = ()
    location: Optional[SourceLocation] = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.items, tuple):
            object.__setattr__(self, 'items', tuple(self.items))

    def accept(self, visitor: 'SexpVisitor[T]') -> T:
        return visitor.visit_list(self)

    def is_list(self) -> bool:
        return True

    def with_location(self, location: Optional[SourceLocation]) -> 'SexpList':
        return SexpList(self.items, location)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Sexp]:
        return iter(self.items)

    @overload
    def __getitem__(self, index: int) -> Sexp: ...

    @overload
    def __getitem__(self, index: slice) -> Tuple[Sexp, ...]: ...

    def __getitem__(self, index):
        return self.items[index]

    def __bool__(self) -> bool:
        # A list is a value even when empty.
        return True


EMPTY = SexpList(())


def atom(text: str) -> Atom:
    return Atom(text)


def sexp_list(*items: Sexp) -> SexpList:
    return SexpList(items)


def needs_quotes(text: str) -> bool:
    """
    True if ``text`` cannot be written as an unquoted atom.

    Empty text, whitespace, structural characters and non-printable characters
    all force quoting. Backslashes alone do not: bare atoms are read verbatim.
    """
    if not text:
        return True
    if _BARE_ATOM_RE.fullmatch(text) is None:
        return True
    return not text.isprintable()


class SexpVisitor(ABC, Generic[T]):
    """Visitor over the two Sexp variants."""

    @abstractmethod
    def visit_atom(self, node: Atom) -> T:
        raise NotImplementedError

    @abstractmethod
    def visit_list(self, node: SexpList) -> T:
        raise NotImplementedError
