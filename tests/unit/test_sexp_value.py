"""
Tests for the Sexp value model: construction, equality and visitors.
"""

import pytest
from sexpkit.sexp.value import (
    EMPTY, Atom, SexpList, SexpVisitor, atom, needs_quotes, sexp_list,
)
from sexpkit.shared.source_location import SourceLocation


class _CountAtoms(SexpVisitor[int]):
    def visit_atom(self, node):
        return 1

    def visit_list(self, node):
        return sum(item.accept(self) for item in node)


class TestConstruction:
    """Atoms and lists built by hand"""

    def test_atom_holds_text(self):
        a = atom("hello")
        assert a.text == "hello"
        assert a.is_atom()
        assert not a.is_list()
        assert a.location is None

    def test_atom_rejects_non_text(self):
        with pytest.raises(TypeError):
            Atom(42)

    def test_list_items_become_tuple(self):
        lst = SexpList([Atom("a"), Atom("b")])
        assert isinstance(lst.items, tuple)
        assert len(lst) == 2
        assert lst[1] == Atom("b")
        assert [a.text for a in lst] == ["a", "b"]

    def test_empty_list_is_truthy(self):
        assert EMPTY.items == ()
        assert bool(EMPTY)
        assert EMPTY.is_list()

    def test_str_is_canonical_text(self):
        value = sexp_list(atom("a"), sexp_list(atom("b c"), EMPTY))
        assert str(value) == '(a ("b c" ()))'


class TestEquality:
    """Structural equality ignores positions"""

    def test_location_ignored_in_equality(self):
        loc = SourceLocation("f.sexp", 3, 7, start=20, end=23)
        assert Atom("x", loc) == Atom("x")
        assert hash(Atom("x", loc)) == hash(Atom("x"))

    def test_nested_lists_compare_structurally(self):
        a = sexp_list(atom("a"), sexp_list(atom("b")))
        b = SexpList((Atom("a"), SexpList((Atom("b"),))))
        assert a == b
        assert a != sexp_list(atom("a"), atom("b"))

    def test_atom_is_not_a_list(self):
        assert Atom("()") != EMPTY

    def test_with_location(self):
        loc = SourceLocation("f.sexp", 1, 1)
        moved = sexp_list(atom("a")).with_location(loc)
        assert moved.location == loc
        assert moved == sexp_list(atom("a"))


class TestVisitor:
    def test_visitor_dispatch(self):
        value = sexp_list(atom("a"), sexp_list(atom("b"), atom("c")), EMPTY)
        assert value.accept(_CountAtoms()) == 3


class TestNeedsQuotes:
    """Which atom texts can be written bare"""

    @pytest.mark.parametrize("text", ["foo", "42", "-3.5", "a.b", "x\\y", "+"])
    def test_bare(self, text):
        assert not needs_quotes(text)
        assert Atom(text).is_bare()

    @pytest.mark.parametrize("text", ["", "a b", "(", ")", '"', "a;b", "tab\there", "bell\x07"])
    def test_quoted(self, text):
        assert needs_quotes(text)
