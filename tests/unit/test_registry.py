"""
Tests for the exception registry.
"""

import logging
import threading

import pytest
from sexpkit.derive.primitives import INT_CONVERTER, STRING_CONVERTER
from sexpkit.registry import exn
from sexpkit.registry.exn import ExceptionRegistry, generic_sexp_of_exn
from sexpkit.sexp.value import Atom, atom, sexp_list


class NotFound(Exception):
    pass


class PageNotFound(NotFound):
    pass


class Quiet(Exception):
    def __str__(self):
        return "quiet failure"


class Unprintable(Exception):
    def __str__(self):
        raise RuntimeError("no description")


class TestFallback:
    """Exceptions with nothing registered"""

    def test_name_and_args(self, registry):
        assert registry.convert(ValueError("bad", 3)) == sexp_list(atom("ValueError"), atom("bad"), atom("3"))

    def test_no_args(self, registry):
        assert registry.convert(NotFound()) == Atom("NotFound")

    def test_sexp_args_pass_through(self, registry):
        payload = sexp_list(atom("path"), atom("/x"))
        assert registry.convert(NotFound(payload)) == sexp_list(atom("NotFound"), payload)

    def test_other_args_use_repr(self, registry):
        assert registry.convert(KeyError(("a", 1))) == sexp_list(atom("KeyError"), atom("('a', 1)"))

    def test_generic_helper(self):
        assert generic_sexp_of_exn(Quiet()) == Atom("Quiet")


class TestRegistration:
    def test_registered_converter_used(self, registry):
        registry.register(NotFound, lambda e: sexp_list(atom("not_found"), atom(e.args[0])))
        assert registry.convert(NotFound("/a")) == sexp_list(atom("not_found"), atom("/a"))

    def test_last_registration_wins(self, registry):
        registry.register(NotFound, lambda e: Atom("first"))
        registry.register(NotFound, lambda e: Atom("second"))
        assert registry.convert(NotFound()) == Atom("second")
        assert len(registry) == 1

    def test_subclass_uses_base_converter(self, registry):
        registry.register(NotFound, lambda e: Atom("base"))
        assert registry.convert(PageNotFound()) == Atom("base")
        registry.register(PageNotFound, lambda e: Atom("page"))
        assert registry.convert(PageNotFound()) == Atom("page")
        assert registry.lookup(KeyError) is None

    def test_register_derived(self, registry):
        registry.register_derived(NotFound, [STRING_CONVERTER, INT_CONVERTER])
        assert registry.convert(NotFound("page", 404)) == sexp_list(atom("NotFound"), atom("page"), atom("404"))
        assert NotFound in registry

    def test_register_rejects_non_exception(self, registry):
        with pytest.raises(TypeError):
            registry.register(int, lambda e: Atom("x"))


class TestNeverRaises:
    """convert absorbs converter failures"""

    def test_raising_converter_falls_back(self, registry, caplog):
        def broken(e):
            raise RuntimeError("boom")

        registry.register(NotFound, broken)
        with caplog.at_level(logging.WARNING, logger="sexpkit.registry"):
            result = registry.convert(NotFound("x"))
        assert result == sexp_list(atom("NotFound"), atom("x"))
        assert "boom" in caplog.text

    def test_derived_arity_mismatch_falls_back(self, registry):
        registry.register_derived(NotFound, [STRING_CONVERTER])
        assert registry.convert(NotFound()) == Atom("NotFound")

    def test_non_sexp_result_falls_back(self, registry):
        registry.register(Quiet, lambda e: "not a sexp")
        assert registry.convert(Quiet()) == Atom("Quiet")

    def test_unprintable_payload(self, registry):
        class Weird:
            def __repr__(self):
                raise RuntimeError("no repr")

        assert registry.convert(Unprintable(Weird())) == Atom("Unprintable")


class TestDefaultRegistry:
    def test_module_functions(self, monkeypatch):
        fresh = ExceptionRegistry()
        monkeypatch.setattr(exn, "default_registry", fresh)
        exn.register(NotFound, lambda e: Atom("nf"))
        assert exn.sexp_of_exn(NotFound()) == Atom("nf")
        assert NotFound in fresh


class TestConcurrency:
    def test_concurrent_register_and_convert(self, registry):
        classes = [type(f"Err{i}", (Exception,), {}) for i in range(20)]
        errors = []

        def register_all():
            for i, cls in enumerate(classes):
                registry.register(cls, lambda e, i=i: Atom(f"err{i}"))

        def convert_all():
            try:
                for _ in range(50):
                    for cls in classes:
                        result = registry.convert(cls())
                        assert isinstance(result, Atom)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=register_all)] + [threading.Thread(target=convert_all) for _ in range(4)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()
        assert not errors
        assert len(registry) == 20
        assert registry.convert(classes[7]()) == Atom("err7")
