"""
Runtime exception to Sexp conversion.
"""

from .exn import ExceptionRegistry, default_registry, generic_sexp_of_exn, register, sexp_of_exn
