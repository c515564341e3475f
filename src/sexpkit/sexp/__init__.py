"""
S-expression values, parser and printer.
"""

from .value import Atom, Sexp, SexpList, SexpVisitor, EMPTY, atom, sexp_list, needs_quotes
from .printer import to_string, to_string_hum, to_string_mach, save_sexp, save_sexps
from .parser import Parser, parse, parse_many, iter_parse, load_sexp, load_sexps
from .interop import to_sexpdata, from_sexpdata
