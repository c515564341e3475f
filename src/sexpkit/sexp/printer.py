"""
Sexp Printer
============

Renders Sexp values as text. ``to_string`` produces the canonical machine
form (single spaces, no newlines); ``to_string_hum`` keeps short lists on one
line and breaks long ones with the first element on the opening line.
Both outputs read back to equal values.
"""

from pathlib import Path
from typing import Iterable, List, Union

from .value import Atom, Sexp, SexpList, needs_quotes
from ..shared.errors import SexpImplementationError
from ..utils.config import DEFAULT_HUM_INDENT, DEFAULT_HUM_WIDTH
from ..utils.io_utils import write_text_file

_SIMPLE_ESCAPES = {
    '"': '\\"',
    '\\': '\\\\',
    '\n': '\\n',
    '\t': '\\t',
    '\r': '\\r',
    '\b': '\\b',
}


def escape_atom(text: str) -> str:
    """Quote ``text``, escaping quote, backslash and non-printable characters."""
    out: List[str] = ['"']
    for ch in text:
        escaped = _SIMPLE_ESCAPES.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ch.isprintable():
            out.append(ch)
        elif ord(ch) < 256:
            out.append(f"\\{ord(ch):03d}")
        else:
            out.append(f"\\u{{{ord(ch):x}}}")
    out.append('"')
    return "".join(out)


def format_atom(text: str) -> str:
    """Atom text as written: bare when possible, quoted otherwise."""
    if needs_quotes(text):
        return escape_atom(text)
    return text


def to_string(sexp: Sexp) -> str:
    """Canonical single-line rendering."""
    if isinstance(sexp, Atom):
        return format_atom(sexp.text)
    if isinstance(sexp, SexpList):
        return "(" + " ".join(to_string(item) for item in sexp.items) + ")"
    raise SexpImplementationError(f"Cannot print {type(sexp).__name__} as a sexp")


to_string_mach = to_string


def _hum(sexp: Sexp, level: int, indent_str: str, width: int) -> str:
    if isinstance(sexp, Atom):
        return format_atom(sexp.text)
    if not isinstance(sexp, SexpList):
        raise SexpImplementationError(f"Cannot print {type(sexp).__name__} as a sexp")
    if not sexp.items:
        return "()"
    parts = [_hum(item, level + 1, indent_str, width) for item in sexp.items]
    one_line = "(" + " ".join(parts) + ")"
    if len(indent_str * level) + len(one_line) <= width and "\n" not in one_line:
        return one_line
    # First element stays on the opening line; the rest go one level deeper.
    next_prefix = indent_str * (level + 1)
    rest = "".join("\n" + next_prefix + part for part in parts[1:])
    return "(" + parts[0] + rest + ")"


def to_string_hum(sexp: Sexp, indent: int = DEFAULT_HUM_INDENT, width: int = DEFAULT_HUM_WIDTH) -> str:
    """
    Human-oriented layout.

    Args:
        sexp: value to render
        indent: spaces per nesting level
        width: preferred maximum line length

    Returns:
        Multi-line text that parses back to ``sexp``
    """
    return _hum(sexp, 0, " " * indent, width)


def save_sexp(path: Union[Path, str], sexp: Sexp, hum: bool = True) -> None:
    text = to_string_hum(sexp) if hum else to_string(sexp)
    write_text_file(path, text + "\n")


def save_sexps(path: Union[Path, str], sexps: Iterable[Sexp], hum: bool = True) -> None:
    render = to_string_hum if hum else to_string
    write_text_file(path, "".join(render(sexp) + "\n" for sexp in sexps))
