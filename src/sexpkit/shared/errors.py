"""
Error Reporting

Diagnostics for parse and conversion failures, rendered rustc style against
the original text when it is available.
"""

import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from .source_location import SourceLocation


class ErrorCode(Enum):
    """Stable diagnostic codes, one per error kind"""
    PARSE = "E0001"
    ARITY_MISMATCH = "E0101"
    UNKNOWN_TAG = "E0102"
    MISSING_FIELD = "E0103"
    DUPLICATE_FIELD = "E0104"
    UNKNOWN_FIELD = "E0105"
    UNEXPECTED_SHAPE = "E0106"
    OPAQUE = "E0107"
    DESCRIPTOR = "E0201"
    INTERNAL = "E9999"


# ---------------------------------------------------------------------------
# ANSI color helpers (disabled when NO_COLOR is set or not a TTY)
# ---------------------------------------------------------------------------

def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    explicit = os.environ.get("SEXPKIT_COLOR", "").lower()
    if explicit in ("0", "false", "no", "never"):
        return False
    if explicit in ("1", "true", "yes", "always"):
        return True
    return sys.stderr.isatty()

_BOLD   = "\033[1m"
_RED    = "\033[31m"
_BLUE   = "\033[34m"
_CYAN   = "\033[36m"
_RESET  = "\033[0m"

def _style(text: str, *codes: str, color: bool = True) -> str:
    if not color:
        return text
    prefix = "".join(codes)
    return f"{prefix}{text}{_RESET}" if prefix else text


# ---------------------------------------------------------------------------
# Diagnostic dataclasses
# ---------------------------------------------------------------------------

@dataclass
class Error:
    """A single rendered-on-demand diagnostic."""
    message: str
    location: Optional[SourceLocation]
    code: Optional[str] = None
    help: Optional[str] = None
    note: Optional[str] = None
    label: Optional[str] = None


# ---------------------------------------------------------------------------
# Formatting engine
# ---------------------------------------------------------------------------

def _format_diagnostic(
    error: Error,
    source_files: Dict[str, str],
    color: bool = False,
) -> str:
    """
    Render a single diagnostic in rustc style.

    Example output (plain, no color)::

        error[E0102]: unknown constructor tag `C`
         --> config.sexp:3:4
          |
        3 |   (C 1 2)
          |    ^ expected one of: A, B
          |
          = help: did you mean `B`?
    """
    out: List[str] = []

    code_str = f"[{error.code}]" if error.code else ""
    out.append(
        _style(f"error{code_str}", _BOLD, _RED, color=color)
        + _style(f": {error.message}", _BOLD, color=color)
    )

    if error.location is None:
        out.append(_style(" --> ", _BOLD, _BLUE, color=color) + "<unknown location>")
        _append_annotations(out, error, 1, color)
        return "\n".join(out)

    loc = error.location

    source = source_files.get(loc.file)
    if source is None:
        out.append(
            _style(" --> ", _BOLD, _BLUE, color=color)
            + f"{loc.file}:{loc.line}:{loc.column}"
        )
        _append_annotations(out, error, 1, color)
        return "\n".join(out)

    src_lines = source.split("\n")

    err_line = loc.line
    err_end_line = loc.end_line if loc.end_line and loc.end_line >= err_line else err_line
    err_col = max(loc.column, 1)
    err_end_col = loc.end_column if loc.end_column else 0
    multiline = err_end_line > err_line

    display_start = err_line
    display_end = max(display_start, min(len(src_lines), err_end_line))

    gw = max(len(str(display_end)), 1)

    def code_gutter(num: int) -> str:
        return _style(str(num).rjust(gw) + " | ", _BOLD, _BLUE, color=color)

    def underline_gutter() -> str:
        return _style(" " * (gw + 1) + "| ", _BOLD, _BLUE, color=color)

    out.append(
        _style(" " * gw + "--> ", _BOLD, _BLUE, color=color)
        + f"{loc.file}:{loc.line}:{loc.column}"
    )
    out.append(_style(" " * (gw + 1) + "|", _BOLD, _BLUE, color=color))

    label_suffix = f" {error.label}" if error.label else ""

    if not multiline:
        idx = err_line - 1
        code_line = src_lines[idx] if 0 <= idx < len(src_lines) else ""
        out.append(f"{code_gutter(err_line)}{code_line}")
        col_start = err_col - 1
        if err_end_col > err_col:
            span_len = err_end_col - err_col
        else:
            span_len = _guess_span(code_line, col_start)
        carets = " " * col_start + "^" * max(1, span_len)
        out.append(f"{underline_gutter()}{_style(carets + label_suffix, _BOLD, _RED, color=color)}")
    else:
        for line_num in range(display_start, display_end + 1):
            idx = line_num - 1
            code_line = src_lines[idx] if 0 <= idx < len(src_lines) else ""
            if line_num == err_line:
                out.append(f"{code_gutter(line_num)}{code_line}")
                col_0 = err_col - 1
                opening = " " + "_" * (col_0 - 1) + "^" if col_0 > 0 else "^"
                out.append(f"{underline_gutter()}{_style(opening, _BOLD, _RED, color=color)}")
            elif line_num == err_end_line:
                out.append(f"{code_gutter(line_num)}{_style('| ', _BOLD, _RED, color=color)}{code_line}")
                end_col_0 = (err_end_col - 1) if err_end_col > 0 else len(code_line.rstrip())
                closing = "|" + "_" * max(1, end_col_0) + "^" + label_suffix
                out.append(f"{underline_gutter()}{_style(closing, _BOLD, _RED, color=color)}")
            else:
                out.append(f"{code_gutter(line_num)}{_style('| ', _BOLD, _RED, color=color)}{code_line}")

    _append_annotations(out, error, gw, color)

    return "\n".join(out)


def _guess_span(code_line: str, col_start: int) -> int:
    """Guess atom length when end_column is unavailable."""
    if col_start >= len(code_line):
        return 1
    length = 0
    for ch in code_line[col_start:]:
        if ch.isspace() or ch in "();":
            break
        length += 1
    return max(1, length)


def _append_annotations(
    out: List[str],
    error: Error,
    gw: int,
    color: bool,
) -> None:
    if not (error.help or error.note):
        return
    out.append(_style(" " * (gw + 1) + "|", _BOLD, _BLUE, color=color))
    pad = " " * (gw + 1)
    if error.help:
        out.append(
            _style(f"{pad}= ", _BOLD, _CYAN, color=color)
            + _style("help: ", _BOLD, color=color)
            + error.help
        )
    if error.note:
        out.append(
            _style(f"{pad}= ", _BOLD, _CYAN, color=color)
            + _style("note: ", _BOLD, color=color)
            + error.note
        )


# ---------------------------------------------------------------------------
# ErrorReporter
# ---------------------------------------------------------------------------

class ErrorReporter:
    """Collects diagnostics and renders them against known source texts."""

    def __init__(self, source_files: Dict[str, str]):
        self.source_files = source_files
        self.errors: List[Error] = []

    def report_error(
        self,
        message: str,
        location: Optional[SourceLocation],
        code: Optional[str] = None,
        help: Optional[str] = None,
        note: Optional[str] = None,
        label: Optional[str] = None,
    ) -> None:
        self.errors.append(Error(
            message=message,
            location=location,
            code=code,
            help=help,
            note=note,
            label=label,
        ))

    def report_exception(self, exc: "SexpError") -> None:
        self.errors.append(exc.to_diagnostic())

    def format_error(self, error: Error, color: Optional[bool] = None) -> str:
        use_color = color if color is not None else _use_color()
        return _format_diagnostic(error, self.source_files, color=use_color)

    def format_all_errors(self, color: Optional[bool] = None) -> str:
        parts = [self.format_error(e, color=color) for e in self.errors]
        use_color = color if color is not None else _use_color()
        count = len(self.errors)
        summary = f"aborting due to {count} previous error{'s' if count != 1 else ''}"
        parts.append(
            _style("error", _BOLD, _RED, color=use_color)
            + _style(f": {summary}", _BOLD, color=use_color)
        )
        return "\n\n".join(parts)

    def has_errors(self) -> bool:
        return len(self.errors) > 0


# ============================================================================
# Exception Classes
# ============================================================================

PathSegment = Union[int, str]


def format_path(path: Sequence[PathSegment]) -> str:
    """Render a conversion path such as ``.items[2].name``."""
    parts = []
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        else:
            parts.append(f".{segment}")
    return "".join(parts)


class SexpError(Exception):
    """Base exception for all sexpkit errors"""
    code = ErrorCode.INTERNAL

    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        super().__init__(message)
        self.message = message
        self._location = location
        self.source_code: Optional[str] = None

    @property
    def location(self) -> Optional[SourceLocation]:
        return self._location

    def attach_source(self, source_code: str) -> "SexpError":
        """Remember the text the location refers to, for rich rendering."""
        self.source_code = source_code
        return self

    def headline(self) -> str:
        return self.message

    def to_diagnostic(self) -> Error:
        return Error(message=self.headline(), location=self.location, code=self.code.value)

    def __str__(self):
        location = self.location
        if location is None:
            return self.headline()
        if self.source_code is not None:
            return _format_diagnostic(
                self.to_diagnostic(),
                {location.file: self.source_code},
                color=_use_color(),
            )
        return f"error[{self.code.value}]: {self.headline()}\n --> {location}"


class ParseError(SexpError):
    """Malformed S-expression text."""
    code = ErrorCode.PARSE

    def __init__(self, message: str, location: SourceLocation):
        super().__init__(message, location)

    @property
    def offset(self) -> int:
        return self._location.start

    @property
    def line(self) -> int:
        return self._location.line

    @property
    def column(self) -> int:
        return self._location.column


class DescriptorError(SexpError):
    """A type descriptor that cannot be turned into a converter."""
    code = ErrorCode.DESCRIPTOR


class SexpImplementationError(Exception):
    """
    Error in sexpkit itself, never caused by user input.
    """
    def __init__(self, message: str, error_code: str = ErrorCode.INTERNAL.value):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self):
        return f"[{self.error_code}] {self.message}"


class ConversionError(SexpError):
    """
    A Sexp value that does not have the shape a converter expects.

    Carries the offending subtree; its location (when the value came from the
    parser) is the error location. ``path`` records the field names and
    element indices walked from the top-level value down to the failure.
    """
    code = ErrorCode.UNEXPECTED_SHAPE

    def __init__(self, message: str, sexp: Any = None):
        super().__init__(message)
        self.sexp = sexp
        self.path: List[PathSegment] = []

    @property
    def location(self) -> Optional[SourceLocation]:
        return getattr(self.sexp, "location", None)

    def add_context(self, segment: PathSegment) -> "ConversionError":
        self.path.insert(0, segment)
        return self

    def headline(self) -> str:
        text = self.message
        if self.path:
            text = f"{text} (at {format_path(self.path)})"
        return text

    def to_diagnostic(self) -> Error:
        note = None
        if self.sexp is not None:
            from ..sexp.printer import to_string
            note = f"offending value: {to_string(self.sexp)}"
        return Error(
            message=self.headline(),
            location=self.location,
            code=self.code.value,
            help=self.help_text(),
            note=note,
        )

    def help_text(self) -> Optional[str]:
        return None

    def __str__(self):
        if self.location is None and self.sexp is not None:
            from ..sexp.printer import to_string
            return f"{self.headline()}: {to_string(self.sexp)}"
        return super().__str__()


class ArityMismatchError(ConversionError):
    code = ErrorCode.ARITY_MISMATCH

    def __init__(self, what: str, expected: int, got: int, sexp: Any = None):
        super().__init__(f"{what}: expected {expected} element(s), got {got}", sexp)
        self.expected = expected
        self.got = got


class UnknownTagError(ConversionError):
    code = ErrorCode.UNKNOWN_TAG

    def __init__(self, what: str, tag: str, candidates: Sequence[str], sexp: Any = None):
        super().__init__(f"{what}: unknown tag `{tag}`", sexp)
        self.tag = tag
        self.candidates = tuple(candidates)

    def help_text(self) -> Optional[str]:
        if not self.candidates:
            return None
        return "expected one of: " + ", ".join(self.candidates)


class MissingFieldError(ConversionError):
    code = ErrorCode.MISSING_FIELD

    def __init__(self, what: str, fields: Sequence[str], sexp: Any = None):
        names = ", ".join(fields)
        plural = "s" if len(fields) != 1 else ""
        super().__init__(f"{what}: missing field{plural} {names}", sexp)
        self.fields = tuple(fields)
        self.field = self.fields[0]


class DuplicateFieldError(ConversionError):
    code = ErrorCode.DUPLICATE_FIELD

    def __init__(self, what: str, field: str, sexp: Any = None):
        super().__init__(f"{what}: duplicate field {field}", sexp)
        self.field = field


class UnknownFieldError(ConversionError):
    code = ErrorCode.UNKNOWN_FIELD

    def __init__(self, what: str, field: str, known: Sequence[str], sexp: Any = None):
        super().__init__(f"{what}: unknown field {field}", sexp)
        self.field = field
        self.known = tuple(known)

    def help_text(self) -> Optional[str]:
        if not self.known:
            return None
        return "known fields: " + ", ".join(self.known)


class UnexpectedShapeError(ConversionError):
    code = ErrorCode.UNEXPECTED_SHAPE

    def __init__(self, what: str, expected_shape: str, actual: Any, detail: Optional[str] = None):
        message = f"{what}: expected {expected_shape}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, actual)
        self.expected_shape = expected_shape
        self.actual = actual


class OpaqueReconstructionError(ConversionError):
    code = ErrorCode.OPAQUE

    def __init__(self, what: str, sexp: Any = None):
        super().__init__(f"{what}: cannot reconstruct opaque value", sexp)
