"""
Source Location (Span)

A span of text inside a parsed buffer. Attached to parsed Sexp values and to
parse errors so diagnostics can point at the exact characters.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceLocation:
    """
    Source span.

    - file: name used in diagnostics ("<string>" for in-memory buffers)
    - line/column: 1-based start position
    - start/end: byte offsets into the UTF-8 buffer (end exclusive)
    - end_line/end_column: 1-based position just past the span, 0 if unknown
    - Immutable (frozen) for hashability
    """
    file: str
    line: int
    column: int
    start: int = 0
    end: int = 0
    end_line: int = 0
    end_column: int = 0

    def __str__(self) -> str:
        """Format as file:line:column"""
        return f"{self.file}:{self.line}:{self.column}"

    @property
    def offset(self) -> int:
        return self.start
