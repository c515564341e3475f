"""
Parser

Turns text into Sexp values. Tokens come from the Lark lexer built from
grammar.lark; lists are assembled here with an explicit stack so that
top-level values stream out as soon as they are complete, and a malformed
trailing form only fails once iteration reaches it.
"""

import logging
from functools import lru_cache
from itertools import accumulate
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from lark import Lark, Token
from lark.exceptions import UnexpectedCharacters

from .value import Atom, Sexp, SexpList
from ..shared.errors import ParseError
from ..shared.source_location import SourceLocation
from ..utils.config import DEFAULT_FILE_ENCODING, DEFAULT_SOURCE_NAME
from ..utils.io_utils import read_source_file

logger = logging.getLogger("sexpkit.sexp.parser")

_SIMPLE_UNESCAPES = {
    '"': '"',
    '\\': '\\',
    'n': '\n',
    't': '\t',
    'r': '\r',
    'b': '\b',
    ' ': ' ',
}

_DEC_DIGITS = "0123456789"
_HEX_DIGITS = "0123456789abcdefABCDEF"


def _is_decimal_escape(digits: str) -> bool:
    return len(digits) == 3 and all(c in _DEC_DIGITS for c in digits) and int(digits) <= 255


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    grammar_path = Path(__file__).parent / "grammar.lark"
    logger.debug(f"Building S-expression lexer from {grammar_path}")
    return Lark.open(
        str(grammar_path),
        start='start',
        parser='lalr',
        lexer='basic',
        maybe_placeholders=False,
    )


def unescape_quoted(body: str) -> str:
    """
    Decode the inside of a quoted atom.

    Handles \\" \\\\ \\n \\t \\r \\b, \\DDD (decimal, at most 255), \\xHH,
    \\u{H...} and backslash-newline continuation, which drops the newline and
    the blanks that follow it. Unknown escapes are kept verbatim.
    """
    if '\\' not in body:
        return body
    out: List[str] = []
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch != '\\' or i + 1 >= n:
            out.append(ch)
            i += 1
            continue
        nxt = body[i + 1]
        simple = _SIMPLE_UNESCAPES.get(nxt)
        if simple is not None:
            out.append(simple)
            i += 2
        elif nxt in '\r\n':
            i += 2
            if nxt == '\r' and i < n and body[i] == '\n':
                i += 1
            while i < n and body[i] in ' \t':
                i += 1
        elif _is_decimal_escape(body[i + 1:i + 4]):
            out.append(chr(int(body[i + 1:i + 4])))
            i += 4
        elif nxt == 'x' and len(body[i + 2:i + 4]) == 2 and all(c in _HEX_DIGITS for c in body[i + 2:i + 4]):
            out.append(chr(int(body[i + 2:i + 4], 16)))
            i += 4
        elif nxt == 'u' and body[i + 2:i + 3] == '{' and '}' in body[i + 3:]:
            close = body.index('}', i + 3)
            digits = body[i + 3:close]
            if digits and all(c in _HEX_DIGITS for c in digits) and int(digits, 16) <= 0x10FFFF:
                out.append(chr(int(digits, 16)))
                i = close + 1
            else:
                out.append(ch)
                i += 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _line_col(text: str, offset: int) -> Tuple[int, int]:
    """1-based line and column of ``offset`` in ``text``."""
    line = text.count("\n", 0, offset) + 1
    last_newline = text.rfind("\n", 0, offset)
    return line, offset - last_newline


def _decode(text: Union[str, bytes], start: int) -> Tuple[str, str]:
    """
    Split the buffer at byte offset ``start`` into decoded prefix and body.

    Raises ValueError when ``start`` is outside the buffer or inside a
    multi-byte character.
    """
    data = text if isinstance(text, bytes) else text.encode(DEFAULT_FILE_ENCODING)
    if not 0 <= start <= len(data):
        raise ValueError(f"start offset {start} outside buffer of length {len(data)}")
    if isinstance(text, bytes):
        text = text.decode(DEFAULT_FILE_ENCODING)
    try:
        prefix = data[:start].decode(DEFAULT_FILE_ENCODING)
    except UnicodeDecodeError as e:
        raise ValueError(f"start offset {start} is inside a multi-byte character") from e
    return prefix, text[len(prefix):]


class _Span:
    """
    Maps positions inside the parsed body back to the whole buffer.

    Lark reports character positions; offsets are stored in bytes of the
    encoded buffer.
    """

    def __init__(self, source_file: str, prefix: str, body: str):
        self.source_file = source_file
        self.start = len(prefix.encode(DEFAULT_FILE_ENCODING))
        self.base_line = prefix.count("\n") + 1
        self.base_column = len(prefix) - prefix.rfind("\n")
        self._body = body
        self._ascii = body.isascii()
        self._byte_offsets: Optional[List[int]] = None

    def _offset(self, pos: int) -> int:
        if self._ascii:
            return self.start + pos
        if self._byte_offsets is None:
            self._byte_offsets = list(accumulate(
                (len(ch.encode(DEFAULT_FILE_ENCODING)) for ch in self._body), initial=0,
            ))
        return self.start + self._byte_offsets[pos]

    def _line(self, line: int) -> int:
        return self.base_line + line - 1

    def _column(self, line: int, column: int) -> int:
        return column + self.base_column - 1 if line == 1 else column

    def point(self, line: int, column: int, pos: int) -> SourceLocation:
        return SourceLocation(
            file=self.source_file,
            line=self._line(line),
            column=self._column(line, column),
            start=self._offset(pos),
            end=self._offset(min(pos + 1, len(self._body))),
            end_line=self._line(line),
            end_column=self._column(line, column) + 1,
        )

    def token(self, tok: Token) -> SourceLocation:
        return self.between(tok, tok)

    def between(self, first: Token, last: Token) -> SourceLocation:
        return SourceLocation(
            file=self.source_file,
            line=self._line(first.line),
            column=self._column(first.line, first.column),
            start=self._offset(first.start_pos),
            end=self._offset(last.end_pos),
            end_line=self._line(last.end_line),
            end_column=self._column(last.end_line, last.end_column),
        )


class Parser:
    """
    S-expression parser.

    One instance can be shared between threads: each call keeps its own
    state and the underlying Lark lexer is built once per process.
    """

    def __init__(self, source_file: str = DEFAULT_SOURCE_NAME):
        self.source_file = source_file
        self._lark = _build_lark()

    def iter_parse(self, text: Union[str, bytes], start: int = 0,
                   source_file: Optional[str] = None) -> Iterator[Sexp]:
        """
        Lazily parse the top-level values of ``text`` from offset ``start``.

        ``start`` and every reported offset count bytes of the UTF-8 buffer.
        Raises ParseError when iteration reaches a malformed form; values
        before it have already been yielded.
        """
        prefix, body = _decode(text, start)
        span = _Span(source_file or self.source_file, prefix, body)
        tokens = self._lark.lex(body)
        # Each entry: opening paren token and the children read so far.
        stack: List[Tuple[Token, List[Sexp]]] = []
        while True:
            try:
                tok = next(tokens)
            except StopIteration:
                break
            except UnexpectedCharacters as e:
                raise self._lexer_error(span, e) from e

            if tok.type == 'LPAREN':
                stack.append((tok, []))
                continue
            if tok.type == 'RPAREN':
                if not stack:
                    raise ParseError("unexpected closing parenthesis", span.token(tok))
                open_tok, items = stack.pop()
                value: Sexp = SexpList(tuple(items), span.between(open_tok, tok))
            elif tok.type == 'QUOTED_ATOM':
                value = Atom(unescape_quoted(tok.value[1:-1]), span.token(tok))
            else:
                value = Atom(str(tok.value), span.token(tok))

            if stack:
                stack[-1][1].append(value)
            else:
                yield value

        if stack:
            open_tok = stack[0][0]
            raise ParseError(
                "unclosed parenthesis: input ended before the matching `)`",
                span.token(open_tok),
            )

    def _lexer_error(self, span: _Span, e: UnexpectedCharacters) -> ParseError:
        location = span.point(e.line, e.column, e.pos_in_stream)
        if e.char == '"':
            return ParseError("unterminated quoted atom", location)
        return ParseError(f"unexpected character {e.char!r}", location)

    def parse_many(self, text: Union[str, bytes], start: int = 0,
                   source_file: Optional[str] = None) -> List[Sexp]:
        return list(self.iter_parse(text, start, source_file))

    def parse(self, text: Union[str, bytes], start: int = 0,
              source_file: Optional[str] = None) -> Sexp:
        """Parse exactly one S-expression; anything after it is an error."""
        values = self.iter_parse(text, start, source_file)
        first = next(values, None)
        if first is None:
            if isinstance(text, bytes):
                text = text.decode(DEFAULT_FILE_ENCODING)
            line, column = _line_col(text, len(text))
            end = len(text.encode(DEFAULT_FILE_ENCODING))
            raise ParseError(
                "empty input: expected an S-expression",
                SourceLocation(source_file or self.source_file, line, column, end, end),
            )
        second = next(values, None)
        if second is not None:
            raise ParseError(
                "trailing input after the S-expression",
                second.location,
            )
        return first


_default_parser: Optional[Parser] = None


def default_parser() -> Parser:
    global _default_parser
    if _default_parser is None:
        _default_parser = Parser()
    return _default_parser


def parse(text: Union[str, bytes], source_file: str = DEFAULT_SOURCE_NAME) -> Sexp:
    return default_parser().parse(text, source_file=source_file)


def parse_many(text: Union[str, bytes], source_file: str = DEFAULT_SOURCE_NAME) -> List[Sexp]:
    return default_parser().parse_many(text, source_file=source_file)


def iter_parse(text: Union[str, bytes], start: int = 0,
               source_file: str = DEFAULT_SOURCE_NAME) -> Iterator[Sexp]:
    return default_parser().iter_parse(text, start, source_file)


def load_sexp(path: Union[Path, str]) -> Sexp:
    """Read a file holding exactly one S-expression."""
    return default_parser().parse(read_source_file(path), source_file=str(path))


def load_sexps(path: Union[Path, str]) -> List[Sexp]:
    """Read every top-level S-expression in a file."""
    return default_parser().parse_many(read_source_file(path), source_file=str(path))
