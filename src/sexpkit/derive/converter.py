"""
Converter pair produced by derivation.
"""

from dataclasses import dataclass
from typing import Any, Callable, Union

from typing_extensions import TypeAlias

from ..sexp.parser import default_parser
from ..sexp.printer import to_string, to_string_hum
from ..sexp.value import Sexp
from ..shared.errors import SexpError
from ..utils.config import DEFAULT_FILE_ENCODING, DEFAULT_SOURCE_NAME

ToSexp: TypeAlias = Callable[[Any], Sexp]
OfSexp: TypeAlias = Callable[[Sexp], Any]


@dataclass(frozen=True, eq=False)
class Converter:
    """
    A ``(to_sexp, of_sexp)`` pair for one type.

    Converters are plain functions with no mutable state; equality is
    identity, which is what the derivation cache keys on.
    """
    name: str
    to_sexp: ToSexp
    of_sexp: OfSexp

    def to_string(self, value: Any, hum: bool = False) -> str:
        sexp = self.to_sexp(value)
        return to_string_hum(sexp) if hum else to_string(sexp)

    def of_string(self, text: Union[str, bytes], source_file: str = DEFAULT_SOURCE_NAME) -> Any:
        """
        Parse one S-expression and convert it.

        Parse and conversion errors keep the text so that ``str(error)``
        shows the offending span.
        """
        if isinstance(text, bytes):
            text = text.decode(DEFAULT_FILE_ENCODING)
        try:
            return self.of_sexp(default_parser().parse(text, source_file=source_file))
        except SexpError as e:
            e.attach_source(text)
            raise

    def __repr__(self) -> str:
        return f"<Converter {self.name}>"
