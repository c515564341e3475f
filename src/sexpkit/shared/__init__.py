"""
Shared components: source spans and the error taxonomy.
"""

from .source_location import SourceLocation
from .errors import (
    Error, ErrorReporter, ErrorCode,
    SexpError, ParseError, DescriptorError, SexpImplementationError,
    ConversionError, ArityMismatchError, UnknownTagError, MissingFieldError,
    DuplicateFieldError, UnknownFieldError, UnexpectedShapeError,
    OpaqueReconstructionError, format_path,
)
