"""
sexpkit utilities package
"""

from .flags import ConversionFlags, flags
from .io_utils import read_source_file, write_text_file

__all__ = ["ConversionFlags", "flags", "read_source_file", "write_text_file"]
