"""
Configuration constants used throughout sexpkit
"""

# Placeholder written for values of opaque types. The angle brackets make it
# distinct from anything the primitive converters produce; it never reads back.
OPAQUE_PLACEHOLDER = "<opaque>"

# Option encodings
OPTION_NONE_ATOMS = ("none", "None")
OPTION_SOME_TAGS = ("some", "Some")
OPTION_NONE_ATOM = "none"
OPTION_SOME_TAG = "some"

# Boolean atoms
BOOLEAN_TRUE_LITERAL = "true"
BOOLEAN_FALSE_LITERAL = "false"

# Default name for in-memory buffers in diagnostics
DEFAULT_SOURCE_NAME = "<string>"

# File encoding constants
DEFAULT_FILE_ENCODING = "utf-8"

# Human layout
DEFAULT_HUM_INDENT = 1
DEFAULT_HUM_WIDTH = 78

# Environment variables read once at import time by utils.flags
ENV_READ_OLD_OPTION_FORMAT = "SEXPKIT_READ_OLD_OPTION_FORMAT"
ENV_WRITE_OLD_OPTION_FORMAT = "SEXPKIT_WRITE_OLD_OPTION_FORMAT"
ENV_CHECK_EXTRA_FIELDS = "SEXPKIT_CHECK_EXTRA_FIELDS"
