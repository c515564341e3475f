"""
Process-wide conversion switches.

Converters read these at call time, so flipping a switch affects converters
that were derived before the change.

Defaults:
- read_old_option_format = True: ``()`` and ``(v)`` are accepted as None / v.
  Subject to change in a future release; new code should not rely on it.
- write_old_option_format = False: options are always written as ``none`` and
  ``(some v)``.
- check_extra_fields = True: unknown record fields are an error unless the
  record descriptor allows extra fields.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import (
    ENV_CHECK_EXTRA_FIELDS,
    ENV_READ_OLD_OPTION_FORMAT,
    ENV_WRITE_OLD_OPTION_FORMAT,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning(f"Ignoring {name}={raw!r}: expected one of {_TRUE_VALUES + _FALSE_VALUES}")
    return default


class ConversionFlags:
    """Holder for the process-wide switches."""

    def __init__(self,
                 read_old_option_format: bool = True,
                 write_old_option_format: bool = False,
                 check_extra_fields: bool = True):
        self._lock = threading.Lock()
        self.read_old_option_format = read_old_option_format
        self.write_old_option_format = write_old_option_format
        self.check_extra_fields = check_extra_fields

    @classmethod
    def from_environment(cls) -> "ConversionFlags":
        return cls(
            read_old_option_format=_env_flag(ENV_READ_OLD_OPTION_FORMAT, True),
            write_old_option_format=_env_flag(ENV_WRITE_OLD_OPTION_FORMAT, False),
            check_extra_fields=_env_flag(ENV_CHECK_EXTRA_FIELDS, True),
        )

    def set(self,
            read_old_option_format: Optional[bool] = None,
            write_old_option_format: Optional[bool] = None,
            check_extra_fields: Optional[bool] = None) -> None:
        with self._lock:
            if read_old_option_format is not None:
                self.read_old_option_format = read_old_option_format
            if write_old_option_format is not None:
                self.write_old_option_format = write_old_option_format
            if check_extra_fields is not None:
                self.check_extra_fields = check_extra_fields

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "read_old_option_format": self.read_old_option_format,
                "write_old_option_format": self.write_old_option_format,
                "check_extra_fields": self.check_extra_fields,
            }

    @contextmanager
    def override(self, **changes: bool) -> Iterator["ConversionFlags"]:
        """Temporarily change switches, restoring the previous values on exit."""
        previous = self.snapshot()
        self.set(**changes)
        try:
            yield self
        finally:
            self.set(**previous)


flags = ConversionFlags.from_environment()
