"""
Generic value for sum and polymorphic variant cases without a dedicated class.
"""

from dataclasses import dataclass
from typing import Any, Tuple


@dataclass(frozen=True)
class Variant:
    """Constructor tag plus positional arguments, e.g. ``Variant("B", (1, 2.0))``."""
    tag: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        if not isinstance(self.args, tuple):
            object.__setattr__(self, 'args', tuple(self.args))

    def __repr__(self) -> str:
        if not self.args:
            return self.tag
        return f"{self.tag}({', '.join(repr(a) for a in self.args)})"
