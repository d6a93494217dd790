from .link import Link
from .click import Click
from .sequence import CodeSequence

__all__ = ["Link", "Click", "CodeSequence"]
