"""
shelfsync: keeps versioned content modules synchronized into local folders.
"""

from pyrollup import rollup

from . import core
from .core import *  # noqa

__all__ = rollup(core)

__canonical_children__ = [
    "core",
]
