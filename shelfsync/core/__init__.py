"""
This module implements synchronization of content modules: fingerprinting,
archive installation, staleness tracking and catalog reconciliation.
"""

from pyrollup import rollup

from . import (
    archive,
    catalog,
    context,
    exceptions,
    fetch,
    hashing,
    interaction,
    module,
    shelf,
    staleness,
    state,
    subscriptions,
)
from .archive import *  # noqa
from .catalog import *  # noqa
from .context import *  # noqa
from .exceptions import *  # noqa
from .fetch import *  # noqa
from .hashing import *  # noqa
from .interaction import *  # noqa
from .module import *  # noqa
from .shelf import *  # noqa
from .staleness import *  # noqa
from .state import *  # noqa
from .subscriptions import *  # noqa

__all__ = rollup(
    shelf,
    module,
    catalog,
    staleness,
    subscriptions,
    archive,
    hashing,
    fetch,
    interaction,
    context,
    state,
    exceptions,
)

__canonical_children__ = [
    "shelf",
    "module",
    "catalog",
    "staleness",
    "subscriptions",
    "archive",
    "hashing",
    "fetch",
    "interaction",
    "context",
    "state",
    "exceptions",
]
