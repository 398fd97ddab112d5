# -*- coding: utf-8 -*-
"""Write actor message handlers as sequential async code.

The run-time parts (actors, deferred computations) live here. The macro that
rewrites an ``async def handle`` into a continuation chain is in
``actorchain.syntax``, and requires `mcpyrate`.
"""

__version__ = '0.1.0'

from .actor import *  # noqa: F401, F403
from .fut import *  # noqa: F401, F403
