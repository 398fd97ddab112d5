# -*- coding: utf-8 -*-
"""actorchain.syntax: sequential async code for actor message handlers.

Requires `mcpyrate`.

Usage::

    from actorchain.syntax import macros, async_handler, into

This module only re-exports the macro interfaces, so the macros can be imported
by `from actorchain.syntax import macros, ...`. The submodules contain the actual
macro interfaces (and their docstrings), as well as the syntax transformers
(i.e. regular functions that process ASTs) that implement the macros.
"""

from .asynchandler import *  # noqa: F401, F403
from .errors import *  # noqa: F401, F403
