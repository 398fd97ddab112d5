# -*- coding: utf-8 -*-
"""Errors raised by ``@async_handler`` at macro expansion time.

Like the other macros built on `mcpyrate`, we signal errors by raising
``SyntaxError``; the expander then reports the location of the macro use site.
These subclasses additionally carry the location of the offending node.
"""

__all__ = ["AsyncHandlerError", "ConfigurationError", "StructuralError", "ConsistencyError"]

class AsyncHandlerError(SyntaxError):
    """Base class for errors in ``@async_handler``.

    ``tree``, if given, is the AST node the error is about; its position
    is copied into ``lineno`` and ``offset``.
    """
    def __init__(self, msg, tree=None, filename=None):
        lineno = getattr(tree, "lineno", None)
        col_offset = getattr(tree, "col_offset", None)
        offset = col_offset + 1 if col_offset is not None else None
        super().__init__(msg, (filename, lineno, offset, None))

class ConfigurationError(AsyncHandlerError):
    """Unrecognized macro argument."""

class StructuralError(AsyncHandlerError):
    """The decorated code does not have a shape ``@async_handler`` can rewrite."""

class ConsistencyError(AsyncHandlerError):
    """The rewritten code failed to compile. This is a bug in ``@async_handler``."""
