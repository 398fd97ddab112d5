# -*- coding: utf-8 -*-
"""Recognize identifiers in ASTs, whether written by the user or generated by us.

The code we generate refers to the runtime via `mcpyrate` hygienic captures
(``h[ready]``), while user code refers to things by plain names (``Handler``,
``into``) or attributes (``actorchain.Handler``). ``isx`` treats all of these
alike.
"""

__all__ = ["isx", "getname"]

from ast import Name, Attribute

from mcpyrate.core import Done
from mcpyrate.quotes import is_captured_value

def isx(tree, name, accept_attr=True):
    """Return whether ``tree`` refers to ``name`` (str).

    ``accept_attr``: whether to also match ``something.name``.
    """
    return getname(tree, accept_attr=accept_attr) == name

def getname(tree, accept_attr=True):
    """Return the identifier ``tree`` refers to, or ``None`` if it's not a reference.

    Handles a bare ``Name``, a hygienic capture (by the name it was captured
    under), an ``Attribute`` (its last component; if ``accept_attr``), and
    any of these wrapped in ``mcpyrate.core.Done``.
    """
    while isinstance(tree, Done):
        tree = tree.body
    if type(tree) is Name:
        return tree.id
    key = is_captured_value(tree)  # (name, frozen_value), or False
    if key:
        return key[0]
    if accept_attr and type(tree) is Attribute:
        return tree.attr
    return None
