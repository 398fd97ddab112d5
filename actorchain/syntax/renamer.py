# -*- coding: utf-8 -*-
"""Rename the receiver and context parameters of a handler.

The body of a rewritten handler runs inside nested continuation closures,
each of which receives the actor and its context as parameters. To make
the user's references to ``self`` and ``ctx`` resolve to those parameters,
we rename both binders, everywhere in the body, to fixed internal names.
"""

__all__ = ["SELF", "CTX", "rename_binders"]

from ast import (Name, arg, Call, Load, Global, Nonlocal, ExceptHandler,
                 Lambda, FunctionDef, AsyncFunctionDef, ClassDef,
                 MatchAs, MatchStar, MatchMapping)
from copy import deepcopy

from mcpyrate.quotes import is_captured_value
from mcpyrate.walkers import ASTTransformer

SELF = "_chain_self"
CTX = "_chain_ctx"

def rename_binders(tree, receiver, context_param):
    """Rename ``receiver`` to ``SELF`` and ``context_param`` to ``CTX`` in ``tree``.

    ``tree`` is a statement list or a single node. Return a renamed deep copy;
    the input is not modified.

    The renaming is purely lexical, at any nesting depth. Beside ``Name`` nodes
    and function parameters, this also covers the identifiers Python stores as
    raw strings: names in ``global``/``nonlocal`` declarations, exception
    targets in ``except ... as e``, and capture names in ``match`` patterns.

    Attribute names (``o.self``) and keyword argument names (``f(ctx=...)``)
    are different namespaces, so they are left alone.

    A zero-argument ``super()`` implicitly refers to the receiver, and to the
    first parameter of whichever function it runs in. Once the body is moved
    into continuation functions, that parameter is no longer the receiver, so
    ``super()`` becomes ``super(__class__, _chain_self)``. Inside nested
    function and class definitions, ``super()`` means something else, and is
    left alone.
    """
    renames = {receiver: SELF, context_param: CTX}
    def rename(name):
        return renames.get(name, name)

    class BinderRenamer(ASTTransformer):
        def transform(self, tree):
            if is_captured_value(tree):
                return tree  # don't recurse!
            T = type(tree)
            if T is Name:
                tree.id = rename(tree.id)
            elif T is arg:
                tree.arg = rename(tree.arg)
            elif T in (Global, Nonlocal):
                tree.names = [rename(x) for x in tree.names]
            elif T is ExceptHandler and tree.name is not None:
                tree.name = rename(tree.name)
            elif T in (MatchAs, MatchStar) and tree.name is not None:
                tree.name = rename(tree.name)
            elif T is MatchMapping and tree.rest is not None:
                tree.rest = rename(tree.rest)
            return self.generic_visit(tree)

    class SuperBinder(ASTTransformer):
        def transform(self, tree):
            if is_captured_value(tree):
                return tree
            if type(tree) in (Lambda, FunctionDef, AsyncFunctionDef, ClassDef):
                return tree
            tree = self.generic_visit(tree)
            if (type(tree) is Call and type(tree.func) is Name and tree.func.id == "super" and
                    not tree.args and not tree.keywords):
                tree.args = [Name(id="__class__", ctx=Load()), Name(id=SELF, ctx=Load())]
            return tree

    return SuperBinder().visit(BinderRenamer().visit(deepcopy(tree)))
