# -*- coding: utf-8 -*-
"""Renaming the receiver and context binders."""

from unpythonic.syntax import macros, test, the  # noqa: F401
from unpythonic.test.fixtures import session, testset

from mcpyrate.quotes import macros, q, h  # noqa: F401, F811

from ast import parse

from mcpyrate import unparse

from ..renamer import rename_binders, SELF, CTX

def src(tree):
    return unparse(tree).strip()

def code(text):
    """Normalize ``text`` the same way ``src`` renders a tree.

    Different versions of `mcpyrate` parenthesize differently, so compare
    unparsed trees, never unparsed text against hand-written text.
    """
    return src(parse(text).body)

def runtests():
    with testset("names and parameters"):
        with q as tree:
            self.count = ctx.address  # noqa: F821, it's only quoted.
        renamed = rename_binders(tree, "self", "ctx")
        test[the[src(renamed)] == code("_chain_self.count = _chain_ctx.address")]
        # The input is not modified.
        test[the[src(tree)] == code("self.count = ctx.address")]

        # The context parameter can be named anything.
        with q as tree:
            context.spawn(self.job)  # noqa: F821
        test[the[src(rename_binders(tree, "self", "context"))] == code("_chain_ctx.spawn(_chain_self.job)")]

        # Any depth, including nested scopes.
        with q as tree:
            f(lambda: [self.x for _ in range(ctx)])  # noqa: F821
        test[the[src(rename_binders(tree, "self", "ctx"))] == code("f(lambda: [_chain_self.x for _ in range(_chain_ctx)])")]
        with q as tree:
            def helper(ctx):  # noqa: F811
                return ctx
        test[SELF not in src(rename_binders(tree, "self", "ctx"))]
        test[src(rename_binders(tree, "self", "ctx")).count(CTX) == 2]

    with testset("other identifiers are left alone"):
        with q as tree:
            f(self, ctx=ctx, selfish=myself)  # noqa: F821
        test[the[src(rename_binders(tree, "self", "ctx"))] == code("f(_chain_self, ctx=_chain_ctx, selfish=myself)")]
        with q as tree:
            other.self.ctx = 1  # noqa: F821
        test[the[src(rename_binders(tree, "self", "ctx"))] == code("other.self.ctx = 1")]

    with testset("identifiers stored as raw strings"):
        with q as tree:
            try:
                pass
            except RuntimeError as ctx:  # noqa: F841
                pass
        renamed = rename_binders(tree, "self", "ctx")
        test[renamed[0].handlers[0].name == CTX]

        with q as tree:
            def f():
                nonlocal self  # noqa: F821
        renamed = rename_binders(tree, "self", "ctx")
        test[renamed[0].body[0].names == [SELF]]

        with q as tree:
            match msg:  # noqa: F821
                case [self, *ctx]:
                    pass
        renamed = rename_binders(tree, "self", "ctx")
        pattern = renamed[0].cases[0].pattern
        test[pattern.patterns[0].name == SELF]
        test[pattern.patterns[1].name == CTX]

    with testset("zero-argument super"):
        with q as tree:
            x = super().greet(ctx)  # noqa: F821
        test[the[src(rename_binders(tree, "self", "ctx"))] == code("x = super(__class__, _chain_self).greet(_chain_ctx)")]
        # Explicit arguments are kept as written.
        with q as tree:
            super(Base, self).greet()  # noqa: F821
        test[the[src(rename_binders(tree, "self", "ctx"))] == code("super(Base, _chain_self).greet()")]
        # Nested definitions have a `super()` of their own.
        with q as tree:
            class Inner(Base):  # noqa: F821
                def greet(self):
                    return super().greet()
        test[the[src(rename_binders(tree, "self", "ctx"))].count("super()") == 1]
        with q as tree:
            f(lambda obj: super().greet())  # noqa: F821
        test[the[src(rename_binders(tree, "self", "ctx"))] == code("f(lambda obj: super().greet())")]

    with testset("hygienic captures are left alone"):
        self = "the captured value"  # noqa: F841
        tree = q[h[self].x]
        renamed = rename_binders(tree, "self", "ctx")
        test[SELF not in src(renamed)]

if __name__ == '__main__':  # pragma: no cover
    with session(__file__):
        runtests()
