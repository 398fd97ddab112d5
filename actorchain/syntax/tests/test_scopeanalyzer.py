# -*- coding: utf-8 -*-
"""Lexical scope analysis tools."""

from unpythonic.syntax import macros, test, the  # noqa: F401
from unpythonic.test.fixtures import session, testset

from mcpyrate.quotes import macros, q  # noqa: F401, F811

from ast import AnnAssign, Nonlocal, Global, Pass, Assign

from mcpyrate import unparse

from ..scopeanalyzer import (isnewscope,
                             get_names_in_store_context,
                             get_names_in_del_context,
                             declare_nonlocals)

def runtests():
    with testset("isnewscope"):
        test[not isnewscope(q[x])]  # noqa: F821, it's only quoted.
        test[not isnewscope(q[o.x])]  # noqa: F821
        test[isnewscope(q[lambda x: 2 * x])]
        with q as fdef:
            async def g():
                pass
        test[isnewscope(fdef[0])]
        test[isnewscope(q[[x for x in range(10)]])]  # ListComp
        test[isnewscope(q[(x for x in range(10))])]  # GeneratorExp

    with testset("get_names_in_store_context"):
        with q as t:
            x = y = 42  # noqa: F841, it's only quoted.
        test[set(get_names_in_store_context(t)) == {"x", "y"}]
        with q as t:
            a, *b = c  # noqa: F821
        test[set(get_names_in_store_context(t)) == {"a", "b"}]
        with q as t:
            for k in range(10):
                total += k  # noqa: F821
        test[set(get_names_in_store_context(t)) == {"k", "total"}]
        with q as t:
            if (n := len(xs)) > 3:  # noqa: F821
                pass
        test[get_names_in_store_context(t) == ["n"]]
        with q as t:
            import os.path
            from collections import deque as dq  # noqa: F401
        test[set(get_names_in_store_context(t)) == {"os", "dq"}]
        with q as t:
            try:
                pass
            except ValueError as err:  # noqa: F841
                pass
        test[get_names_in_store_context(t) == ["err"]]
        with q as t:
            match msg:  # noqa: F821
                case {"a": first, **rest}:
                    pass
        test[set(get_names_in_store_context(t)) == {"first", "rest"}]

        # Nested scopes: only the name of the definition itself is bound here.
        with q as t:
            def helper(a):
                b = a  # noqa: F841
        test[get_names_in_store_context(t) == ["helper"]]
        test[get_names_in_store_context(q[[z for z in range(3)]]) == []]

    with testset("get_names_in_del_context"):
        with q as t:
            del x, o.attr, d["key"]  # noqa: F821
        test[get_names_in_del_context(t) == ["x"]]

    with testset("declare_nonlocals"):
        with q as t:
            def handle(_chain_self, msg, _chain_ctx):
                def _chain_then1(_chain_res, _chain_self, _chain_ctx):
                    a = 1
                    def _chain_map2(_chain_res, _chain_self, _chain_ctx):
                        b: int = _chain_res
                        msg = a + b
                        return msg
                    return f(a).map(_chain_map2)  # noqa: F821
                return g().then(_chain_then1)  # noqa: F821
        fdef = t[0]
        declare_nonlocals(fdef, steps={"_chain_then1": frozenset(), "_chain_map2": frozenset()})
        # Hoisted to the method's own scope, as bare annotations. Parameters are not.
        hoisted = [x.target.id for x in fdef.body if type(x) is AnnAssign]
        test[the[hoisted] == ["a", "b"]]
        then1 = fdef.body[2]
        test[type(then1.body[0]) is Nonlocal]
        test[the[then1.body[0].names] == ["a"]]
        map2 = then1.body[2]
        test[the[map2.body[0].names] == ["b", "msg"]]
        # Annotating a nonlocal is not allowed.
        test[type(map2.body[1]) is Assign]
        test[compile(unparse(fdef), "<test>", "exec")]

        # keep_local names stay local; global names get a global declaration.
        with q as t:
            def handle(_chain_self, msg, _chain_ctx):
                """The docstring stays first."""
                def _chain_fold1(_chain_acc, _chain_item, _chain_self, _chain_ctx):
                    total = _chain_acc
                    hits = hits + 1  # noqa: F821
                    counter: int
                    return total
        fdef = t[0]
        declare_nonlocals(fdef, steps={"_chain_fold1": frozenset({"total"})},
                          globalnames={"hits"})
        test[type(fdef.body[0].value.value) is str]
        fold1 = fdef.body[2]
        test[type(fold1.body[0]) is Global]
        test[the[fold1.body[0].names] == ["hits"]]
        test[the[fold1.body[1].names] == ["counter"]]
        test[type(fold1.body[4]) is Pass]
        test[the[[x.target.id for x in fdef.body if type(x) is AnnAssign]] == ["counter"]]

        # User-defined scopes are left alone.
        with q as t:
            def handle(_chain_self, msg, _chain_ctx):
                def _chain_map1(_chain_res, _chain_self, _chain_ctx):
                    def helper():
                        inner = 1  # noqa: F841
                    return helper
        fdef = t[0]
        declare_nonlocals(fdef, steps={"_chain_map1": frozenset()})
        test[the[[x.target.id for x in fdef.body if type(x) is AnnAssign]] == ["helper"]]
        helper = fdef.body[1].body[1]
        test[type(helper.body[0]) is Assign]

if __name__ == '__main__':  # pragma: no cover
    with session(__file__):
        runtests()
