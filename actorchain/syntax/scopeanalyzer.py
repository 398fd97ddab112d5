# -*- coding: utf-8 -*-
"""Lexical scope analysis tools.

When a handler body is split into continuation closures, code that was in one
function scope ends up in several nested ones. Python decides statically, per
function, whether a name is local: any binding of ``x`` inside a closure makes
``x`` local to that closure, unless it is declared ``nonlocal`` (or ``global``).

So to keep the original semantics, where all of the handler's variables live
in one scope, we hoist them. Each variable the user binds is declared in the
scope of the rewritten handler method itself, and each continuation that binds
it declares it ``nonlocal``::

    def handle(_chain_self, msg, _chain_ctx):
        total: object
        def _chain_then1(_chain_res, _chain_self, _chain_ctx):
            nonlocal total
            total = msg.value
            ...

A bare annotation makes a name local without assigning to it, and is not
evaluated at run time. So the variable is not bound before the user's code
binds it, just like in the original code.

This is bookkeeping over the names that are actually bound, by assignment or
otherwise, not an inference of free variables.

**NOTE**:

Relevant part of the Python language reference:

    https://docs.python.org/3/reference/executionmodel.html#naming-and-binding
"""

__all__ = ["isnewscope",
           "get_names_in_store_context", "get_names_in_del_context",
           "declare_nonlocals"]

from ast import (Name, Lambda, FunctionDef, AsyncFunctionDef, ClassDef,
                 Import, ImportFrom, ExceptHandler, ListComp, SetComp, GeneratorExp,
                 DictComp, Load, Store, Del, Global, Nonlocal, AnnAssign, Assign, Pass,
                 Expr, Constant,
                 MatchAs, MatchStar, MatchMapping)

from mcpyrate.walkers import ASTTransformer, ASTVisitor

# All names generated by `@async_handler` start with this. The user's code must not use them.
PREFIX = "_chain_"

def isnewscope(tree):
    """Return whether tree introduces a new lexical scope.

    (According to Python's scoping rules.)
    """
    return type(tree) in (Lambda, FunctionDef, AsyncFunctionDef, ClassDef, ListComp, SetComp, GeneratorExp, DictComp)

def get_names_in_store_context(tree):
    """Get the names bound by statement ``tree``, in the scope it belongs to.

    That is, ``Name`` nodes in store context (assignment targets, walrus, ``for``
    and ``with`` targets), names of function and class definitions, imported
    names (``import a.b`` binds ``a``), ``except ... as`` names, and ``match``
    captures. Nested scopes are not entered.

    May contain duplicates.
    """
    class StoreNamesCollector(ASTVisitor):
        def examine(self, tree):
            # https://docs.python.org/3/reference/executionmodel.html#binding-of-names
            if type(tree) in (FunctionDef, AsyncFunctionDef, ClassDef):
                self.collect(tree.name)
            elif type(tree) in (Import, ImportFrom):
                for x in tree.names:
                    # `import a.b.c` binds `a`
                    self.collect(x.asname if x.asname is not None else x.name.split(".")[0])
            elif type(tree) is ExceptHandler and tree.name is not None:
                # Python unbinds `err` at the end of `except ... as err`, but for
                # hoisting, it's enough to know that the scope binds it.
                self.collect(tree.name)
            elif type(tree) in (MatchAs, MatchStar) and tree.name is not None:
                self.collect(tree.name)
            elif type(tree) is MatchMapping and tree.rest is not None:
                self.collect(tree.rest)
            # macro-created nodes might not have a ctx
            if type(tree) is Name and type(getattr(tree, "ctx", None)) is Store:
                self.collect(tree.id)
            if not isnewscope(tree):
                self.generic_visit(tree)
    nc = StoreNamesCollector()
    nc.visit(tree)
    return nc.collected

def get_names_in_del_context(tree):
    """Get the names deleted by ``del`` in statement ``tree``.

    Only ``del x`` counts; ``del o.x`` and ``del d[k]`` don't unbind a variable.
    """
    class DelNamesCollector(ASTVisitor):
        def examine(self, tree):
            if type(tree) is Name and type(getattr(tree, "ctx", None)) is Del:
                self.collect(tree.id)
            if not isnewscope(tree):
                self.generic_visit(tree)
    nc = DelNamesCollector()
    nc.visit(tree)
    return nc.collected

def declare_nonlocals(fdef, *, steps, globalnames=frozenset(), nonlocalnames=frozenset()):
    """Make the variables of a rewritten handler live in the scope of ``fdef``.

    ``fdef``: the ``FunctionDef`` of the rewritten handler method.

    ``steps``: dict, the names of the generated continuation functions inside
    ``fdef``, mapped to sets of names that should stay local to that function.

    ``globalnames``, ``nonlocalnames``: names the user declared ``global`` or
    ``nonlocal`` in the original handler body.

    Each continuation gets ``global``/``nonlocal`` declarations for the names
    it binds, and ``fdef`` gets a bare annotation for each name that is not
    already one of its parameters. Annotations on such names inside the
    continuations are dropped, because Python doesn't allow annotating
    a ``nonlocal``.

    ``fdef`` is modified in place. Return ``fdef``.
    """
    params = {a.arg for a in fdef.args.posonlyargs + fdef.args.args + fdef.args.kwonlyargs}
    params.update(a.arg for a in (fdef.args.vararg, fdef.args.kwarg) if a is not None)
    hoisted = set()

    def bound_names(body):
        names = set()
        for stmt in body:
            names.update(get_names_in_store_context(stmt))
            names.update(get_names_in_del_context(stmt))
        return {x for x in names if not x.startswith(PREFIX)}

    class StepScoper(ASTTransformer):
        def transform(self, tree):
            if type(tree) is FunctionDef and tree.name in steps:
                myparams = {a.arg for a in tree.args.args}
                names = bound_names(tree.body) - myparams - set(steps[tree.name])
                globs = names & set(globalnames)
                nonlocs = names - globs
                tree.body = _unannotate(tree.body, names)
                decls = []
                if globs:
                    decls.append(Global(names=sorted(globs)))
                if nonlocs:
                    decls.append(Nonlocal(names=sorted(nonlocs)))
                tree.body = decls + tree.body
                hoisted.update(nonlocs)
            elif isnewscope(tree):
                return tree  # user-defined scopes are left alone
            return self.generic_visit(tree)
    fdef.body = StepScoper().visit(fdef.body)

    hoisted = hoisted - params - set(nonlocalnames)
    declarations = []
    for name in sorted(hoisted):
        declarations.append(AnnAssign(target=Name(id=name, ctx=Store()),
                                      annotation=Name(id="object", ctx=Load()),
                                      value=None,
                                      simple=1))
    k = _first_non_preamble(fdef.body)
    fdef.body = fdef.body[:k] + declarations + fdef.body[k:]
    return fdef

def _first_non_preamble(body):
    """Index of the first statement that is not a docstring or a scope declaration."""
    k = 0
    for stmt in body:
        if type(stmt) in (Global, Nonlocal):
            k += 1
        elif k == 0 and _isdocstring(stmt):
            k += 1
        else:
            break
    return k

def _isdocstring(stmt):
    return type(stmt) is Expr and type(stmt.value) is Constant and isinstance(stmt.value.value, str)

def _unannotate(body, names):
    """Turn annotated assignments to any of ``names`` into plain assignments.

    An annotation without a value becomes a ``pass``. Stops at scope boundaries.
    """
    class Unannotator(ASTTransformer):
        def transform(self, tree):
            if isnewscope(tree):
                return tree
            if type(tree) is AnnAssign and type(tree.target) is Name and tree.target.id in names:
                if tree.value is None:
                    return Pass()
                return Assign(targets=[tree.target], value=tree.value)
            return self.generic_visit(tree)
    return Unannotator().visit(body)
