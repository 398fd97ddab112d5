# -*- coding: utf-8 -*-
"""Split a handler body into segments at the suspension points.

A *suspension point* is an ``await`` in one of these positions::

    await f()
    x = await f()         # also `x: T = await f()`, `a = b = await f()`
    x += await f()
    return await f()      # only as the last statement of the handler

The awaited expression can also be an if-expression, whose arms are awaits
or plain values::

    x = (await f()) if p else 42

Each segment ends in a suspension; after it, the next segment begins. The
result of the suspension is bound to ``_chain_res`` at the start of the next
segment, and assigned from there to the original assignment target.

An ``if`` or a ``for`` that contains suspension points is itself a suspension,
and its body is segmented recursively:

  - An ``if`` becomes an ``if`` statement whose arms each build an ``ActorFuture``.
    An arm without suspension points gives ``ready(...)``.

  - A ``for`` becomes a sequential fold over the iterable, with one chain of
    continuations per item.

To use the value of an ``if`` or a ``for``, wrap it in ``with into[target]``::

    with into[result]:
        if x > 0:
            await f()       # --> result = the result of `f()`
        else:
            42              # --> result = 42

    with into[total]:       # `total` is the accumulator of the loop
        for x in xs:
            total += await f(x)

The value of each arm of an ``if`` is its last statement, if it is an expression
statement; otherwise ``None``. A missing ``else`` produces ``None``.

Restrictions:

  - ``return`` is only allowed after the last suspension point. Particularly,
    an ``if`` or a ``for`` that suspends cannot ``return``; use ``with into``,
    and ``return`` after it.

  - A ``for`` that suspends cannot ``break`` or ``continue``.
"""

__all__ = ["segment_block",
           "transform_if", "transform_ifexp", "transform_for",
           "isinto"]

from ast import (Expr, Assign, AnnAssign, AugAssign, Return, If, IfExp, For, With,
                 Await, Name, Subscript, Break, Continue, While, AsyncFor, Store)
from collections import deque

from mcpyrate.quotes import macros, q, n, a, h  # noqa: F401, F811

from mcpyrate.walkers import ASTVisitor

from .chain import RESULT, ACC, ITEM, Segment, make_step, build_chain
from .errors import StructuralError
from .nameutil import isx
from .renamer import SELF, CTX
from .scopeanalyzer import isnewscope

from ..fut import ready, wrap_future, wrap_stream

def segment_block(context, body):
    """Split ``body`` (list of statements) into segments.

    Return a list of ``Segment``. A block with no suspension points gives
    exactly one segment. Each suspension point, including each ``if`` and
    ``for`` that suspends, starts a new one.

    Nested ``if`` and ``for`` statements are rewritten as needed; the
    statements in ``body`` may be modified in place.
    """
    segments = []
    current = []
    def close(trigger):
        nonlocal current
        segments.append(Segment(current, trigger))
        current = []

    pending = deque(body)
    while pending:
        stmt = pending.popleft()
        T = type(stmt)

        if T in (Expr, Assign, AnnAssign, AugAssign, Return) and stmt.value is not None:
            trigger = _suspension(stmt.value)
            if trigger is not None:
                close(trigger)
                if T is Return:
                    if pending:
                        raise StructuralError("return await ...: must be the last statement of the block", pending[0])
                    current.append(Return(value=q[n[RESULT]]))
                elif T is not Expr:
                    stmt.value = q[n[RESULT]]
                    current.append(stmt)
                continue

        if T is If:
            newif = transform_if(context, stmt)
            if newif is None:
                current.append(stmt)
            else:
                current.append(newif)
                close(q[n[_futname(newif)]])

        elif T is For:
            result = transform_for(context, stmt)
            if result is None:
                current.append(stmt)
                _defer_orelse(stmt, pending)
            else:
                stmts, trigger = result
                current.extend(stmts)
                close(trigger)
                pending.extendleft(reversed(stmt.orelse))

        elif isinto(stmt):
            target, inner = _destructure_into(stmt)
            if type(inner) is If:
                newif = transform_if(context, inner, into=target)
                if newif is None:
                    current.append(inner)
                else:
                    current.append(newif)
                    close(q[n[_futname(newif)]])
                    current.append(Assign(targets=[_store(target)], value=q[n[RESULT]]))
            else:
                result = transform_for(context, inner, into=target)
                if result is None:
                    current.append(inner)
                    _defer_orelse(inner, pending)
                else:
                    stmts, trigger = result
                    current.extend(stmts)
                    close(trigger)
                    current.append(Assign(targets=[_store(target)], value=q[n[RESULT]]))
                    pending.extendleft(reversed(inner.orelse))

        else:
            current.append(stmt)
    close(None)

    for segment in segments[:-1]:
        escapes = _find_escapes(segment.body)
        if escapes:
            raise StructuralError("return is only allowed after the last suspension point", escapes[0])
    return segments

def _defer_orelse(loop, pending):
    """Move a suspending ``else`` clause of a non-suspending ``for`` loop into ``pending``."""
    if loop.orelse and _suspends(loop.orelse):
        if _find_escapes(loop.body, loopctl=True, returns=False):
            raise StructuralError("for/else: the else clause can only suspend if the loop has no break", loop)
        # Without break, the else clause always runs after the loop.
        pending.extendleft(reversed(loop.orelse))
        loop.orelse = []

def _suspension(tree):
    """If expression ``tree`` is a suspension point, return its trigger, else ``None``."""
    if type(tree) is Await:
        return q[h[wrap_future](a[tree.value])]
    if type(tree) is IfExp:
        return transform_ifexp(tree)
    return None

# --------------------------------------------------------------------------------
# Conditionals

def transform_ifexp(tree):
    """Rewrite an if-expression whose arms suspend.

    An arm that is an ``await`` becomes ``wrap_future(...)``, a nested if-expression
    is processed recursively, and any other arm becomes ``ready(...)``::

        (await f()) if p else 42  -->  wrap_future(f()) if p else ready(42)

    If no arm suspends, return ``None``.
    """
    body = _suspension(tree.body)
    orelse = _suspension(tree.orelse)
    if body is None and orelse is None:
        return None
    return IfExp(test=tree.test,
                 body=body if body is not None else q[h[ready](a[tree.body])],
                 orelse=orelse if orelse is not None else q[h[ready](a[tree.orelse])])

def transform_if(context, tree, futname=None, into=None):
    """Rewrite an ``if`` statement whose arms suspend.

    The result is an ``if`` statement that, in each arm, assigns an ``ActorFuture``
    to ``futname`` (gensymmed if not given). An arm that suspends builds its own
    chain; an arm that doesn't runs its statements, and then produces ``ready(...)``.
    An ``elif`` is rewritten recursively, and assigns to the same ``futname``.

    ``into``: if given, a ``Name``; the ``if`` is used as a value (``with into``).
    Each arm then produces the value of its last expression statement, or ``None``.

    If no arm suspends, return ``None``. Nested constructs are still processed
    in place, and in ``into`` mode, the values are assigned directly to ``into``.
    """
    if not (_suspends(tree.body) or _suspends(tree.orelse)):
        tree.body = segment_block(context, tree.body)[0].body
        if tree.orelse:
            tree.orelse = segment_block(context, tree.orelse)[0].body
        if into is not None:
            _assign_values(tree, into)
        return None
    escapes = _find_escapes(tree.body + tree.orelse)
    if escapes:
        raise StructuralError("return is not allowed inside an if that suspends; use `with into[...]`, and return after it", escapes[0])
    return _rewrite_if(context, tree, futname or context.gensym("fut"), into)

def _rewrite_if(context, tree, futname, into):
    body = _arm(context, tree.body, futname, into)
    if _iselif(tree):
        orelse = [_rewrite_if(context, tree.orelse[0], futname, into)]
    else:  # a missing else is an arm that produces `None`
        orelse = _arm(context, tree.orelse, futname, into)
    return If(test=tree.test, body=body, orelse=orelse)

def _arm(context, body, futname, into):
    if into is not None and body and type(body[-1]) is Expr:
        body = body[:-1] + [Return(value=body[-1].value)]
    segments = segment_block(context, body)
    if len(segments) > 1:
        stmts, fut = build_chain(context, segments)
    else:
        stmts = segments[0].body
        value = q[None]
        if stmts and type(stmts[-1]) is Return:
            *stmts, ret = stmts
            if ret.value is not None:
                value = ret.value
        fut = q[h[ready](a[value])]
    return stmts + [Assign(targets=[q[n[futname]]], value=fut)]

def _assign_values(tree, target):
    """``if`` used as a value, no suspension: assign each arm's value to ``target``."""
    def assign(body):
        if body and type(body[-1]) is Expr:
            return body[:-1] + [Assign(targets=[_store(target)], value=body[-1].value)]
        return body + [Assign(targets=[_store(target)], value=q[None])]
    tree.body = assign(tree.body)
    if _iselif(tree):
        _assign_values(tree.orelse[0], target)
    else:
        tree.orelse = assign(tree.orelse)

def _iselif(tree):
    return len(tree.orelse) == 1 and type(tree.orelse[0]) is If

def _futname(tree):
    """Get the name the rewritten ``if`` statement ``tree`` assigns its future to."""
    return tree.body[-1].targets[0].id

# --------------------------------------------------------------------------------
# Loops

def transform_for(context, tree, into=None):
    """Rewrite a ``for`` loop whose body suspends, into a sequential fold.

    ``into``: if given, a ``Name``; the loop is used as a value (``with into``),
    and that variable is the accumulator. The fold starts from its current value,
    and each iteration produces its value at the end of the body. Otherwise the
    accumulator is ``None``.

    Return ``(stmts, trigger)``, where ``stmts`` defines the fold step function,
    and ``trigger`` is the fold (an expression that evaluates to an ``ActorFuture``).
    The caller must assign the result of the fold to ``into``, and handle the
    ``else`` clause of the loop, if any.

    If the body does not suspend, return ``None``. Nested constructs are still
    processed in place.
    """
    if not _suspends(tree.body):
        tree.body = segment_block(context, tree.body)[0].body
        if tree.orelse and not _suspends(tree.orelse):
            tree.orelse = segment_block(context, tree.orelse)[0].body
        return None
    escapes = _find_escapes(tree.body, loopctl=True)
    if escapes:
        raise StructuralError("return, break and continue are not allowed inside a for loop that suspends", escapes[0])

    foldname = context.gensym("fold")
    prelude = [Assign(targets=[tree.target], value=q[n[ITEM]])]
    keep_local = ()
    value = None
    init = q[None]
    if into is not None:
        # The accumulator is local to each iteration; the variable itself
        # is assigned once, from the result of the fold.
        prelude.append(Assign(targets=[_store(into)], value=q[n[ACC]]))
        keep_local = (into.id,)
        value = q[n[into.id]]
        init = q[n[into.id]]
    stmts, fut = build_chain(context, segment_block(context, tree.body), value=value)
    thefunc = make_step(context, "fold", prelude + stmts + [Return(value=fut)],
                        params=(ACC, ITEM, SELF, CTX), keep_local=keep_local, name=foldname)
    return [thefunc], q[h[wrap_stream](a[tree.iter]).fold(a[init], n[foldname])]

# --------------------------------------------------------------------------------
# `with into[...]`

def isinto(tree):
    """Is ``tree`` a ``with into[...]`` block?"""
    if type(tree) is not With or len(tree.items) != 1:
        return False
    ctx = tree.items[0].context_expr
    return type(ctx) is Subscript and isx(ctx.value, "into")

def _store(target):
    """A fresh ``Name`` node for assigning to the ``into`` target ``target``."""
    return Name(id=target.id, ctx=Store())

def _destructure_into(tree):
    item = tree.items[0]
    target = item.context_expr.slice
    if item.optional_vars is not None:
        raise StructuralError("with into[...] does not take an as-part", tree)
    if type(target) is not Name:
        raise StructuralError(f"with into[...]: expected a variable name, got {type(target)}", tree)
    if len(tree.body) != 1 or type(tree.body[0]) not in (If, For):
        raise StructuralError("with into[...]: the body must be exactly one if or for statement", tree)
    return target, tree.body[0]

# --------------------------------------------------------------------------------
# Analysis

def _suspends(body):
    """Does the statement list ``body`` contain an ``await``, in the current scope?"""
    class AwaitDetector(ASTVisitor):
        def examine(self, tree):
            if type(tree) is Await:
                self.collect(tree)
            elif not isnewscope(tree):
                self.generic_visit(tree)
    d = AwaitDetector()
    d.visit(body)
    return bool(d.collected)

def _find_escapes(body, *, loopctl=False, returns=True):
    """Find statements that would jump out of the statement list ``body``.

    This means ``return`` (if ``returns=True``), and ``break`` and ``continue``
    that do not belong to a loop nested inside ``body`` (if ``loopctl=True``).
    """
    class EscapeFinder(ASTVisitor):
        def examine(self, tree):
            if isnewscope(tree):
                return
            if type(tree) is Return and returns:
                self.collect(tree)
            elif type(tree) in (Break, Continue) and self.state.loopctl:
                self.collect(tree)
            elif type(tree) in (For, AsyncFor, While):
                self.withstate(tree.body, loopctl=False)
            self.generic_visit(tree)
    f = EscapeFinder(loopctl=loopctl)
    f.visit(body)
    return f.collected
