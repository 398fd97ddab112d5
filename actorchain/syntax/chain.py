# -*- coding: utf-8 -*-
"""Assemble segments into a chain of continuations.

A handler body is first split into segments (see ``actorchain.syntax.segments``).
Each segment is a run of statements, ending in a suspension: an expression that
evaluates to an ``ActorFuture``. The chain assembler then folds the segments,
right to left, into nested continuation functions::

    a = 1                   def _chain_then1(_chain_res, _chain_self, _chain_ctx):
    x = await f(a)              a = 1
    y = x + 1                   def _chain_then2(_chain_res, _chain_self, _chain_ctx):
    await g(y)       -->            x = _chain_res
    return x + y                    y = x + 1
                                    def _chain_map3(_chain_res, _chain_self, _chain_ctx):
                                        return x + y
                                    return wrap_future(g(y)).map(_chain_map3)
                                return wrap_future(f(a)).then(_chain_then2)
                            ready(None).then(_chain_then1)

Each continuation is defined inside the previous one, so it sees all variables
of the segments before it, just like the original sequential code did. (To keep
*rebinding* visible, too, the variables are hoisted; see ``scopeanalyzer``.)

A continuation receives the result of the suspension as ``_chain_res``. The last
one is attached with ``map``, because it returns a plain value; all the others
with ``then``, because they return the next ``ActorFuture``.
"""

__all__ = ["RESULT", "ACC", "ITEM",
           "Segment", "ChainContext",
           "make_step", "build_chain"]

from ast import Return, Pass, arg

from mcpyrate.quotes import macros, q, n, a, h  # noqa: F401

from .nameutil import isx
from .renamer import SELF, CTX
from .scopeanalyzer import PREFIX

from ..fut import ready

RESULT = f"{PREFIX}res"  # the result of the previous suspension
ACC = f"{PREFIX}acc"  # loop accumulator
ITEM = f"{PREFIX}item"  # loop item

class Segment:
    """A run of statements, terminated by a suspension.

    ``body``: list of statements.

    ``trigger``: expression AST that evaluates to an ``ActorFuture``, or ``None``
    for the last segment of a block.
    """
    def __init__(self, body, trigger=None):
        self.body = body
        self.trigger = trigger

    def __repr__(self):  # pragma: no cover
        return f"<Segment: {len(self.body)} statements, trigger {self.trigger}>"

class ChainContext:
    """Bookkeeping for one invocation of ``@async_handler``.

    Generated names are numbered deterministically, so the same input
    always produces the same output.
    """
    def __init__(self):
        self.counter = 0
        # name of each generated function --> names that must stay local to it
        self.steps = {}

    def gensym(self, kind):
        self.counter += 1
        return f"{PREFIX}{kind}{self.counter}"

def make_step(context, kind, body, params=(RESULT, SELF, CTX), keep_local=(), name=None):
    """Create a ``FunctionDef`` for a continuation, and register it in ``context``.

    The name is gensymmed from ``kind``, unless ``name`` is given.
    """
    with q as quoted:
        def _insert_stepname_here_():
            ...  # to be filled in below
    thefunc = quoted[0]
    thefunc.name = name or context.gensym(kind)
    thefunc.args.args = [arg(arg=x) for x in params]
    thefunc.body = body or [Pass()]
    context.steps[thefunc.name] = frozenset(keep_local)
    return thefunc

def _ispassthrough(segment):
    """Is ``segment`` just ``return _chain_res``, from a trailing ``return await``?"""
    return (len(segment.body) == 1 and type(segment.body[0]) is Return and
            segment.body[0].value is not None and isx(segment.body[0].value, RESULT, accept_attr=False))

def build_chain(context, segments, *, value=None, enclose_first=False):
    """Fold ``segments`` into a chain of continuations.

    ``value``: optional expression AST, returned at the end of the chain. If not
    given, the chain's value is whatever the last segment ``return``s (default
    ``None``), or the result of the last suspension, if the block ended with
    ``return await ...``.

    ``enclose_first``: if ``True``, the first segment, too, goes into a continuation,
    so that nothing runs until the chain is started.

    Return ``(stmts, expr)``, where ``stmts`` is a list of statements that must
    run first (definitions of the continuations, and the first segment unless it
    was enclosed), and ``expr`` is an expression that evaluates to the chain,
    as an ``ActorFuture``.
    """
    assert segments
    *init, last = segments
    final_body = list(last.body)
    if value is not None:
        final_body.append(Return(value=value))

    # No suspension; no chain.
    if not init:
        if not enclose_first:
            return final_body, (q[h[ready](a[value])] if value is not None else q[h[ready](None)])
        if not final_body:
            return [], q[h[ready](None)]
        thefunc = make_step(context, "map", final_body)
        return [thefunc], q[h[ready](None).map(n[thefunc.name])]

    # Number the continuations left to right, in order of appearance in the output.
    passthrough = _ispassthrough(last) and value is None
    kinds = ["then"] * len(init) + ([] if passthrough else ["map"])
    if not enclose_first:
        kinds = kinds[1:]
    names = [context.gensym(kind) for kind in kinds]
    if not enclose_first:
        names.insert(0, None)
    if passthrough:
        names.append(None)

    # Fold, right to left. `nxt` is the continuation of the current segment.
    nxt = None
    if not passthrough:
        nxt = make_step(context, "map", final_body or [Return(value=q[None])], name=names[-1])
    for k in range(len(init) - 1, -1, -1):
        segment = init[k]
        code = list(segment.body)
        fut = segment.trigger
        if nxt is not None:
            code.append(nxt)
            if k == len(init) - 1 and not passthrough:
                fut = q[a[fut].map(n[nxt.name])]
            else:
                fut = q[a[fut].then(n[nxt.name])]
        if k == 0 and not enclose_first:
            return code, fut
        nxt = make_step(context, "then", code + [Return(value=fut)], name=names[k])
    return [nxt], q[h[ready](None).then(n[nxt.name])]

