# -*- coding: utf-8 -*-
"""Deferred computations that run in the context of an actor.

This is the run-time side of ``@async_handler``. The macro rewrites the body
of a message handler into a chain of these; see ``actorchain.syntax``.

An ``ActorFuture`` is a recipe, not a running computation. Nothing happens
until the actor system calls ``start(actor, ctx)``, which schedules the whole
chain on the event loop and returns an ``asyncio.Future`` for its final value.

Each continuation in a chain receives the result of the previous step, and
the actor and its context::

    f(result, actor, ctx)

so that code inside the chain can reach the actor's state without capturing
``self`` from the scope of the handler method.

Composition::

    ready(42).map(lambda x, actor, ctx: x + 1)     # --> 43
    wrap_future(fetch()).then(lambda x, actor, ctx: wrap_future(store(x)))
    wrap_stream(range(5)).fold(0, lambda acc, x, actor, ctx: ready(acc + x))

Errors raised by a continuation, or by an awaited computation, fail the whole
chain; the remaining steps are not run. Likewise, if the task running the
chain is cancelled, the chain stops at the step it is waiting for.
"""

__all__ = ["ActorFuture", "ActorStream",
           "ready", "wrap_future", "wrap_stream",
           "AtomicResponse", "ResponseActFuture"]

import asyncio
from typing import Generic, TypeVar

A = TypeVar("A")
T = TypeVar("T")

class ActorFuture:
    """A deferred computation, to be run by an actor.

    ``run`` is an async function ``(actor, ctx) -> value``. Usually you don't
    create these directly; use ``ready``, ``wrap_future`` or ``wrap_stream``,
    and compose with ``then`` and ``map``.
    """
    def __init__(self, run):
        self._run = run

    def start(self, actor, ctx):
        """Start running this computation. Return an ``asyncio.Future`` for its value."""
        return asyncio.ensure_future(self._run(actor, ctx))

    def then(self, f):
        """Chain a continuation that returns another ``ActorFuture``.

        ``f(result, actor, ctx)`` is called with the value of this computation;
        the new computation it returns is run to completion, and its value
        becomes the value of the chain.
        """
        async def run(actor, ctx):
            result = await self._run(actor, ctx)
            nxt = f(result, actor, ctx)
            if not isinstance(nxt, ActorFuture):
                raise TypeError(f"then(): expected the continuation to return an ActorFuture, got {type(nxt)} with value {repr(nxt)}")
            return await nxt._run(actor, ctx)
        return ActorFuture(run)

    def map(self, f):
        """Chain a continuation that returns a plain value.

        The value of the chain is ``f(result, actor, ctx)``.
        """
        async def run(actor, ctx):
            result = await self._run(actor, ctx)
            return f(result, actor, ctx)
        return ActorFuture(run)

    def __repr__(self):  # pragma: no cover
        return f"<ActorFuture at 0x{id(self):x}>"

def ready(value=None):
    """An already computed value, as an ``ActorFuture``."""
    async def run(actor, ctx):
        return value
    return ActorFuture(run)

def wrap_future(awaitable):
    """Wrap an awaitable (coroutine, task, future) into an ``ActorFuture``.

    A coroutine object can only be awaited once, so the resulting chain
    can only be started once. This is the normal case: each invocation of
    a handler builds a fresh chain.

    An ``ActorFuture`` is passed through as-is.
    """
    if isinstance(awaitable, ActorFuture):
        return awaitable
    if not hasattr(awaitable, "__await__"):
        raise TypeError(f"wrap_future(): expected an awaitable, got {type(awaitable)} with value {repr(awaitable)}")
    async def run(actor, ctx):
        return await awaitable
    return ActorFuture(run)

class ActorStream:
    """An iterable to be consumed one item at a time by an actor.

    See ``wrap_stream``.
    """
    def __init__(self, iterable):
        self._iterable = iterable

    def fold(self, init, f):
        """Sequential left fold with a deferred step function.

        ``f(acc, item, actor, ctx)`` must return an ``ActorFuture`` for the new
        accumulator value. The computation for item ``i + 1`` is not started
        until the one for item ``i`` has completed.

        The value of the resulting ``ActorFuture`` is the final accumulator.
        """
        async def run(actor, ctx):
            acc = init
            for item in self._iterable:
                step = f(acc, item, actor, ctx)
                if not isinstance(step, ActorFuture):
                    raise TypeError(f"fold(): expected the step function to return an ActorFuture, got {type(step)} with value {repr(step)}")
                acc = await step._run(actor, ctx)
            return acc
        return ActorFuture(run)

def wrap_stream(iterable):
    """Wrap an iterable into an ``ActorStream``, for a sequential ``fold``."""
    return ActorStream(iterable)

# --------------------------------------------------------------------------------
# Response types.
#
# A handler returns one of these to tell the actor how to run the chain.
# They are generic in [actor type, result type], so that the rewritten
# `Result = AtomicResponse["MyActor", int]` is valid at class-body time.

class _Response:
    atomic = None

    def __init__(self, fut):
        if not isinstance(fut, ActorFuture):
            raise TypeError(f"{type(self).__name__}: expected an ActorFuture, got {type(fut)} with value {repr(fut)}")
        self.fut = fut

    def __repr__(self):  # pragma: no cover
        return f"{type(self).__name__}({repr(self.fut)})"

class AtomicResponse(_Response, Generic[A, T]):
    """Run the chain atomically.

    The actor processes no other message until the chain has completed.
    """
    atomic = True

class ResponseActFuture(_Response, Generic[A, T]):
    """Run the chain without blocking the mailbox.

    Other messages to the same actor may be processed while this chain
    is waiting for a result.
    """
    atomic = False
