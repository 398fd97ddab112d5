# -*- coding: utf-8 -*-
"""Deferred computations."""

from unpythonic.syntax import macros, test, test_raises, the  # noqa: F401
from unpythonic.test.fixtures import session, testset

import asyncio

from ..fut import (ActorFuture, ready, wrap_future, wrap_stream,
                   AtomicResponse, ResponseActFuture)

def run(fut, actor=None, ctx=None):
    async def main():
        return await fut.start(actor, ctx)
    return asyncio.run(main())

def runtests():
    with testset("ready, map, then"):
        test[run(ready(42)) == 42]
        test[run(ready()) is None]
        test[run(ready(20).map(lambda x, actor, ctx: x + 1)) == 21]
        test[run(ready(20).then(lambda x, actor, ctx: ready(2 * x))) == 40]
        test[run(ready(1).then(lambda x, actor, ctx: ready(x + 1))
                         .then(lambda x, actor, ctx: ready(x + 1))
                         .map(lambda x, actor, ctx: 10 * x)) == 30]

        # The actor and the context are passed to each step.
        seen = []
        def record(x, actor, ctx):
            seen.append((actor, ctx))
            return x
        test[run(ready(1).map(record).map(record), actor="A", ctx="C") == 1]
        test[seen == [("A", "C"), ("A", "C")]]

        # A chain is a recipe; nothing runs until it is started.
        started = []
        def step(x, actor, ctx):
            started.append(x)
            return ready(x)
        chain = ready(5).then(step)
        test[started == []]
        test[run(chain) == 5]
        test[started == [5]]

    with testset("wrap_future"):
        async def double(x):
            await asyncio.sleep(0)
            return 2 * x
        test[run(wrap_future(double(21))) == 42]
        test[run(wrap_future(double(2)).map(lambda x, actor, ctx: x + 1)) == 5]
        fut = ready(3)
        test[wrap_future(fut) is fut]
        test_raises[TypeError, wrap_future(42)]

    with testset("wrap_stream, fold"):
        test[run(wrap_stream(range(5)).fold(0, lambda acc, x, actor, ctx: ready(acc + x))) == 10]
        test[run(wrap_stream([]).fold("empty", lambda acc, x, actor, ctx: ready(acc + x))) == "empty"]

        # Strictly sequential: the next item waits until the previous one is done.
        log = []
        async def probe(x):
            log.append(("begin", x))
            await asyncio.sleep(0.001 * (3 - x))
            log.append(("end", x))
            return x
        def step(acc, x, actor, ctx):
            return wrap_future(probe(x)).map(lambda r, actor, ctx: acc + [r])
        test[run(wrap_stream(range(3)).fold([], step)) == [0, 1, 2]]
        test[the[log] == [("begin", 0), ("end", 0), ("begin", 1), ("end", 1), ("begin", 2), ("end", 2)]]

    with testset("error handling"):
        def fail(x, actor, ctx):
            raise ValueError(x)
        test_raises[ValueError, run(ready(1).map(fail))]
        test_raises[ValueError, run(ready(1).then(fail))]

        # An error stops the chain; the remaining steps are not run.
        reached = []
        def later(x, actor, ctx):
            reached.append(x)
            return x
        test_raises[ValueError, run(ready(1).map(fail).map(later))]
        test[reached == []]

        async def broken():
            raise KeyError("nope")
        test_raises[KeyError, run(wrap_future(broken()).map(later))]
        test[reached == []]

        # A step of `then` must return an `ActorFuture`.
        test_raises[TypeError, run(ready(1).then(lambda x, actor, ctx: x))]
        test_raises[TypeError, run(wrap_stream([1]).fold(0, lambda acc, x, actor, ctx: acc + x))]

    with testset("cancellation"):
        reached = []
        async def main():
            chain = wrap_future(asyncio.sleep(10)).map(lambda x, actor, ctx: reached.append(x))
            task = chain.start(None, None)
            await asyncio.sleep(0)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                return "cancelled"
            return "completed"  # pragma: no cover
        test[asyncio.run(main()) == "cancelled"]
        test[reached == []]

    with testset("response types"):
        r = AtomicResponse(ready(1))
        test[r.atomic is True]
        test[isinstance(r.fut, ActorFuture)]
        test[ResponseActFuture(ready(1)).atomic is False]
        test_raises[TypeError, AtomicResponse(42)]
        # Generic in [actor, result], with the actor as a forward reference.
        test[AtomicResponse["MyActor", int] is not None]
        test[ResponseActFuture["MyActor", int] is not None]

if __name__ == '__main__':  # pragma: no cover
    with session(__file__):
        runtests()
