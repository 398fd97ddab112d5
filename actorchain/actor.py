# -*- coding: utf-8 -*-
"""A minimal actor system on top of asyncio.

Each actor has a mailbox, and processes one message at a time. A handler
either returns a plain value (the reply is sent immediately), or a response
wrapping an ``ActorFuture`` chain:

  - ``AtomicResponse``: the mailbox is blocked until the chain completes.
  - ``ResponseActFuture``: the chain is spawned, and the mailbox keeps draining,
    so other messages may be handled while the chain waits for a result.

Example::

    class Double(Actor, Handler[int]):
        def handle(self, msg, ctx):
            return 2 * msg

    async def main():
        addr = Double().start()
        assert await addr.send(21) == 42

Handlers are usually written as ``async def`` and rewritten by the
``@async_handler`` macro; see ``actorchain.syntax``.
"""

__all__ = ["Handler", "Actor", "Context", "Addr"]

import asyncio
from collections import deque
from functools import partial
import logging
from typing import Generic, TypeVar

from .fut import AtomicResponse, ResponseActFuture

logger = logging.getLogger(__name__)

M = TypeVar("M")

class Handler(Generic[M]):
    """Base for classes that handle messages of type ``M``."""
    def handle(self, msg, ctx):
        raise NotImplementedError

class Actor:
    """Base for actors. ``start`` the actor to get an ``Addr`` to send messages to.

    Must be started while an event loop is running.
    """
    def start(self):
        return Addr(Context(self))

class Context:
    """The execution context of a running actor.

    Passed to the handler, and to each step of a chain.
    """
    def __init__(self, actor):
        self.actor = actor
        self._loop = asyncio.get_running_loop()
        self._mailbox = deque()
        self._busy = False  # an atomic chain is running
        self._scheduled = False

    def spawn(self, fut):
        """Start running an ``ActorFuture`` in this actor, without blocking the mailbox."""
        return fut.start(self.actor, self)

    def _post(self, msg, reply):
        self._mailbox.append((msg, reply))
        self._schedule()

    def _schedule(self):
        if self._scheduled or self._busy or not self._mailbox:
            return
        self._scheduled = True
        self._loop.call_soon(self._process)

    def _process(self):
        self._scheduled = False
        while self._mailbox and not self._busy:
            msg, reply = self._mailbox.popleft()
            self._dispatch(msg, reply)

    def _dispatch(self, msg, reply):
        try:
            result = self.actor.handle(msg, self)
        except Exception as err:
            logger.debug("{}: handler failed for message {}".format(type(self.actor).__name__, repr(msg)))
            if not reply.cancelled():
                reply.set_exception(err)
            return
        if isinstance(result, AtomicResponse):
            self._busy = True
            task = result.fut.start(self.actor, self)
            task.add_done_callback(partial(self._finish, reply, release=True))
        elif isinstance(result, ResponseActFuture):
            task = self.spawn(result.fut)
            task.add_done_callback(partial(self._finish, reply, release=False))
        elif not reply.cancelled():
            reply.set_result(result)

    def _finish(self, reply, task, *, release):
        if release:
            self._busy = False
            self._schedule()
        if reply.cancelled():
            return
        if task.cancelled():
            reply.cancel()
        elif task.exception() is not None:
            logger.debug("{}: chain failed: {}".format(type(self.actor).__name__, repr(task.exception())))
            reply.set_exception(task.exception())
        else:
            reply.set_result(task.result())

class Addr:
    """The address of a running actor."""
    def __init__(self, ctx):
        self._ctx = ctx

    def send(self, msg):
        """Send a message. Return an ``asyncio.Future`` for the reply."""
        reply = self._ctx._loop.create_future()
        self._ctx._post(msg, reply)
        return reply
