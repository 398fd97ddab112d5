# -*- coding: utf-8 -*-
"""The ``@async_handler`` macro: write actor message handlers as async code."""

__all__ = ["async_handler", "into",
           "transform_handler"]

from ast import (ClassDef, FunctionDef, AsyncFunctionDef, Lambda, Subscript, Tuple,
                 Assign, AnnAssign, Return, Expr, Constant, Global, Nonlocal, Pass,
                 Await, AsyncFor, AsyncWith, Yield, YieldFrom, copy_location)
from copy import deepcopy
import logging

from mcpyrate.quotes import macros, q, u, n, a, h  # noqa: F401

from mcpyrate import parametricmacro, unparse
from mcpyrate.astfixers import fix_ctx
from mcpyrate.quotes import is_captured_value
from mcpyrate.walkers import ASTTransformer, ASTVisitor

from .chain import ChainContext, build_chain
from .errors import ConfigurationError, StructuralError, ConsistencyError
from .nameutil import isx
from .renamer import SELF, CTX, rename_binders
from .scopeanalyzer import declare_nonlocals
from .segments import segment_block

from ..fut import AtomicResponse, ResponseActFuture

logger = logging.getLogger(__name__)

@parametricmacro
def async_handler(tree, *, args, syntax, expander, **kw):
    """[syntax, decorator] Write an actor message handler as sequential async code.

    Usage::

        from actorchain import Actor, Handler
        from actorchain.syntax import macros, async_handler, into

        @async_handler
        class Summer(Actor, Handler[Sum]):
            Result = int

            async def handle(self, msg, ctx):
                total = 0
                with into[total]:
                    for x in msg.values:
                        total += await self.delegate.send(x)
                return total

    The actor runtime processes one message at a time, and has no notion of
    suspending a handler halfway. So the body of ``handle`` is rewritten into
    a chain of continuations: each ``await`` ends a segment of the body, and
    the rest of the body becomes a callback that receives the awaited result.
    See ``actorchain.syntax.segments`` for the supported statement shapes,
    and ``actorchain.syntax.chain`` for what the output looks like.

    The class must have exactly one base of the form ``Handler[MessageType]``,
    declare ``Result``, and define ``handle(self, msg, ctx)``. The first parameter
    of ``handle`` is the receiver, and the last one is the context. The rewritten
    ``handle`` is a regular ``def`` that returns an ``AtomicResponse``.

    ``Result`` is rewritten to ``AtomicResponse["Summer", int]``.

    Inside ``handle``, ``self`` and ``ctx`` refer to the actor and its context
    also after an ``await``; they are passed to each continuation by the runtime.
    All other local variables, too, are visible and can be rebound after
    an ``await``, as usual.

    **Atomic and non-atomic mode**:

    By default, the actor processes no other messages until the whole chain has
    completed, so the handler sees no concurrent changes to the actor's state.
    To allow other messages to be processed while the handler waits, use::

        @async_handler[non_atomic]
        class Summer(Actor, Handler[Sum]):
            ...

    This returns a ``ResponseActFuture`` instead.

    **CAUTION**: All names starting with ``_chain_`` are reserved.
    """
    if syntax != "decorator":
        raise SyntaxError("async_handler is a decorator macro only")  # pragma: no cover
    atomic = _parse_mode(args, expander.filename)
    return transform_handler(tree, atomic=atomic, filename=expander.filename)

@parametricmacro
def into(tree, *, syntax, **kw):
    """[syntax, block] Use the value of an ``if`` or a ``for`` in an ``@async_handler``.

    Usage::

        with into[result]:
            if x > 0:
                await f()
            else:
                42

        with into[total]:
            for x in xs:
                total += await f(x)

    Only meaningful inside the ``handle`` method of an ``@async_handler``.
    See ``actorchain.syntax.segments``.
    """
    raise SyntaxError("into[] is only meaningful inside the handle method of an @async_handler")  # pragma: no cover, not meant to hit the expander

def _parse_mode(args, filename=None):
    """Parse the macro arguments of ``@async_handler``. Return whether the mode is atomic."""
    if not args:
        return True
    if len(args) == 1:
        arg = args[0]
        if isx(arg, "non_atomic", accept_attr=False):
            return False
        if type(arg) is Constant and arg.value == "non_atomic":
            return False
    raise ConfigurationError(f"@async_handler: expected no argument, or `non_atomic`; got [{', '.join(unparse(x) for x in args)}]",
                             args[0], filename)

# --------------------------------------------------------------------------------
# Syntax transformer

def transform_handler(tree, *, atomic=True, filename=None):
    """Rewrite a handler class.

    ``tree``: ``ClassDef``. Not modified; the result is a new tree.

    ``atomic``: which response type to use; see ``async_handler``.

    ``filename``: for error messages.

    Raises ``StructuralError`` if ``tree`` is not a handler we can rewrite, and
    ``ConsistencyError`` if the rewritten code fails to compile.
    """
    if type(tree) is not ClassDef:
        raise StructuralError("@async_handler: expected a class definition", tree, filename)
    tree = deepcopy(tree)

    bases = [b for b in tree.bases if type(b) is Subscript and isx(b.value, "Handler")]
    if len(bases) != 1:
        raise StructuralError(f"@async_handler: class {tree.name} must have exactly one base of the form Handler[MessageType]",
                              tree, filename)
    if type(bases[0].slice) is Tuple:
        raise StructuralError(f"@async_handler: class {tree.name}: Handler[...] takes exactly one type argument",
                              bases[0], filename)

    has_result = has_handle = False
    for stmt in tree.body:
        if _isresult(stmt):
            if stmt.value is None:
                raise StructuralError(f"@async_handler: class {tree.name}: Result must be assigned a type", stmt, filename)
            stmt.value = _wrap(atomic, q[u[tree.name]], stmt.value)
            has_result = True
    if not has_result:
        raise StructuralError(f"@async_handler: class {tree.name} must declare Result", tree, filename)

    newbody = []
    for stmt in tree.body:
        if type(stmt) in (FunctionDef, AsyncFunctionDef) and stmt.name == "handle":
            # `Result` is a class attribute, so it can be referred to in the signature only after its definition.
            annotate = any(_isresult(x) for x in tree.body[:tree.body.index(stmt)])
            stmt = _transform_handle(stmt, atomic=atomic, annotate=annotate, filename=filename)
            has_handle = True
        newbody.append(stmt)
    if not has_handle:
        raise StructuralError(f"@async_handler: class {tree.name} must define a handle method", tree, filename)
    tree.body = newbody

    return fix_ctx(tree, copy_seen_nodes=False)

def _isresult(tree):
    if type(tree) is Assign:
        return len(tree.targets) == 1 and isx(tree.targets[0], "Result", accept_attr=False)
    if type(tree) is AnnAssign:
        return isx(tree.target, "Result", accept_attr=False)
    return False

def _wrap(atomic, actor, tree):
    """Wrap a type or a future in the response type."""
    if atomic:
        return q[h[AtomicResponse][a[actor], a[tree]]] if actor is not None else q[h[AtomicResponse](a[tree])]
    return q[h[ResponseActFuture][a[actor], a[tree]]] if actor is not None else q[h[ResponseActFuture](a[tree])]

def _transform_handle(fdef, *, atomic, annotate, filename):
    params = fdef.args.posonlyargs + fdef.args.args
    if len(params) < 3:
        raise StructuralError("@async_handler: handle must take at least three parameters: (self, msg, ctx)", fdef, filename)
    receiver, context_param = params[0].arg, params[-1].arg

    body = fdef.body
    docstring = []
    if body and type(body[0]) is Expr and type(body[0].value) is Constant and isinstance(body[0].value.value, str):
        docstring, body = body[:1], body[1:]
    body, globalnames, nonlocalnames = _strip_declarations(body)

    body = rename_binders(body, receiver, context_param)
    params[0].arg = SELF
    params[-1].arg = CTX
    if receiver in globalnames | nonlocalnames or context_param in globalnames | nonlocalnames:
        raise StructuralError("@async_handler: handle: the receiver and context parameters cannot be declared global or nonlocal", fdef, filename)

    context = ChainContext()
    segments = segment_block(context, body)
    stmts, fut = build_chain(context, segments, enclose_first=True)

    declarations = []
    if globalnames:
        declarations.append(Global(names=sorted(globalnames)))
    if nonlocalnames:
        declarations.append(Nonlocal(names=sorted(nonlocalnames)))

    with q as quoted:
        def _insert_funcname_here_():
            ...  # to be filled in below
    thefunc = quoted[0]
    thefunc.name = fdef.name
    thefunc.args = fdef.args
    thefunc.decorator_list = fdef.decorator_list
    thefunc.returns = q[n["Result"]] if annotate else None
    thefunc.body = docstring + declarations + stmts + [Return(value=_wrap(atomic, None, fut))]
    copy_location(thefunc, fdef)

    declare_nonlocals(thefunc, steps=context.steps, globalnames=globalnames, nonlocalnames=nonlocalnames)
    _check_strays(thefunc, context.steps, filename)
    _check_consistency(thefunc, nonlocalnames, fdef, filename)

    logger.debug("@async_handler: rewrote {}: {} segments, {} continuations, {} mode".format(
        fdef.name, len(segments), len(context.steps), "atomic" if atomic else "non-atomic"))
    return thefunc

def _strip_declarations(body):
    """Remove ``global`` and ``nonlocal`` declarations from ``body``.

    Return ``(body, globalnames, nonlocalnames)``.
    """
    globalnames = set()
    nonlocalnames = set()
    class DeclarationStripper(ASTTransformer):
        def transform(self, tree):
            if type(tree) in (FunctionDef, AsyncFunctionDef, Lambda, ClassDef):
                return tree  # nested scopes have their own declarations
            if type(tree) is Global:
                globalnames.update(tree.names)
                return Pass()
            if type(tree) is Nonlocal:
                nonlocalnames.update(tree.names)
                return Pass()
            return self.generic_visit(tree)
    body = DeclarationStripper().visit(body)
    return body, globalnames, nonlocalnames

def _check_strays(thefunc, steps, filename):
    """Reject any suspension left in a position we don't rewrite.

    Nested functions defined by the user are left alone.
    """
    class StrayChecker(ASTVisitor):
        def examine(self, tree):
            if is_captured_value(tree):
                return  # don't recurse!
            if type(tree) in (FunctionDef, AsyncFunctionDef, Lambda, ClassDef) and getattr(tree, "name", None) not in steps:
                return
            if type(tree) is Await:
                raise StructuralError("@async_handler: await is only supported as a statement, as the right-hand side of an assignment, or as the value of return (possibly inside an if-expression); and in the body of an if or a for", tree, filename)
            if type(tree) in (AsyncFor, AsyncWith):
                raise StructuralError("@async_handler: async for and async with are not supported", tree, filename)
            if type(tree) in (Yield, YieldFrom):
                raise StructuralError("@async_handler: a handler cannot be a generator", tree, filename)
            self.generic_visit(tree)
    StrayChecker().visit(thefunc.body)

def _check_consistency(thefunc, nonlocalnames, fdef, filename):
    """Check that the rewritten ``handle`` compiles. If not, it's a bug in ``@async_handler``."""
    checked = thefunc
    if nonlocalnames:  # provide the bindings, to compile the method standalone
        with q as quoted:
            def _chain_outer():
                ...
        quoted[0].body = [Assign(targets=[q[n[name]]], value=q[None]) for name in sorted(nonlocalnames)] + [thefunc]
        checked = quoted[0]
    source = unparse(checked)
    try:
        compile(source, filename or "<async_handler>", "exec")
    except SyntaxError as err:
        lines = source.splitlines()
        offending = lines[err.lineno - 1].strip() if err.lineno and err.lineno <= len(lines) else "<unknown>"
        raise ConsistencyError(f"@async_handler: internal error: rewritten {fdef.name} does not compile: {err.msg}; at: {offending}",
                               fdef, filename) from err
