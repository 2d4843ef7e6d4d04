# -*- coding: utf-8 -*-
"""Resumable conditions and restarts, in the style of Common Lisp.

No debugger support, and no implicit "no such function, what would you like
to do?" hook on every function call in the language. To use conditions, you
have to explicitly ask for them.

No separate base class for conditions; you can signal any exception or warning.

This module exports the core forms `signal`, `invoke`, `with restarts`, and
`with handlers`, which interlock in a very particular way (see examples).
A handler chooses what happens to a condition by calling one of:

  - `invoke` (or a restart function such as `use_value`, `proceed`, `muffle`):
    unwind to the `with restarts` block that provides the named restart,
    run the restart there, and continue after that block;
  - `resume`: make the `signal` call itself return a value, and continue
    right after it, as if nothing had happened;
  - `unwind`: unwind to the handler's own `with handlers` block, and continue
    after that block;
  - `rethrow`: give up on condition handling, and raise the condition from the
    signal site as an ordinary exception;
  - `unhandled`: skip any remaining handlers, and treat the condition as
    unhandled right away.

Or it can return normally, which *declines*: the next outer handler gets a
chance. If no handler takes action, the condition is unhandled. An unhandled
`signal` raises the condition as an ordinary exception at the outermost
`with handlers` / `with restarts` block of the thread (or at the `signal`
call itself, if there are none). The protocol functions `error`, `cerror` and
`warn` customize this.

The forms `with_restarts` and `with_handlers` are alternate syntax using a
parametric decorator and a `def` instead of a `with`.

Introspection: `find_restart`, `available_restarts`, `available_handlers`.

**How it works**

Handlers run at the signal site, on top of the call stack; nothing has been
unwound yet when a handler starts. The handlers visible during a handler's
run are only those that were visible where it was established.

Every transfer of control is a marker (see `resumable.markers`) raised toward
a scope identified by a token. Each `with restarts`, `with handlers` and
`signal` is such a scope (see `resumable.scopes`). The marker unwinds the call
stack scope by scope until its addressee claims it, then the thunk carried by
the marker runs there, in the dynamic context of that block.

**See also**

To understand conditions, see *Chapter 19: Beyond Exception Handling:
Conditions and Restarts* in *Practical Common Lisp* by Peter Seibel (2005):

    http://www.gigamonkeys.com/book/beyond-exception-handling-conditions-and-restarts.html
"""

__all__ = ["signal", "error",
           "cerror", "proceed",
           "warn", "muffle",
           "find_restart", "invoke", "use_value", "invoker",
           "resume", "unwind", "rethrow", "unhandled",
           "available_restarts", "available_handlers",
           "restarts", "with_restarts",
           "handlers", "with_handlers",
           "ControlError", "DanglingTargetError"]

from collections import namedtuple
from functools import partial
import warnings

from .excutil import (ControlError, DanglingTargetError,
                      equip_with_traceback, accepts_arg, rename)
from .markers import ResumeScope, ResumeHandler, Rethrow, UnhandledException
from .registry import RestartEntry, current_session
from .scopes import Token, scope, call_in_scope, is_live, unbox, _raise_carried

# A handler invocation in progress: which condition, the token of the `signal`
# call that is running it, and the handler's own entry.
_Running = namedtuple("_Running", ["condition", "signal_scope", "handler"])

_nohandler = object()  # nonce

# Consistency with behavior of exceptions in Python:
#   Even if a class is raised, as in `raise StopIteration`, the `raise` statement
#   converts it into an instance by instantiating with no args. So we need no
#   special handling for the "class raised" case.
#     https://docs.python.org/3/reference/simple_stmts.html#the-raise-statement
def _canonize(exc, err_reason):
    if isinstance(exc, BaseException):  # "signal(SomeError())"
        return exc
    try:
        if issubclass(exc, BaseException):  # "signal(SomeError)"
            return exc()  # instantiate with no args, like `raise` does
    except TypeError:  # "issubclass() arg 1 must be a class"
        pass
    error(ControlError(f"Only exceptions and subclasses of Exception can {err_reason}; got {type(exc)} with value {repr(exc)}."))

def _prepare(condition, cause, stacklevel):
    condition = _canonize(condition, "be signaled")
    if cause is not None:
        condition.__cause__ = _canonize(cause, "act as the cause of another signal")
    # Embed a stack trace in the condition, like Python does for raised
    # exceptions, unless it already has one (e.g. it was caught earlier).
    if condition.__traceback__ is None:
        try:
            # In the result, omit equip_with_traceback(), _prepare() and the public form.
            condition = equip_with_traceback(condition, stacklevel=stacklevel + 1)
        except NotImplementedError:  # pragma: no cover
            pass  # well, we tried!
    return condition

def _run_handler(session, entry, condition, signal_scope):
    session.running.append(_Running(condition, signal_scope, entry))
    try:
        with session.handlers.rebind(entry.depth):
            if accepts_arg(entry.function):
                entry.function(condition)
            else:
                entry.function()
    except Rethrow as marker:
        _raise_carried(marker)
    finally:
        session.running.pop()

def _dispatch(condition, fallback):
    """Run the handlers for `condition`, innermost first, at the signal site.

    Return the value sent by `resume`; if no handler takes action, return
    `fallback(condition)`.
    """
    session = current_session()
    token = Token("signal")
    def run_handlers():
        for entry in session.handlers.matching(condition):
            _run_handler(session, entry, condition, token)
        return fallback(condition)
    return call_in_scope(token, run_handlers)

def _give_up(condition):
    raise UnhandledException(condition)

def signal(condition, *, cause=None):
    """Signal a condition.

    Signaling a condition works similarly to raising an exception (pass an
    `Exception` or subclass instance to `signal`), but the act of signaling
    itself does **not** yet unwind the call stack.

    Handlers bound to the type of the given condition instance (or to a
    predicate accepting it) run from dynamically innermost to dynamically
    outermost, with the same condition instance as argument, until one of them
    (if any) takes action. See the module docstring for the choices.

    If a handler calls `resume(value)`, `signal` returns `value`. This is the
    only way `signal` returns normally.

    If none of the matching handlers takes action, the condition is unhandled.
    It is raised as an ordinary exception at the outermost `with restarts` or
    `with handlers` block that is active in this thread; if there are none,
    it is raised from the `signal` call itself.

    The optional `cause` argument works like `raise ... from ...`. In other
    words, if we pretend for a moment that `signal` is a Python keyword, it
    essentially performs a `signal ... from ...`.

    The condition instance is equipped with a traceback pointing at the
    caller of `signal`, just like a raised exception.
    """
    condition = _prepare(condition, cause, stacklevel=2)
    return _dispatch(condition, _give_up)

def _running(who):
    running = current_session().running
    if not running:
        error(ControlError(f"`{who}` can only be called while a condition handler is running"))
    return running[-1]

def resume(value=None):
    """Make the `signal` call that is running this handler return `value`.

    Execution continues right after that `signal` call. This call never
    returns normally.
    """
    r = _running("resume")
    raise ResumeScope(r.signal_scope, lambda: value)

def unwind(value=None):
    """Exit the `with handlers` block that established the running handler.

    Unwinds the call stack up to that block; the box bound by its `as` gets
    `value`, and execution continues after the block. Like `except` in Python.
    This call never returns normally.
    """
    r = _running("unwind")
    raise ResumeHandler(r.handler.scope, lambda: value)

def rethrow(exception=None):
    """Stop handling the current condition; raise it as an ordinary exception.

    The exception is raised from the `signal` call that is running this
    handler, so a plain `try`/`except` between it and the handler's block can
    catch it. Any remaining handlers do not run.

    `exception`: raise this instead of the condition being handled.
    """
    r = _running("rethrow")
    raise Rethrow(r.condition if exception is None else exception)

def unhandled():
    """Treat the condition being handled as unhandled, skipping any remaining handlers."""
    r = _running("unhandled")
    raise UnhandledException(r.condition)

def invoke(name_or_restart, *args, **kwargs):
    """Invoke a restart currently in scope. Known as `INVOKE-RESTART` in Common Lisp.

    `name_or_restart` can be the name of a restart, or a restart object returned
    by `find_restart`.

    If it is a name, that name will be looked up with `find_restart`. If there
    is no restart in scope matching the given name, `ControlError` is signaled
    using the `error` function. Same if a restart object is given, but the
    `with restarts` block that provides it has already exited.

    Any args and kwargs are passed through to the restart. Refer to the particular
    restart's documentation (or source code) for what arguments it expects.

    To *handle* a condition, call `invoke` from inside your condition
    handler. The call immediately terminates the handler, transferring control
    to the restart. The restart runs in the dynamic context of its own
    `with restarts` block (the restarts of that block itself are gone by then),
    and its return value becomes the result of that block.

    This function never returns normally.
    """
    if isinstance(name_or_restart, str):
        restart = find_restart(name_or_restart)
        if restart is None:
            error(ControlError(f"No such restart: {repr(name_or_restart)}; available restarts: {available_restarts()}"))
    elif isinstance(name_or_restart, RestartEntry):
        restart = name_or_restart
        if not is_live(restart.scope):
            error(ControlError(f"Restart {repr(restart.name)} is no longer in scope; its `with restarts` block has exited"))
    else:
        error(TypeError(f"Expected str or a return value of find_restart, got {type(name_or_restart)} with value {repr(name_or_restart)}"))
    # Found it - now we are guaranteed to unwind only up to the matching "with restarts".
    raise ResumeScope(restart.scope, lambda: restart.function(*args, **kwargs))

use_value = partial(invoke, "use_value")
use_value.__doc__ = """Invoke the 'use_value' restart immediately with given args and kwargs.

Known as the `USE-VALUE` restart function in Common Lisp. This::

    with handlers((OhNoes, lambda c: invoke("use_value", 42))):
        ...

can be abbreviated to::

    with handlers((OhNoes, lambda c: use_value(42))):
        ...

This pattern, `partial(invoke, "my_restart")`, can be useful for defining
similar shorthands for your own restarts. Restarts are looked up by name, so
one module-level shorthand serves every `with restarts` site that provides a
restart of that name.
"""

def invoker(restart_name, *args, **kwargs):
    """Create a handler that just invokes the named restart.

    The args and kwargs are "frozen" into the created handler by closure, and
    passed through to the restart whenever the created handler triggers. This
    is useful for passing constants::

        with handlers((OhNoes, invoker("use_value", 42))):
            ...  # calling some code that may cerror(OhNoes("ouch"))

    The returned function has the same name as the restart it invokes,
    to ease debugging, and a docstring. It takes in a condition instance
    argument (so it is applicable as a handler), but ignores it.

    If the restart cannot be found when the invoker fires, it signals
    `ControlError`.

    Invokers and functions like `use_value` are termed *restart functions* in
    Common Lisp.
    """
    the_invoker = rename(restart_name)(lambda c: invoke(restart_name, *args, **kwargs))
    the_invoker.__doc__ = f"Invoke the '{restart_name}' restart."
    return the_invoker

def find_restart(name):
    """Look up a restart. Known as `FIND-RESTART` in Common Lisp.

    If the named restart is currently in (dynamic) scope, return an opaque
    object (accepted by `invoke`) that represents that restart. The
    most recently bound restart matching the name wins.

    If no match, return `None`.

    This allows optional condition handling. You can check for the presence of
    a specific restart with `find_restart` before you commit to invoking it via
    `invoke`.
    """
    return current_session().restarts.find(name)

def available_restarts():
    """Return a sorted list of restarts currently in scope.

    Name shadowing is respected; for each unique name, the return value
    contains only the most recently bound (dynamically innermost) restart.

    The return value format is `[(name, callable), ...]`.
    """
    return current_session().restarts.available()

def available_handlers():
    """Like available_restarts, but for handlers.

    The return value format is `[(type, callable), ...]`.

    While a handler is running, only the handlers visible to it are listed.
    """
    return current_session().handlers.available()

class restarts(scope):
    """Provide restarts. Known as `RESTART-CASE` in Common Lisp.

    Roughly, restarts can be thought of as canned error recovery strategies.
    You can use restarts whenever you'd like to define a set of actions to
    handle a specific condition, while allowing code higher up the call stack
    to decide which of those actions to take in any particular use case.

    A restart can take any number of args and kwargs; its call signature
    depends only on how it's intended to be invoked.

    Example::

        with restarts(use_value=(lambda x: x)) as result:
            ...
            result << 42
        unbox(result)

    The `with restarts` form binds a `box` to hold the result of the block.
    For a normal return, set it with `result << value` at the end of the block.
    If the code inside the block invokes one of the restarts defined in this
    `with restarts`, the box gets the value returned by the restart instead.
    Then execution continues from immediately after the block.

    Names that are not valid Python identifiers can be passed with `**`::

        with restarts(**{"use-default": lambda: 0}):
            ...
    """
    def __init__(self, **bindings):
        super().__init__(Token("restarts"))
        self.bindings = bindings

    def __enter__(self):
        registry = current_session().restarts
        cluster = registry.establish(self.bindings, self.token)
        self.exit = partial(registry.pop, cluster)
        return super().__enter__()

def with_restarts(**bindings):
    """Alternate syntax. Use restarts with a `def` code block instead of a `with`.

    The def'd name is replaced by the result, so you can return a value from
    the block normally (using `return`), and don't need to unbox anything::

        @with_restarts(use_value=(lambda x: x))
        def result():  # must take no parameters, essentially just a variable
            ...
            return 42
        # now `result` is either 42 or the return value of a restart

    Can also be called as a regular function; the return value is a
    `call_with_restarts` function, which calls any thunk given to it in the
    context of these restarts.
    """
    def call_with_restarts(f):
        """Call `f`, while providing the restarts stored in this closure."""
        with restarts(**bindings) as result:
            result << f()
        return unbox(result)
    return call_with_restarts

class handlers(scope):
    """Set up condition handlers. Known as `HANDLER-BIND` in Common Lisp.

    Usage::

        with handlers((cls, callable), ...) as result:
            ...

    where `cls` is a condition type (class), or a `tuple` of such types,
    just like in `except`, or a predicate that takes the condition instance
    and returns whether this handler applies.

    The `callable` may optionally accept one positional argument, the condition
    instance (like an `except ... as ...` clause).

    Within one `with handlers`, the bindings are tried in the order given.

    The `as` part is optional. It binds a `box`, which gets the value sent by
    `unwind` if a handler of this block uses it. Like with `with restarts`,
    use `result << value` to set a value for the normal return.

    **Notes**

    The condition system does not have a `finally` form. For that, use the
    usual `try/finally`, it will work fine also with conditions. Just keep in
    mind that the call stack unwinding actually occurs later than usual.
    """
    def __init__(self, *bindings):
        super().__init__(Token("handlers"))
        self.bindings = bindings

    def __enter__(self):
        registry = current_session().handlers
        cluster = registry.establish(self.bindings, self.token)
        self.exit = partial(registry.pop, cluster)
        return super().__enter__()

def with_handlers(*bindings):
    """Alternate syntax for `handlers`, like `with_restarts` is for `restarts`."""
    def call_with_handlers(f):
        """Call `f`, while the handlers stored in this closure are in scope."""
        with handlers(*bindings) as result:
            result << f()
        return unbox(result)
    return call_with_handlers

# Common Lisp standard error handling protocols, building on `signal`.
# Pythonified to add the `cause` argument.

def _error(condition):
    _dispatch(condition, _give_up)
    raise ControlError(f"Attempted to resume an error condition, which cannot be resumed: {repr(condition)}") from condition

def error(condition, *, cause=None):
    """Like `signal`, but `error` cannot be resumed with a value.

    A handler must invoke a restart (or `unwind`, or `rethrow`). If a handler
    attempts to `resume` an `error`, `ControlError` is raised from the `error`
    call. If no handler takes action, the condition is raised, like for `signal`.

    This function never returns normally.
    """
    _error(_prepare(condition, cause, stacklevel=2))

def cerror(condition, *, cause=None):
    """Like `error`, but allow a handler to instruct the caller to ignore the error.

    `cerror` internally establishes a restart named `proceed`, which can be
    invoked to make `cerror` return normally to its caller. Like Common Lisp,
    as a convenience we export a restart function `proceed` that just invokes
    the eponymous restart.

    We use the name "proceed" instead of Common Lisp's "continue", because in
    Python `continue` is a reserved word.

    Example::

        class OddNumberError(Exception):
            def __init__(self, value):
                self.value = value

        with handlers((OddNumberError, proceed)):
            out = []
            for x in range(10):
                if x % 2 == 1:
                    cerror(OddNumberError(x))  # if unhandled, raises OddNumberError
                out.append(x)
        assert out == [0, 2, 4, 6, 8]
    """
    condition = _prepare(condition, cause, stacklevel=2)
    with restarts(proceed=(lambda: None)):  # just for control, no return value
        _error(condition)

def warn(condition, *, cause=None):
    """Like `signal`, but emit a warning if the condition is not handled.

    For emitting the warning, we use Python's standard `warnings.warn`. If the
    condition inherits from `Warning`, it is used as the message, which makes
    its type the warning category. If not, the generic category `Warning` is
    used, with the message set to `str(condition)`.

    `warn` internally establishes a restart `muffle`, which can be invoked
    in a handler to suppress the emission of a particular warning::

        with handlers((HelpMe, muffle)):
            warn(HelpMe(42))  # no warning emitted
            ...  # execution continues normally

    The combination of `warn` and `muffle` behaves somewhat like
    `contextlib.suppress`, except that execution continues normally
    in the caller of `warn` instead of unwinding to the handler.

    Return `None`, or the value sent by a handler using `resume`.
    """
    condition = _prepare(condition, cause, stacklevel=2)
    with restarts(muffle=(lambda: None)) as result:  # just for control, no return value
        value = _dispatch(condition, lambda c: _nohandler)
        if value is _nohandler:
            if isinstance(condition, Warning):
                warnings.warn(condition, stacklevel=2)  # 2 to ignore our lispy `warn` wrapper.
            else:
                warnings.warn(str(condition), category=Warning, stacklevel=2)
            value = None
        result << value
    return unbox(result)

# Standard restart functions for the predefined protocols

proceed = invoker("proceed")
proceed.__doc__ = "Invoke the 'proceed' restart. Restart function for use with `cerror`."

muffle = invoker("muffle")
muffle.__doc__ = "Invoke the 'muffle' restart. Restart function for use with `warn`."
