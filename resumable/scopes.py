# -*- coding: utf-8 -*-
"""Scopes: resumable unwinding on top of one-shot exceptions.

Every block that establishes handlers or restarts, as well as every `signal`
call, runs inside a *scope*, identified by a `Token`. Scopes nest, following
the call stack. The scope runner is a trampoline:

  - run the body;
  - on every exit path, retire the token (and run the block's exit action,
    which pops its registry cluster);
  - if a resume marker addressed to this token arrives, run the thunk it
    carries, and make that the result of the scope;
  - relay any other marker outward unchanged, one scope at a time, until it
    reaches its addressee.

The outermost live scope of the thread acts as the top boundary. A marker that
gets that far without being claimed is converted there: an unhandled (or
rethrown) condition is raised as an ordinary exception, and a resume marker
whose target has already exited is reported as a `DanglingTargetError`.

Ordinary exceptions pass through every scope untouched.
"""

__all__ = ["Token", "box", "unbox",
           "scope", "call_in_scope", "is_live"]

from .excutil import ControlError, DanglingTargetError
from .markers import ResumeScope, ResumeHandler, Rethrow, UnhandledException
from .registry import current_session

class Token:
    """An opaque, never reused identity for a scope.

    Compared by identity only. The label is just for humans::

        t = Token("restarts")
        print(t)  # <scope token "restarts" at 0x7fde8ec454e0>
    """
    __slots__ = ["label"]
    def __init__(self, label):
        self.label = label
    def __repr__(self):
        return '<scope token "{}" at 0x{:x}>'.format(self.label, id(self))

class box:
    """A mutable single-item container, holding the result of a scope.

    `b << x` sends `x` into the box (and returns the box), `unbox(b)` reads it.
    """
    __slots__ = ["x"]
    def __init__(self, x=None):
        self.x = x
    def __lshift__(self, x):
        self.x = x
        return self
    def set(self, x):
        self.x = x
        return x
    def get(self):
        return self.x
    def __repr__(self):
        return f"box({self.x!r})"

def unbox(b):
    """Return the value inside the box `b`."""
    if not isinstance(b, box):
        raise TypeError(f"Expected box, got {type(b)} with value {repr(b)}")
    return b.x

def is_live(token):
    """Return whether the scope `token` is currently running in this thread."""
    return any(t is token for t in current_session().scopes)

def _retire(scopes, token):
    if not scopes or scopes[-1] is not token:
        raise ControlError(f"scope stack discipline violated: {token!r} is not the innermost scope")
    scopes.pop()

def _raise_carried(marker):
    exc = marker.exception
    # Keep `__cause__`, but don't show the marker as context; this is what
    # the user would have seen if the condition had been raised.
    exc.__suppress_context__ = True
    raise exc

def _detach(exc, marker):
    # Cut `marker` out of the implicit exception chain of `exc`.
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if exc.__context__ is marker:
            exc.__context__ = marker.__context__
            return
        exc = exc.__context__

def _run_thunk(marker):
    try:
        return marker.thunk()
    except BaseException as err:
        # The thunk runs while the marker is being handled, so Python has
        # chained the marker as the context of anything the thunk raised.
        _detach(err, marker)
        raise

class scope:
    """Run the `with` block as the scope `token`. Binds a `box` for the result.

    `exit`: optional zero-argument callable, run when the scope exits (by any
    means), before a thunk addressed to this scope runs.

    Example::

        with scope(Token("mine")) as result:
            ...
            result << 42
        unbox(result)  # 42, or whatever a resume marker sent here

    Mainly a building block for `restarts`, `handlers` and `signal`.
    """
    # Implementation notes:
    #
    # This is a class, not a `@contextmanager` generator. A generator that
    # raises `StopIteration` gets it converted to `RuntimeError` (PEP 479),
    # and a condition, or anything a restart raises, may well be one.
    #
    # Returning `True` from `__exit__` tells the `with` statement that the
    # exception was handled; returning `False` lets it propagate outward.
    # This works for `BaseException` too, which the markers are.
    def __init__(self, token, exit=None):
        self.token = token
        self.exit = exit
        self.result = box(None)

    def __enter__(self):
        current_session().scopes.append(self.token)
        return self.result

    def __exit__(self, exctype, excvalue, traceback):
        scopes = current_session().scopes
        try:
            if self.exit is not None:
                self.exit()
        finally:
            _retire(scopes, self.token)
        if isinstance(excvalue, (ResumeScope, ResumeHandler)):
            if excvalue.target is self.token:  # if it's ours
                self.result << _run_thunk(excvalue)
                return True
            if scopes:
                return False  # unwind this level of call stack, propagate outwards
            raise DanglingTargetError(f"No live scope for {excvalue.target!r}; it has already exited") from excvalue
        if isinstance(excvalue, (Rethrow, UnhandledException)):
            if scopes:
                return False
            _raise_carried(excvalue)
        return False

def call_in_scope(token, thunk, exit=None):
    """Function form of `scope`. Call `thunk` as the scope `token`, return its result.

    If a resume marker addressed to `token` arrives, return what its thunk returns.
    """
    with scope(token, exit) as result:
        result << thunk()
    return unbox(result)
