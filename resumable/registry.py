# -*- coding: utf-8 -*-
"""Dynamic registries of restarts and handlers.

Both registries are stacks of *clusters*: each `with restarts(...)` or
`with handlers(...)` block pushes one cluster on entry, and pops it on exit.
Lookups scan from the innermost (most recently established) cluster outward,
so the innermost establishment shadows the outer ones.

The registries are dynamic state of one call stack. Each thread has its own
`Session`, created the first time the thread touches the condition system.
"""

__all__ = ["RestartEntry", "HandlerEntry",
           "RestartRegistry", "HandlerRegistry",
           "Session", "current_session"]

import threading
from collections import namedtuple
from contextlib import contextmanager
from operator import itemgetter

from .excutil import ControlError, safeissubclass

RestartEntry = namedtuple("RestartEntry", ["name", "function", "scope"])
RestartEntry.__doc__ = """A restart in (dynamic) scope. Returned by `find_restart`, accepted by `invoke`.

`scope` is the token of the `with restarts` block that established it.
"""

HandlerEntry = namedtuple("HandlerEntry", ["match", "function", "scope", "depth"])
HandlerEntry.__doc__ = """A condition handler in (dynamic) scope.

`match` is an exception type, a tuple of such types, or a predicate.
`scope` is the token of the `with handlers` block that established it.
`depth` is the number of clusters below it on the handler stack; those are
the handlers visible while this one runs.
"""

class _Registry:  # boilerplate
    def __init__(self):
        self._stack = []

    def pop(self, cluster):
        """Remove `cluster`, which must be the innermost one."""
        if not self._stack or self._stack[-1] is not cluster:
            raise ControlError(f"{type(self).__name__}: stack discipline violated, {cluster!r} is not the innermost cluster")
        self._stack.pop()

    def __len__(self):
        return len(self._stack)

class RestartRegistry(_Registry):
    def establish(self, bindings, scope):
        """Push restarts. `bindings`: dictionary of name (str) -> callable.

        Return the cluster, to be passed to `pop` when the block exits.
        """
        for n, c in bindings.items():
            if not (isinstance(n, str) and callable(c)):
                raise TypeError(f"Each binding must be of the form name=callable, got {n!r}={c!r}")
        cluster = {n: RestartEntry(n, c, scope) for n, c in bindings.items()}
        self._stack.append(cluster)
        return cluster

    def find(self, name):  # exactly 1 (most recently bound wins)
        for cluster in reversed(self._stack):
            if name in cluster:
                return cluster[name]
        return None

    def available(self):
        """Return `[(name, callable), ...]` sorted by name, shadowing respected."""
        out = []
        seen = set()
        for cluster in reversed(self._stack):
            for name, entry in cluster.items():
                if name not in seen:
                    seen.add(name)
                    out.append((name, entry.function))
        return sorted(out, key=itemgetter(0))

def _is_typespec(spec):
    return ((isinstance(spec, tuple) and all(safeissubclass(x, BaseException) for x in spec)) or
            safeissubclass(spec, BaseException))

def _matches(spec, condition):
    if isinstance(spec, tuple) or isinstance(spec, type):
        return isinstance(condition, spec)
    return bool(spec(condition))

class HandlerRegistry(_Registry):
    def establish(self, bindings, scope):
        """Push handlers. `bindings`: sequence of `(match, callable)`.

        `match` is a condition type, a tuple of such types (just like in
        `except`), or a predicate that takes the condition instance.

        Return the cluster, to be passed to `pop` when the block exits.
        """
        for t, c in bindings:
            if not ((_is_typespec(t) or (callable(t) and not isinstance(t, type))) and callable(c)):
                raise TypeError("Each binding must be of the form (type, callable), ((t0, ..., tn), callable) "
                                f"or (predicate, callable); got ({t!r}, {c!r})")
        depth = len(self._stack)
        cluster = tuple(HandlerEntry(t, c, scope, depth) for t, c in bindings)
        self._stack.append(cluster)
        return cluster

    def matching(self, condition):
        """Yield the handlers that accept `condition`, innermost first.

        Lazy; each call starts over from the innermost handler, using the
        handler stack as it is when iteration starts.
        """
        stack = self._stack
        for k in range(len(stack) - 1, -1, -1):
            for entry in stack[k]:
                if _matches(entry.match, condition):
                    yield entry

    @contextmanager
    def rebind(self, depth):
        """Make only the outermost `depth` clusters visible, for the duration of the block.

        While a handler runs, the handlers visible to it are those that were in
        scope where it was established, as in Common Lisp.
        """
        saved = self._stack
        self._stack = saved[:depth]
        try:
            yield
        finally:
            self._stack = saved

    def available(self):
        """Return `[(type, callable), ...]`, shadowing respected.

        The most recently bound handler for a given condition type wins. A
        handler bound to several types is listed once per type. A handler
        bound to a predicate is listed under that predicate.
        """
        out = []
        seen = set()
        for cluster in reversed(self._stack):
            for entry in cluster:
                spec = entry.match
                ts = spec if isinstance(spec, tuple) else (spec,)
                for t in ts:
                    if t not in seen:
                        seen.add(t)
                        out.append((t, entry.function))
        return sorted(out, key=lambda x: getattr(x[0], "__name__", repr(x[0])))

class Session:
    """The dynamic state of the condition system in one thread.

    `restarts`: `RestartRegistry`
    `handlers`: `HandlerRegistry`
    `scopes`: list of live scope tokens, outermost first
    `running`: list of handler invocations in progress, innermost last
    """
    def __init__(self):
        self.restarts = RestartRegistry()
        self.handlers = HandlerRegistry()
        self.scopes = []
        self.running = []

_L = threading.local()
def current_session():
    """Return the `Session` of the current thread, creating it on first use."""
    if not hasattr(_L, "session"):  # per-thread init
        _L.session = Session()
    return _L.session
