# -*- coding: utf-8 -*-
"""Signal markers: the internal control channel of the condition system.

A marker is raised to carry intent across stack frames: which scope to
resume, what to run upon arrival, or which exception to give up on. Markers
are pure data. All behavior lives in the scope runner (`resumable.scopes`)
and in the dispatcher (`resumable.conditions`) that interpret them.

The markers inherit from `BaseException`, not `Exception`, so that an
`except Exception:` in user code lets them pass. This is the same approach
Python itself takes with `GeneratorExit` and `KeyboardInterrupt`. User code
should never catch a `SignalMarker`; if you must catch `BaseException`,
re-raise markers unexamined.

If you ever see one of these in a traceback, something has gone wrong.
"""

__all__ = ["SignalMarker",
           "ResumeScope", "ResumeHandler",
           "Rethrow", "UnhandledException"]

class SignalMarker(BaseException):
    """Base class of the internal control markers. Not a user-visible failure."""

class _Resume(SignalMarker):
    # "Unwind to the runner owning `target`; upon arrival, run `thunk`
    #  and make its result the runner's result."
    def __init__(self, target, thunk):
        if target is None:
            raise TypeError("target must be a scope token, got None")
        if not callable(thunk):
            raise TypeError(f"thunk must be callable, got {type(thunk)} with value {repr(thunk)}")
        self._target = target
        self._thunk = thunk
        # message when uncaught
        self.args = (f"resumable: internal error: uncaught {type(self).__name__} for {target!r}",)

    @property
    def target(self):
        """The token of the scope this marker is addressed to."""
        return self._target

    @property
    def thunk(self):
        """Zero-argument callable to run at the target scope."""
        return self._thunk

class ResumeScope(_Resume):
    """Resume the scope owning `target` with the result of `thunk()`.

    Raised to resume a `signal` call with a value, and to invoke a restart.
    """

class ResumeHandler(_Resume):
    """Resume the `handlers` block owning `target` with the result of `thunk()`.

    Raised when a handler returns from its own establishing block.
    """

class _Carrier(SignalMarker):
    def __init__(self, exception):
        if not isinstance(exception, BaseException):
            raise TypeError(f"exception must be an exception instance, got {type(exception)} with value {repr(exception)}")
        self._exception = exception
        self.args = (f"resumable: internal error: uncaught {type(self).__name__} carrying {exception!r}",)

    @property
    def exception(self):
        """The condition instance being given up on."""
        return self._exception

class Rethrow(_Carrier):
    """Abandon condition handling; raise `exception` as an ordinary exception.

    Raised by a handler. The `signal` call that ran the handler catches it, and
    raises the condition from the signal site.
    """

class UnhandledException(_Carrier):
    """No handler claimed the condition; treat `exception` as unhandled.

    Relayed by every scope runner up to the outermost live scope of the
    thread, which raises `exception` as an ordinary exception.
    """
