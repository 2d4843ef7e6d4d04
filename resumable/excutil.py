# -*- coding: utf-8 -*-
"""Exception-related utilities, and the error types of the condition system."""

__all__ = ["ControlError", "DanglingTargetError",
           "equip_with_traceback"]

import inspect
import sys
from types import TracebackType

class ControlError(Exception):
    """A condition for errors detected by the conditions system.

    Known in Common Lisp as `CONTROL-ERROR`. This is signaled by the condition
    system e.g. when trying to invoke a nonexistent restart, or a restart whose
    `with restarts` block has already exited.

    The `error` protocol **raises** `ControlError` to the user when a handler
    attempts to resume an `error` call with a value.
    """

class DanglingTargetError(ControlError):
    """A resume marker reached the top of the thread's scopes unclaimed.

    Its target scope had already exited. This is a bug: either in the code that
    kept a reference to a scope past its lifetime, or in `resumable` itself.
    """

def equip_with_traceback(exc, stacklevel=1):
    """Given an exception instance exc, equip it with a traceback.

    `stacklevel` is the starting depth below the top of the call stack,
    to cull useless detail: `1` excludes `equip_with_traceback` itself,
    `2` also excludes the utility function that called it, and so on.

    The return value is `exc`, with its traceback set to the produced
    traceback.

    When not supported, raises `NotImplementedError`.

    The `signal` function uses this, so that a signaled condition looks like a
    raised exception when it eventually surfaces as one.

    Based on solution by StackOverflow user Zbyl:
        https://stackoverflow.com/a/54653137
    """
    if not isinstance(exc, BaseException):
        raise TypeError(f"exc must be an exception instance; got {type(exc)} with value {repr(exc)}")
    if not isinstance(stacklevel, int):
        raise TypeError(f"stacklevel must be int, got {type(stacklevel)} with value {repr(stacklevel)}")
    if stacklevel < 0:
        raise ValueError(f"stacklevel must be >= 0, got {repr(stacklevel)}")

    try:
        getframe = sys._getframe
    except AttributeError as err:  # pragma: no cover, both CPython and PyPy3 have sys._getframe.
        raise NotImplementedError("Need a Python interpreter which has `sys._getframe`") from err

    tb = None  # tb_next points toward the level where the exception occurred.
    depth = stacklevel
    while True:
        try:
            frame = getframe(depth)  # 0 = top of call stack
        except ValueError:  # beyond the root level
            break
        tb = TracebackType(tb, frame, frame.f_lasti, frame.f_lineno)
        depth += 1
    return exc.with_traceback(tb)

def safeissubclass(cls, cls_or_tuple):
    """Like issubclass, but if `cls` is not a class, return `False` instead of raising `TypeError`."""
    try:
        return issubclass(cls, cls_or_tuple)
    except TypeError:  # "issubclass() arg 1 must be a class"
        return False

def accepts_arg(f):
    """Whether `f` can be called with exactly one positional argument.

    If the signature cannot be inspected (some builtins), assume it can.
    """
    try:
        sig = inspect.signature(f)
    except (TypeError, ValueError):  # pragma: no cover
        return True  # just assume it
    try:
        sig.bind(None)
    except TypeError:
        return False
    return True

def rename(name):
    """Rename a function. Parametric decorator.

    Gives a closure a meaningful name, so that if it crashes much later, the
    stack trace reports that name instead of ``"<lambda>"``::

        f = rename("proceed")(lambda c: ...)
    """
    def rename_function(f):
        f.__name__ = name
        qualname = f.__qualname__.rpartition(".")
        f.__qualname__ = f"{qualname[0]}.{name}" if qualname[0] else name
        return f
    return rename_function
