# -*- coding: utf-8 -*-

import threading
import types

import pytest

from ..excutil import ControlError
from ..registry import (RestartEntry, RestartRegistry, HandlerRegistry,
                        Session, current_session)
from ..scopes import Token

class JustTesting(Exception):
    pass

class MoreTesting(JustTesting):
    pass

# Restarts

def test_restart_establish_find_pop():
    reg = RestartRegistry()
    t = Token("restarts")
    use_value = lambda x: x  # noqa: E731
    cluster = reg.establish({"use_value": use_value}, t)
    assert len(reg) == 1
    entry = reg.find("use_value")
    assert entry == RestartEntry("use_value", use_value, t)
    assert entry.scope is t
    assert reg.find("nonexistent") is None
    reg.pop(cluster)
    assert len(reg) == 0
    assert reg.find("use_value") is None

def test_restart_shadowing():
    # The most recently established restart of the same name wins.
    reg = RestartRegistry()
    outer, inner = Token("outer"), Token("inner")
    c1 = reg.establish({"r": lambda x: x, "only_outer": lambda: 1}, outer)
    c2 = reg.establish({"r": lambda x: 2 * x}, inner)
    assert reg.find("r").scope is inner
    assert reg.find("r").function(21) == 42
    assert reg.find("only_outer").scope is outer
    assert [name for name, _ in reg.available()] == ["only_outer", "r"]
    assert dict(reg.available())["r"](21) == 42
    reg.pop(c2)
    assert reg.find("r").scope is outer
    reg.pop(c1)
    assert reg.available() == []

def test_restart_pop_discipline():
    reg = RestartRegistry()
    c1 = reg.establish({"a": lambda: 1}, Token("1"))
    reg.establish({"b": lambda: 2}, Token("2"))
    with pytest.raises(ControlError):
        reg.pop(c1)  # not the innermost
    with pytest.raises(ControlError):
        RestartRegistry().pop(c1)  # empty

def test_restart_binding_validation():
    reg = RestartRegistry()
    with pytest.raises(TypeError):
        reg.establish({"a": 42}, Token("bad"))
    with pytest.raises(TypeError):
        reg.establish({42: lambda: None}, Token("bad"))
    assert len(reg) == 0

# Handlers

def test_handler_matching_order():
    # Innermost cluster first; within a cluster, in the order given.
    reg = HandlerRegistry()
    f1, f2, f3 = (lambda: 1), (lambda: 2), (lambda: 3)
    reg.establish(((JustTesting, f1),), Token("outer"))
    reg.establish(((JustTesting, f2), (RuntimeError, f3), (Exception, f3)), Token("inner"))
    found = [e.function for e in reg.matching(JustTesting())]
    assert found == [f2, f3, f1]
    assert [e.function for e in reg.matching(RuntimeError())] == [f3, f3]
    assert list(reg.matching(KeyboardInterrupt())) == []

def test_handler_match_specs():
    reg = HandlerRegistry()
    handler = lambda c: None  # noqa: E731
    reg.establish((((KeyError, MoreTesting), handler),), Token("tuple"))
    assert len(list(reg.matching(KeyError()))) == 1
    assert len(list(reg.matching(MoreTesting()))) == 1
    assert list(reg.matching(JustTesting())) == []  # superclass does not match

    reg = HandlerRegistry()
    reg.establish(((lambda c: "yes" in c.args, handler),), Token("predicate"))
    assert len(list(reg.matching(JustTesting("yes")))) == 1
    assert list(reg.matching(JustTesting("no"))) == []

def test_handler_matching_is_lazy_and_restartable():
    reg = HandlerRegistry()
    t = Token("handlers")
    reg.establish(((JustTesting, lambda: 1), (JustTesting, lambda: 2)), t)
    g = reg.matching(JustTesting())
    assert isinstance(g, types.GeneratorType)
    first = next(g)
    assert first.function() == 1
    # a fresh call starts over from the innermost handler
    assert next(reg.matching(JustTesting())).function() == 1
    assert next(g).function() == 2

def test_handler_entries():
    reg = HandlerRegistry()
    t1, t2 = Token("1"), Token("2")
    reg.establish(((JustTesting, lambda: 1),), t1)
    reg.establish(((JustTesting, lambda: 2), (KeyError, lambda: 3)), t2)
    inner, outer = list(reg.matching(JustTesting()))
    assert inner.scope is t2 and inner.depth == 1
    assert outer.scope is t1 and outer.depth == 0
    assert inner.match is JustTesting

def test_handler_rebind():
    reg = HandlerRegistry()
    c1 = reg.establish(((JustTesting, lambda: "outer"),), Token("outer"))
    c2 = reg.establish(((JustTesting, lambda: "inner"),), Token("inner"))
    inner = next(reg.matching(JustTesting()))
    with reg.rebind(inner.depth):
        # only what was visible where the inner handler was established
        assert [e.function() for e in reg.matching(JustTesting())] == ["outer"]
        c3 = reg.establish(((KeyError, lambda: "new"),), Token("new"))
        assert len(reg) == 2
        reg.pop(c3)
    assert [e.function() for e in reg.matching(JustTesting())] == ["inner", "outer"]
    reg.pop(c2)
    reg.pop(c1)

def test_handler_rebind_restores_on_error():
    reg = HandlerRegistry()
    reg.establish(((JustTesting, lambda: 1),), Token("1"))
    with pytest.raises(ValueError):
        with reg.rebind(0):
            assert len(reg) == 0
            raise ValueError
    assert len(reg) == 1

def test_available_handlers():
    reg = HandlerRegistry()
    h1, h2, h3 = (lambda: 1), (lambda: 2), (lambda: 3)
    reg.establish(((JustTesting, h1), (KeyError, h1)), Token("outer"))
    reg.establish((((JustTesting, RuntimeError), h2),), Token("inner"))
    assert reg.available() == [(JustTesting, h2), (KeyError, h1), (RuntimeError, h2)]
    predicate = lambda c: True  # noqa: E731
    reg.establish(((predicate, h3),), Token("predicate"))
    assert (predicate, h3) in reg.available()

def test_handler_binding_validation():
    reg = HandlerRegistry()
    with pytest.raises(TypeError):
        reg.establish(((int, lambda: None),), Token("bad"))  # not an exception type
    with pytest.raises(TypeError):
        reg.establish(((JustTesting, 42),), Token("bad"))  # not callable
    with pytest.raises(TypeError):
        reg.establish((((JustTesting, str), lambda: None),), Token("bad"))
    assert len(reg) == 0

# Sessions

def test_session_is_per_thread():
    s = current_session()
    assert isinstance(s, Session)
    assert current_session() is s
    out = []
    t = threading.Thread(target=lambda: out.append(current_session()))
    t.start()
    t.join()
    assert out[0] is not s
    assert isinstance(out[0], Session)
