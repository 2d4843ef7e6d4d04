# -*- coding: utf-8 -*
"""Resumable conditions and restarts for Python, in the style of Common Lisp.

See ``dir(resumable)`` and submodule docstrings for more. Start from
``resumable.conditions``.
"""

__version__ = '0.1.0'

from .conditions import *  # noqa: F401, F403
from .excutil import *  # noqa: F401, F403
from .markers import *  # noqa: F401, F403
from .registry import *  # noqa: F401, F403
from .scopes import *  # noqa: F401, F403
