"""
Scoped suppression of graph recording.

`no_backprop_mode()` increments a thread-local depth counter on entry and
decrements it on exit, including exits by exception. While the counter is
positive, `BackwardBuilder` records nothing, so every array operation in the
scope behaves as if no input required a gradient.

Primitives use this around their kernel calls: only the hand-written
backward rule represents the primitive in the graph, never the kernel.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class _BackpropState(threading.local):
    def __init__(self) -> None:
        self.no_backprop_depth = 0


_state = _BackpropState()


def is_backprop_enabled() -> bool:
    """Return True unless the calling thread is inside a no-backprop scope."""
    return _state.no_backprop_depth == 0


def no_backprop_depth() -> int:
    """Return the current no-backprop nesting depth of the calling thread."""
    return _state.no_backprop_depth


@contextmanager
def no_backprop_mode() -> Iterator[None]:
    """Disable graph recording for the enclosed block."""
    _state.no_backprop_depth += 1
    try:
        yield
    finally:
        _state.no_backprop_depth -= 1


@contextmanager
def force_backprop_mode() -> Iterator[None]:
    """
    Re-enable graph recording inside an enclosing no-backprop scope.

    The saved depth is restored on exit.
    """
    saved = _state.no_backprop_depth
    _state.no_backprop_depth = 0
    try:
        yield
    finally:
        _state.no_backprop_depth = saved
