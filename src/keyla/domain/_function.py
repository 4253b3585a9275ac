"""
Backward-function interface definitions.

A differentiable primitive in KeyLA does not subclass anything. Instead, while
running its forward computation it declares, through a `BackwardBuilder`, one
or more *backward functions*: plain callables that receive a backward
context and write the gradient(s) for the inputs they were defined for.

This module types that contract so that the builder, the context and the
primitives agree on it without importing each other:

- `IBackwardContext`: what a backward function may read and write.
- `BackwardFunction`: the callable signature itself.

Backward functions should capture only what they need (retention tokens,
dtypes, shapes) rather than forward-time arrays, so that the forward frame
is not kept alive by the graph.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from ._array import IArray


@runtime_checkable
class IBackwardContext(Protocol):
    """
    Context handed to a backward function when the traversal reaches its
    operation record.
    """

    def output_grad(self, index: int = 0) -> Optional[IArray]:
        """
        Return the downstream gradient of output `index`.

        Returns None when no gradient flows into that output; callers treat
        it as an implicit zero.
        """
        ...

    def get_retained_input(self, token: Any) -> IArray:
        """Resolve a token returned by `BackwardBuilder.retain_input`."""
        ...

    def get_retained_output(self, token: Any) -> IArray:
        """Resolve a token returned by `BackwardBuilder.retain_output`."""
        ...

    def set_input_grad(self, index: int, grad: Optional[IArray]) -> None:
        """Store the gradient for input `index` of the operation."""
        ...


BackwardFunction = Callable[[IBackwardContext], None]
"""Signature of a backward function registered through `Target.define`."""
