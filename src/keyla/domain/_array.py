"""
Array interface definitions.

This module defines the domain-level interface for array-like objects using
structural typing. The interface captures the backend-agnostic properties
required for arrays to participate in kernels and computation graphs.

Notes
-----
Graph-related members take an optional `graph` argument. `None` always means
the process-wide default graph, so single-graph code never has to mention
graphs at all.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from .device._device_protocol import DeviceLike


@runtime_checkable
class IArray(Protocol):
    """
    Array interface.

    An `IArray` is an immutable handle to a multidimensional numeric buffer
    that may participate in zero or more computation graphs.
    """

    # ---------------------------------------------------------------------
    # Core identity / placement
    # ---------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        """Return the shape of the array."""
        ...

    @property
    def ndim(self) -> int:
        """Return the number of dimensions."""
        ...

    @property
    def size(self) -> int:
        """Return the total number of elements (0 if any dimension is 0)."""
        ...

    @property
    def dtype(self) -> Any:
        """Return the element dtype."""
        ...

    @property
    def device(self) -> DeviceLike:
        """Return the device this array is associated with."""
        ...

    # ---------------------------------------------------------------------
    # Autograd
    # ---------------------------------------------------------------------
    def is_grad_required(self, graph: Optional[Any] = None) -> bool:
        """Return True if this array has a node in `graph`."""
        ...

    def get_grad(self, graph: Optional[Any] = None) -> Optional["IArray"]:
        """Return the gradient accumulated for `graph`, if any."""
        ...

    def backward(
        self,
        grad_out: Optional["IArray"] = None,
        graph: Optional[Any] = None,
        *,
        enable_double_backprop: bool = False,
    ) -> None:
        """Backpropagate from this array through `graph`."""
        ...

    # ---------------------------------------------------------------------
    # Conversion
    # ---------------------------------------------------------------------
    def to_numpy(self) -> Any:
        """Return a host copy of the data as a NumPy ndarray."""
        ...
