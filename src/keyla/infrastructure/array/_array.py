"""
Concrete Array implementation (NumPy storage) with multi-graph autograd state.

An `Array` is an immutable handle to a NumPy buffer. Storage is kept
read-only; every operation returns a new array, and handles produced by
reshapes or transposes may share memory with their source.

Autograd state is held per graph:

- `_nodes[graph]` is the array's `ArrayNode` in that graph (absent when the
  array does not take part in it);
- `_grads[graph]` is the gradient accumulated into the array by a backward
  pass over that graph.

Keeping one entry per `GraphId` lets independent differentiation passes
share arrays without touching each other's bookkeeping.

Arithmetic operators and shape methods are thin wrappers around the
routines in `keyla.infrastructure.routines`; the routines define the
gradient rules.
"""

from __future__ import annotations

from typing import Any, Optional, Union

import numpy as np

from ...domain._array import IArray
from ...domain.device._device import Device
from ..graph._graph import GraphId, resolve_graph
from ..graph._nodes import ArrayNode

Number = Union[int, float, bool]


class Array(IArray):
    """
    Immutable multidimensional array.

    Parameters
    ----------
    data : np.ndarray
        Buffer to wrap. It is not copied; a read-only view is stored.
    device : Device, optional
        Device affinity. Defaults to the configured default device.

    Notes
    -----
    Prefer the factories (`array`, `zeros`, `Array._from_numpy`) over the
    constructor in user code: `_from_numpy` copies the input so later writes
    to the caller's buffer cannot leak into the array.
    """

    def __init__(self, data: np.ndarray, device: Optional[Device] = None) -> None:
        if not isinstance(data, np.ndarray):
            raise TypeError(f"Array expects a numpy.ndarray, got {type(data)!r}")
        if device is None:
            from .._config import get_config

            device = get_config().default_device

        view = data.view()
        view.flags.writeable = False
        self._data = view
        self._device = device
        self._nodes: dict[GraphId, ArrayNode] = {}
        self._grads: dict[GraphId, "Array"] = {}

    @classmethod
    def _wrap(cls, data: np.ndarray, device: Device) -> "Array":
        """Wrap a freshly computed buffer without copying."""
        return cls(np.asarray(data), device)

    @staticmethod
    def _from_numpy(
        arr: Any,
        *,
        device: Optional[Device] = None,
        dtype: Any = None,
        requires_grad: bool = False,
    ) -> "Array":
        """
        Create an array holding a copy of `arr`.

        Parameters
        ----------
        arr : array_like
            Source data.
        device : Device, optional
            Device affinity.
        dtype : dtype, optional
            Element dtype; inferred by NumPy when omitted.
        requires_grad : bool, optional
            Mark the result as a leaf of the default graph.
        """
        if isinstance(arr, Array):
            device = arr.device if device is None else device
            arr = arr._data
        out = Array(np.array(arr, dtype=dtype, copy=True), device)
        if requires_grad:
            out.require_grad()
        return out

    def __repr__(self) -> str:
        graphs = ", ".join(g.name for g in self._nodes)
        suffix = f", graphs=[{graphs}]" if graphs else ""
        return (
            f"Array(shape={self.shape}, device={self._device}, "
            f"dtype={self._data.dtype}{suffix})"
        )

    # ------------------------------------------------------------------
    # Core properties
    # ------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(int(d) for d in self._data.shape)

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def size(self) -> int:
        return int(self._data.size)

    def numel(self) -> int:
        return self.size

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def device(self) -> Device:
        return self._device

    @property
    def data(self) -> np.ndarray:
        """Read-only view of the underlying buffer."""
        return self._data

    def to_numpy(self) -> np.ndarray:
        """Return a writable host copy of the data."""
        return np.array(self._data, copy=True)

    def item(self) -> Any:
        if self.size != 1:
            raise ValueError(
                f"item() requires an array with exactly one element, got shape={self.shape}"
            )
        return self._data.reshape(()).item()

    # ------------------------------------------------------------------
    # Graph bookkeeping
    # ------------------------------------------------------------------
    def _get_node(self, graph: GraphId) -> Optional[ArrayNode]:
        return self._nodes.get(graph)

    def _set_node(self, graph: GraphId, node: ArrayNode) -> None:
        self._nodes[graph] = node

    def _graph_ids(self) -> tuple[GraphId, ...]:
        return tuple(self._nodes)

    def require_grad(self, graph: Optional[GraphId] = None) -> "Array":
        """
        Make this array a leaf of `graph`.

        Raises
        ------
        GradientError
            If the array already belongs to `graph`.
        """
        import weakref

        from ...domain._errors import GradientError

        g = resolve_graph(graph)
        if g in self._nodes:
            raise GradientError(f"Array already requires grad in graph {g.name!r}.")
        self._nodes[g] = ArrayNode(
            graph=g,
            shape=self.shape,
            dtype=self.dtype,
            _array_ref=weakref.ref(self),
        )
        return self

    def is_grad_required(self, graph: Optional[GraphId] = None) -> bool:
        return resolve_graph(graph) in self._nodes

    def is_backprop_required(self, graph: Optional[GraphId] = None) -> bool:
        """True if the array is in `graph` and recording is currently enabled."""
        from ..graph._backprop_mode import is_backprop_enabled

        return is_backprop_enabled() and self.is_grad_required(graph)

    @property
    def requires_grad(self) -> bool:
        return self.is_grad_required()

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        g = resolve_graph(None)
        if value and g not in self._nodes:
            self.require_grad(g)
        elif not value:
            self._nodes.pop(g, None)
            self._grads.pop(g, None)

    def get_grad(self, graph: Optional[GraphId] = None) -> Optional["Array"]:
        return self._grads.get(resolve_graph(graph))

    def set_grad(self, grad: Optional["Array"], graph: Optional[GraphId] = None) -> None:
        g = resolve_graph(graph)
        if grad is None:
            self._grads.pop(g, None)
            return
        if not isinstance(grad, Array):
            raise TypeError(f"grad must be an Array, got {type(grad)!r}")
        if grad.shape != self.shape:
            raise ValueError(f"Grad shape mismatch: {grad.shape} vs {self.shape}")
        self._grads[g] = grad

    @property
    def grad(self) -> Optional["Array"]:
        return self.get_grad()

    def cleargrad(self, graph: Optional[GraphId] = None) -> None:
        self._grads.pop(resolve_graph(graph), None)

    def zero_grad(self) -> None:
        self.cleargrad()

    def _accumulate_grad(self, g: "Array", graph: GraphId) -> None:
        prev = self._grads.get(graph)
        if prev is None:
            self._grads[graph] = g
            return
        if prev.shape != g.shape:
            raise ValueError(f"Grad shape mismatch: {prev.shape} vs {g.shape}")
        self._grads[graph] = prev + g

    def backward(
        self,
        grad_out: Optional["Array"] = None,
        graph: Optional[GraphId] = None,
        *,
        enable_double_backprop: bool = False,
    ) -> None:
        """
        Backpropagate from this array.

        Parameters
        ----------
        grad_out : Array, optional
            Gradient w.r.t. this array. If omitted, this array must be a
            scalar (shape == ()) and the gradient is assumed to be 1.
        graph : GraphId, optional
            Graph to traverse; defaults to the default graph.
        enable_double_backprop : bool, optional
            Keep graph history on the produced gradients.
        """
        from ..graph._backward import backward

        backward(
            self,
            grad_out,
            graph,
            enable_double_backprop=enable_double_backprop,
        )

    # ------------------------------------------------------------------
    # Shape / dtype
    # ------------------------------------------------------------------
    def reshape(self, *shape) -> "Array":
        from ..routines._manipulation import reshape

        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            shape = tuple(shape[0])
        return reshape(self, shape)

    def transpose(self, axes: Optional[tuple[int, ...]] = None) -> "Array":
        from ..routines._manipulation import transpose

        return transpose(self, axes)

    @property
    def T(self) -> "Array":
        return self.transpose()

    def astype(self, dtype: Any) -> "Array":
        from ..routines._manipulation import astype

        return astype(self, dtype)

    def sum(self, axis=None, keepdims: bool = False) -> "Array":
        from ..routines._arithmetic import sum as _sum

        return _sum(self, axis=axis, keepdims=keepdims)

    def dot(self, other: "Array", out_dtype: Any = None) -> "Array":
        from ..routines._linalg import dot

        return dot(self, other, out_dtype)

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------
    def __add__(self, other: Union["Array", Number]) -> "Array":
        from ..routines._arithmetic import add

        return add(self, other)

    def __radd__(self, other: Number) -> "Array":
        from ..routines._arithmetic import add

        return add(other, self)

    def __sub__(self, other: Union["Array", Number]) -> "Array":
        from ..routines._arithmetic import subtract

        return subtract(self, other)

    def __rsub__(self, other: Number) -> "Array":
        from ..routines._arithmetic import subtract

        return subtract(other, self)

    def __mul__(self, other: Union["Array", Number]) -> "Array":
        from ..routines._arithmetic import multiply

        return multiply(self, other)

    def __rmul__(self, other: Number) -> "Array":
        from ..routines._arithmetic import multiply

        return multiply(other, self)

    def __truediv__(self, other: Union["Array", Number]) -> "Array":
        from ..routines._arithmetic import divide

        return divide(self, other)

    def __rtruediv__(self, other: Number) -> "Array":
        from ..routines._arithmetic import divide

        return divide(other, self)

    def __neg__(self) -> "Array":
        from ..routines._arithmetic import negative

        return negative(self)

    def __matmul__(self, other: "Array") -> "Array":
        if not isinstance(other, Array):
            raise TypeError(f"@ only supports Array operands, got {type(other)!r}")
        return self.dot(other)
