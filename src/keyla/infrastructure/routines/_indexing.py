"""
Selection and diagonal routines.

`where` is differentiable in its value operands only; the condition is a
boolean mask. `diag` embeds a vector on the main diagonal of a square matrix
or extracts the main diagonal of a matrix, and each direction's gradient is
the other direction.
"""

from __future__ import annotations

from typing import Union

import numpy as np

from ...domain._errors import DimensionError
from ..array._array import Array
from ..graph._backward_builder import BackwardBuilder
from ._manipulation import astype, sum_to
from ._type_util import check_same_device, result_type

Number = Union[int, float, bool]


def _lift(x: Union[Array, Number], dtype: np.dtype, like: Array) -> Array:
    if isinstance(x, Array):
        return x
    if isinstance(x, (bool, int, float)):
        return Array._wrap(np.asarray(x, dtype=dtype), like.device)
    raise TypeError(f"Unsupported operand type: {type(x)!r}")


def where(
    condition: Array, x: Union[Array, Number], y: Union[Array, Number]
) -> Array:
    """
    Elementwise selection: `x` where `condition` is true, `y` elsewhere.

    `x` and `y` may be Python scalars. Gradients flow to `x` through the true
    positions and to `y` through the false positions.
    """
    if not isinstance(condition, Array):
        raise TypeError("condition must be an Array")
    if condition.dtype != np.bool_:
        raise TypeError(f"condition must have bool dtype, got {condition.dtype}")

    dtype = result_type(*(v for v in (x, y)))
    x = _lift(x, dtype, condition)
    y = _lift(y, dtype, condition)
    check_same_device(condition, x, y)
    try:
        np.broadcast_shapes(condition.shape, x.shape, y.shape)
    except ValueError as e:
        raise DimensionError(
            f"Shape mismatch: {condition.shape}, {x.shape}, {y.shape}"
        ) from e

    out = Array._wrap(
        np.where(condition.data, x.data, y.data).astype(dtype, copy=False),
        condition.device,
    )

    bb = BackwardBuilder("where", (x, y), out)
    mask = condition
    if bt := bb.create_target(0):
        x_shape, x_dtype = x.shape, x.dtype

        def backward_x(bctx) -> None:
            g = where(mask, bctx.output_grad(), 0.0)
            bctx.set_input_grad(0, astype(sum_to(g, x_shape), x_dtype))

        bt.define(backward_x)
    if bt := bb.create_target(1):
        y_shape, y_dtype = y.shape, y.dtype

        def backward_y(bctx) -> None:
            g = where(mask, 0.0, bctx.output_grad())
            bctx.set_input_grad(1, astype(sum_to(g, y_shape), y_dtype))

        bt.define(backward_y)
    bb.finalize()
    return out


def diag(v: Array) -> Array:
    """
    Build a diagonal matrix from a 1-D array, or extract the main diagonal of
    a 2-D array.

    Raises
    ------
    DimensionError
        If `v` is neither 1-D nor 2-D.
    """
    if v.ndim == 1:
        n = v.shape[0]
        data = np.zeros((n, n), dtype=v.dtype)
        data[np.arange(n), np.arange(n)] = v.data
    elif v.ndim == 2:
        data = np.ascontiguousarray(np.diagonal(v.data))
    else:
        raise DimensionError(f"diag requires a 1D or 2D array, got shape={v.shape}")
    out = Array._wrap(data, v.device)

    bb = BackwardBuilder("diag", v, out)
    if bt := bb.create_target(0):
        in_shape = v.shape

        def backward_fn(bctx) -> None:
            g = bctx.output_grad()
            if len(in_shape) == 1:
                bctx.input_grad = diag(g)
            else:
                bctx.input_grad = _embed_diagonal(g, in_shape)

        bt.define(backward_fn)
    bb.finalize()
    return out


def _embed_diagonal(d: Array, shape: tuple[int, ...]) -> Array:
    """Place `d` on the main diagonal of a zero matrix of shape `shape`."""
    from ._creation import eye
    from ._linalg import dot

    rows, cols = shape
    k = d.shape[0]
    square = diag(d)
    if rows == cols:
        return square
    # eye(rows, k) @ D @ eye(k, cols) pads with zeros and stays differentiable.
    left = eye(rows, k, dtype=d.dtype, device=d.device)
    right = eye(k, cols, dtype=d.dtype, device=d.device)
    return dot(dot(left, square), right)
