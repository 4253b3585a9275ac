"""
Shape and dtype manipulation routines.

Every routine here is differentiable and records itself through
`BackwardBuilder`, with backward rules written in terms of these same
routines so they can be differentiated again.

Autograd
--------
- reshape / expand_dims : reshape the gradient back to the input shape
- transpose             : transpose the gradient with the inverse permutation
- broadcast_to          : sum the gradient back to the input shape (`sum_to`)
- sum_to                : broadcast the gradient back to the input shape
- astype                : cast the gradient back to the input dtype
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from ...domain._errors import DimensionError
from ..array._array import Array
from ..graph._backward_builder import BackwardBuilder


def _normalize_axis(axis: int, ndim: int) -> int:
    if not -ndim <= axis < ndim:
        raise DimensionError(f"axis {axis} is out of bounds for array of dimension {ndim}")
    return axis % ndim


def reshape(a: Array, shape: Sequence[int]) -> Array:
    """
    Return an array with the same data and a new shape (one entry may be -1).

    Raises
    ------
    DimensionError
        If the element count does not match.
    """
    shape = tuple(int(d) for d in shape)
    try:
        data = a.data.reshape(shape)
    except ValueError as e:
        raise DimensionError(f"Invalid reshape from {a.shape} to {shape}") from e
    out = Array._wrap(data, a.device)

    bb = BackwardBuilder("reshape", a, out)
    if bt := bb.create_target(0):
        in_shape = a.shape

        def backward_fn(bctx) -> None:
            bctx.input_grad = reshape(bctx.output_grad(), in_shape)

        bt.define(backward_fn)
    bb.finalize()
    return out


def transpose(a: Array, axes: Optional[Sequence[int]] = None) -> Array:
    """
    Permute the axes of `a`; reverses them when `axes` is None.
    """
    if axes is None:
        perm = tuple(reversed(range(a.ndim)))
    else:
        perm = tuple(_normalize_axis(int(ax), a.ndim) for ax in axes)
        if sorted(perm) != list(range(a.ndim)):
            raise DimensionError(f"axes {tuple(axes)} is not a permutation for ndim={a.ndim}")
    out = Array._wrap(a.data.transpose(perm), a.device)

    bb = BackwardBuilder("transpose", a, out)
    if bt := bb.create_target(0):
        inv = tuple(int(i) for i in np.argsort(perm))

        def backward_fn(bctx) -> None:
            bctx.input_grad = transpose(bctx.output_grad(), inv)

        bt.define(backward_fn)
    bb.finalize()
    return out


def expand_dims(a: Array, axis: int) -> Array:
    """Insert a size-1 axis at position `axis`."""
    axis = _normalize_axis(int(axis), a.ndim + 1)
    shape = a.shape[:axis] + (1,) + a.shape[axis:]
    return reshape(a, shape)


def broadcast_to(a: Array, shape: Sequence[int]) -> Array:
    """Broadcast `a` to `shape` under NumPy rules."""
    shape = tuple(int(d) for d in shape)
    try:
        data = np.broadcast_to(a.data, shape)
    except ValueError as e:
        raise DimensionError(f"Cannot broadcast {a.shape} to {shape}") from e
    out = Array._wrap(data, a.device)

    bb = BackwardBuilder("broadcast_to", a, out)
    if bt := bb.create_target(0):
        in_shape = a.shape

        def backward_fn(bctx) -> None:
            bctx.input_grad = sum_to(bctx.output_grad(), in_shape)

        bt.define(backward_fn)
    bb.finalize()
    return out


def _sum_to_reduce_axes(
    src_shape: tuple[int, ...], target_shape: tuple[int, ...]
) -> tuple[tuple[int, ...], int]:
    """
    Axes to sum (with keepdims) and the number of leading axes to drop when
    reducing `src_shape` to a broadcast-compatible `target_shape`.
    """
    if len(target_shape) > len(src_shape):
        raise DimensionError(
            f"target_shape rank {len(target_shape)} > src rank {len(src_shape)}"
        )
    pad = len(src_shape) - len(target_shape)
    padded = (1,) * pad + target_shape
    for i, (sd, td) in enumerate(zip(src_shape, padded)):
        if td not in (1, sd):
            raise DimensionError(
                f"Cannot sum_to from {src_shape} to {target_shape}: "
                f"dim mismatch at axis {i}: src={sd}, target={td}"
            )
    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src_shape, padded)) if td == 1 and sd != 1
    )
    return reduce_axes, pad


def sum_to(a: Array, shape: Sequence[int]) -> Array:
    """
    Sum-reduce `a` to `shape`; the inverse of `broadcast_to`.
    """
    shape = tuple(int(d) for d in shape)
    if a.shape == shape:
        return a
    reduce_axes, pad = _sum_to_reduce_axes(a.shape, shape)

    x = a.data
    if reduce_axes:
        x = np.sum(x, axis=reduce_axes, keepdims=True)
    x = x.reshape(shape)
    out = Array._wrap(np.ascontiguousarray(x, dtype=a.dtype), a.device)

    bb = BackwardBuilder("sum_to", a, out)
    if bt := bb.create_target(0):
        in_shape = a.shape

        def backward_fn(bctx) -> None:
            bctx.input_grad = broadcast_to(bctx.output_grad(), in_shape)

        bt.define(backward_fn)
    bb.finalize()
    return out


def astype(a: Array, dtype: Any) -> Array:
    """Cast `a` to `dtype`, returning a new handle even if the dtype matches."""
    dtype = np.dtype(dtype)
    out = Array._wrap(a.data.astype(dtype, copy=False), a.device)

    bb = BackwardBuilder("astype", a, out)
    if bt := bb.create_target(0):
        in_dtype = a.dtype

        def backward_fn(bctx) -> None:
            bctx.input_grad = astype(bctx.output_grad(), in_dtype)

        bt.define(backward_fn)
    bb.finalize()
    return out
