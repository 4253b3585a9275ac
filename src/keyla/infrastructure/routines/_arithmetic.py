"""
Elementwise arithmetic and reductions.

Binary routines accept Arrays or Python scalars, broadcast under NumPy
rules and reduce each input gradient back to its operand's shape with
`sum_to`. Scalars are lifted to 0-d arrays that belong to no graph, so they
never receive gradients.

Autograd
--------
    add:        dx1 = g,            dx2 = g
    subtract:   dx1 = g,            dx2 = -g
    multiply:   dx1 = g * x2,       dx2 = g * x1
    divide:     dx1 = g / x2,       dx2 = -g * x1 / x2^2
    negative:   dx  = -g
    reciprocal: dx  = -g * out^2
    sum:        dx  = broadcast(g)
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from ...domain._errors import DimensionError
from ..array._array import Array
from ..graph._backward_builder import BackwardBuilder
from ._manipulation import astype, broadcast_to, reshape, sum_to
from ._type_util import as_array, check_same_device, result_type

Number = Union[int, float, bool]


def _lift_pair(
    x1: Union[Array, Number], x2: Union[Array, Number]
) -> tuple[Array, Array]:
    if isinstance(x1, Array):
        x2 = as_array(x2, x1)
    elif isinstance(x2, Array):
        x1 = as_array(x1, x2)
    else:
        raise TypeError("at least one operand must be an Array")
    check_same_device(x1, x2)
    return x1, x2


def _to_input(g: Array, shape: tuple[int, ...], dtype: np.dtype) -> Array:
    """Reduce a broadcast gradient to an input's shape and dtype."""
    g = sum_to(g, shape)
    if g.dtype != dtype and dtype.kind in "fc":
        g = astype(g, dtype)
    return g


def _broadcast_shape(x1: Array, x2: Array) -> None:
    try:
        np.broadcast_shapes(x1.shape, x2.shape)
    except ValueError as e:
        raise DimensionError(f"Shape mismatch: {x1.shape} vs {x2.shape}") from e


def add(x1: Union[Array, Number], x2: Union[Array, Number]) -> Array:
    x1, x2 = _lift_pair(x1, x2)
    _broadcast_shape(x1, x2)
    out = Array._wrap(
        np.add(x1.data, x2.data, dtype=result_type(x1, x2)), x1.device
    )

    bb = BackwardBuilder("add", (x1, x2), out)
    x1_meta, x2_meta = (x1.shape, x1.dtype), (x2.shape, x2.dtype)
    if bt := bb.create_target(0):
        bt.define(
            lambda bctx: bctx.set_input_grad(0, _to_input(bctx.output_grad(), *x1_meta))
        )
    if bt := bb.create_target(1):
        bt.define(
            lambda bctx: bctx.set_input_grad(1, _to_input(bctx.output_grad(), *x2_meta))
        )
    bb.finalize()
    return out


def subtract(x1: Union[Array, Number], x2: Union[Array, Number]) -> Array:
    x1, x2 = _lift_pair(x1, x2)
    _broadcast_shape(x1, x2)
    out = Array._wrap(
        np.subtract(x1.data, x2.data, dtype=result_type(x1, x2)), x1.device
    )

    bb = BackwardBuilder("subtract", (x1, x2), out)
    x1_meta, x2_meta = (x1.shape, x1.dtype), (x2.shape, x2.dtype)
    if bt := bb.create_target(0):
        bt.define(
            lambda bctx: bctx.set_input_grad(0, _to_input(bctx.output_grad(), *x1_meta))
        )
    if bt := bb.create_target(1):
        bt.define(
            lambda bctx: bctx.set_input_grad(1, _to_input(-bctx.output_grad(), *x2_meta))
        )
    bb.finalize()
    return out


def multiply(x1: Union[Array, Number], x2: Union[Array, Number]) -> Array:
    x1, x2 = _lift_pair(x1, x2)
    _broadcast_shape(x1, x2)
    out = Array._wrap(
        np.multiply(x1.data, x2.data, dtype=result_type(x1, x2)), x1.device
    )

    bb = BackwardBuilder("multiply", (x1, x2), out)
    x1_meta, x2_meta = (x1.shape, x1.dtype), (x2.shape, x2.dtype)
    if bt := bb.create_target(0):
        x2_tok = bb.retain_input(1)

        def backward_x1(bctx) -> None:
            other = bctx.get_retained_input(x2_tok)
            bctx.set_input_grad(0, _to_input(bctx.output_grad() * other, *x1_meta))

        bt.define(backward_x1)
    if bt := bb.create_target(1):
        x1_tok = bb.retain_input(0)

        def backward_x2(bctx) -> None:
            other = bctx.get_retained_input(x1_tok)
            bctx.set_input_grad(1, _to_input(bctx.output_grad() * other, *x2_meta))

        bt.define(backward_x2)
    bb.finalize()
    return out


def divide(x1: Union[Array, Number], x2: Union[Array, Number]) -> Array:
    x1, x2 = _lift_pair(x1, x2)
    _broadcast_shape(x1, x2)
    dtype = result_type(x1, x2)
    if dtype.kind not in "fc":
        dtype = np.result_type(dtype, np.float64)
    out = Array._wrap(np.true_divide(x1.data, x2.data, dtype=dtype), x1.device)

    bb = BackwardBuilder("divide", (x1, x2), out)
    x1_meta, x2_meta = (x1.shape, x1.dtype), (x2.shape, x2.dtype)
    x2_tok = bb.retain_input(1)
    if bt := bb.create_target(0):

        def backward_x1(bctx) -> None:
            den = bctx.get_retained_input(x2_tok)
            bctx.set_input_grad(0, _to_input(bctx.output_grad() / den, *x1_meta))

        bt.define(backward_x1)
    if bt := bb.create_target(1):
        x1_tok = bb.retain_input(0)

        def backward_x2(bctx) -> None:
            num = bctx.get_retained_input(x1_tok)
            den = bctx.get_retained_input(x2_tok)
            g = -bctx.output_grad() * num / (den * den)
            bctx.set_input_grad(1, _to_input(g, *x2_meta))

        bt.define(backward_x2)
    bb.finalize()
    return out


def negative(x: Array) -> Array:
    out = Array._wrap(np.negative(x.data), x.device)

    bb = BackwardBuilder("negative", x, out)
    if bt := bb.create_target(0):

        def backward_fn(bctx) -> None:
            bctx.input_grad = -bctx.output_grad()

        bt.define(backward_fn)
    bb.finalize()
    return out


def reciprocal(x: Array) -> Array:
    """Elementwise ``1 / x``; zeros map to ``inf`` and infinities to zero."""
    with np.errstate(divide="ignore"):
        out = Array._wrap(np.reciprocal(x.data), x.device)

    bb = BackwardBuilder("reciprocal", x, out)
    if bt := bb.create_target(0):
        out_tok = bb.retain_output(0)

        def backward_fn(bctx) -> None:
            r = bctx.get_retained_output(out_tok)
            bctx.input_grad = -bctx.output_grad() * r * r

        bt.define(backward_fn)
    bb.finalize()
    return out


def sum(
    a: Array,
    axis: Optional[Union[int, Sequence[int]]] = None,
    keepdims: bool = False,
) -> Array:
    """Sum of elements over `axis` (all axes when None)."""
    if axis is None:
        axes = tuple(range(a.ndim))
    elif isinstance(axis, int):
        axes = (axis,)
    else:
        axes = tuple(axis)
    axes = tuple(ax % a.ndim if a.ndim else ax for ax in axes)
    out = Array._wrap(
        np.asarray(np.sum(a.data, axis=axes, keepdims=keepdims)), a.device
    )

    bb = BackwardBuilder("sum", a, out)
    if bt := bb.create_target(0):
        in_shape = a.shape
        kept_shape = tuple(1 if i in axes else d for i, d in enumerate(in_shape))

        def backward_fn(bctx) -> None:
            g = reshape(bctx.output_grad(), kept_shape)
            bctx.input_grad = broadcast_to(g, in_shape)

        bt.define(backward_fn)
    bb.finalize()
    return out
