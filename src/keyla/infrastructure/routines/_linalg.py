"""
Differentiable linear-algebra primitives: `dot`, `eigh` and `eigvalsh`.

Each primitive runs its numeric kernel through `Backend` inside
`no_backprop_mode()` and then registers a closed-form backward rule with
`BackwardBuilder`. Backward rules are written with the same differentiable
routines (including `dot` itself), so gradients of gradients are available
when the backward pass is run with ``enable_double_backprop=True``.

Autograd
--------
dot (on the normalised ``(m, k) x (k, n)`` matrices):
    dA = dot(gout, B^T, a.dtype)
    dB = dot(A^T, gout, b.dtype)

eigh (``a = V diag(w) V^T``):
    F[i, j] = 1 / (w[j] - w[i])  for i != j,  F[i, i] = 0
    dA = V (F * (V^T gV) + diag(gw)) V^T
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np

from ...domain._errors import DimensionError
from ..array._array import Array
from ..graph._backprop_mode import no_backprop_mode
from ..graph._backward_builder import BackwardBuilder
from ..kernels import _dot_cpu  # noqa: F401  registers the CPU kernel
from ..kernels._base import get_backend
from ..kernels._syevd_cpu import UPLO_VALUES
from ._arithmetic import multiply, reciprocal
from ._creation import eye, zeros, zeros_like
from ._dot_shape import normalize_dot_operands
from ._indexing import diag, where
from ._manipulation import expand_dims, reshape, transpose
from ._type_util import check_same_device, result_type

logger = logging.getLogger(__name__)


def dot(a: Array, b: Array, out_dtype: Optional[Any] = None) -> Array:
    """
    Generalised dot product.

    The last axis of `a` is contracted with axis 0 of `b` when `b` is 1-D or
    2-D, and with the second-to-last axis of `b` otherwise, so
    ``dot((2, 3), (4, 3, 5))`` has shape ``(2, 4, 5)``. A 0-D operand turns
    the call into an elementwise product.

    Parameters
    ----------
    a, b : Array
        Operands on the same device.
    out_dtype : dtype, optional
        Dtype of the result. Defaults to the promoted dtype of `a` and `b`.

    Returns
    -------
    Array
        The contraction, of shape ``a.shape[:-1] + b_free_axes``.

    Raises
    ------
    DimensionError
        If the contracted dimensions differ. Raised before any kernel runs.
    DeviceMismatchError
        If `a` and `b` are on different devices.
    DeviceNotSupportedError
        If no matrix-product kernel is registered for the device.
    """
    if a.ndim == 0 or b.ndim == 0:
        return multiply(a, b)

    check_same_device(a, b)
    out_dtype = result_type(a, b) if out_dtype is None else np.dtype(out_dtype)

    ops = normalize_dot_operands(a, b)
    if ops.k == 0:
        return zeros(ops.out_shape, dtype=out_dtype, device=a.device)

    a_matrix, b_matrix = ops.a_matrix, ops.b_matrix
    with no_backprop_mode():
        out_matrix = get_backend(a.device).dot(a_matrix, b_matrix, out_dtype)

    bb = BackwardBuilder("dot", (a_matrix, b_matrix), out_matrix)
    if bt := bb.create_target(0):
        b_matrix_tok = bb.retain_input(1)
        a_dtype = a.dtype

        def backward_a(bctx) -> None:
            b_mat = bctx.get_retained_input(b_matrix_tok)
            bctx.input_grad = dot(bctx.output_grad(), transpose(b_mat), a_dtype)

        bt.define(backward_a)
    if bt := bb.create_target(1):
        a_matrix_tok = bb.retain_input(0)
        b_dtype = b.dtype

        def backward_b(bctx) -> None:
            a_mat = bctx.get_retained_input(a_matrix_tok)
            bctx.input_grad = dot(transpose(a_mat), bctx.output_grad(), b_dtype)

        bt.define(backward_b)
    bb.finalize()

    return reshape(out_matrix, ops.out_shape)


def _check_symmetric_input(a: Array, uplo: str, op: str) -> None:
    if a.ndim != 2:
        raise DimensionError(f"{op} requires a 2D array, got shape={a.shape}")
    if a.shape[0] != a.shape[1]:
        raise DimensionError(f"{op} requires a square matrix, got shape={a.shape}")
    if uplo not in UPLO_VALUES:
        raise ValueError(f"uplo must be 'U' or 'L', got {uplo!r}")


def eigh(a: Array, uplo: str = "L") -> tuple[Array, Array]:
    """
    Eigendecomposition of a real symmetric matrix.

    Parameters
    ----------
    a : Array
        Square 2-D array. Only the triangle selected by `uplo` is read; the
        other triangle is assumed to mirror it.
    uplo : {"L", "U"}, optional
        "L" reads the lower triangle (default), "U" the upper triangle.

    Returns
    -------
    w : Array
        Eigenvalues in ascending order, shape ``(n,)``.
    v : Array
        Matrix of shape ``(n, n)`` whose column ``v[:, i]`` is the unit
        eigenvector for ``w[i]``.

    Raises
    ------
    DimensionError
        If `a` is not 2-D or not square.
    ValueError
        If `uplo` is not "U" or "L".

    Notes
    -----
    The gradient divides by pairwise eigenvalue differences. At points with
    exactly repeated eigenvalues it is undefined and yields ``inf``/``nan``
    entries; no attempt is made to regularise it.
    """
    _check_symmetric_input(a, uplo, "eigh")

    with no_backprop_mode():
        w, v = get_backend(a.device).syevd(a, uplo, True)

    bb = BackwardBuilder("eigh", a, (w, v))
    if bt := bb.create_target(0):
        bb.retain_input(0)
        w_tok = bb.retain_output(0)
        v_tok = bb.retain_output(1)

        def backward_fn(bctx) -> None:
            w_ = bctx.get_retained_output(w_tok)
            v_ = bctx.get_retained_output(v_tok)
            gw = bctx.output_grad(0)
            gv = bctx.output_grad(1)
            if gw is None:
                gw = zeros_like(w_)
            if gv is None:
                gv = zeros_like(v_)

            n = w_.shape[0]
            vt = transpose(v_)
            # F[i, j] = w[j] - w[i]; inf on the diagonal turns into zero below.
            f = expand_dims(w_, 0) - expand_dims(w_, 1)
            mask = eye(n, dtype=np.bool_, device=w_.device)
            f = reciprocal(where(mask, np.inf, f))

            inner = f * dot(vt, gv) + diag(gw)
            bctx.input_grad = dot(dot(v_, inner), vt)

        bt.define(backward_fn)
    bb.finalize()

    logger.debug("eigh n=%d uplo=%s", a.shape[0], uplo)
    return w, v


def eigvalsh(a: Array, uplo: str = "L") -> Array:
    """
    Eigenvalues of a real symmetric matrix in ascending order.

    Accepts the same arguments and raises the same errors as `eigh`. No
    gradient is recorded: the result is not part of any graph.
    """
    _check_symmetric_input(a, uplo, "eigvalsh")

    with no_backprop_mode():
        w, _ = get_backend(a.device).syevd(a, uplo, False)
    return w
