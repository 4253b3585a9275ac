"""
Shape algebra that reduces an N-dimensional contraction to a matrix product.

`dot(a, b)` contracts the last axis of `a` with

- axis 0 of `b` when ``b.ndim <= 2``;
- the second-to-last axis of `b` when ``b.ndim > 2``.

Both cases are normalised to a single ``(m, k) x (k, n)`` product:

    a        -> a_matrix (m, k),      m = a.size // k
    b        -> b_matrix (k, n),      n = b.size // k
    out      -> out_shape = a.shape[:-1] + <b's free axes>

For ``b.ndim > 2`` the last two axes of `b` are swapped so the contracted
axis comes last, every other axis is flattened into one leading dimension
and the result is transposed, leaving the contraction size first. Free axes
of `b` keep their relative order: ``b.shape[:-2] + b.shape[-1:]``.

The reshapes and transposes go through the differentiable routines so
gradients flow from the matrices back to the original operands.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...domain._errors import DimensionError
from ..array._array import Array
from ._manipulation import reshape, transpose


@dataclass(frozen=True)
class DotOperands:
    """
    Matrix view of a contraction.

    Attributes
    ----------
    a_matrix, b_matrix : Array or None
        ``(m, k)`` and ``(k, n)`` operands; None when ``k == 0`` (nothing to
        compute).
    out_shape : tuple[int, ...]
        Shape of the contraction result.
    k, m, n : int
        Contraction size and the matrix dimensions.
    """

    a_matrix: Optional[Array]
    b_matrix: Optional[Array]
    out_shape: tuple[int, ...]
    k: int
    m: int
    n: int


def dot_output_shape(a_shape: tuple[int, ...], b_shape: tuple[int, ...]) -> tuple[int, ...]:
    """Result shape of contracting `a_shape` with `b_shape` (both ndim >= 1)."""
    if len(b_shape) > 2:
        return tuple(a_shape[:-1]) + tuple(b_shape[:-2]) + tuple(b_shape[-1:])
    return tuple(a_shape[:-1]) + tuple(b_shape[1:])


def _prod(shape: tuple[int, ...]) -> int:
    n = 1
    for d in shape:
        n *= int(d)
    return n


def normalize_dot_operands(a: Array, b: Array) -> DotOperands:
    """
    Reshape `a` and `b` (both at least 1-D) into a matrix product.

    Raises
    ------
    DimensionError
        If the contracted dimensions of `a` and `b` differ.
    """
    if a.ndim == 0 or b.ndim == 0:
        raise DimensionError("normalize_dot_operands requires operands with ndim >= 1")

    out_shape = dot_output_shape(a.shape, b.shape)
    k = a.shape[-1]

    if b.ndim > 2:
        axes = tuple(range(b.ndim - 2)) + (b.ndim - 1, b.ndim - 2)
        swapped = transpose(b, axes)
        lead = _prod(swapped.shape[:-1])
        modified_b = transpose(reshape(swapped, (lead, swapped.shape[-1])))
    else:
        modified_b = b

    if modified_b.shape[0] != k:
        raise DimensionError(
            f"Axis dimension mismatch: a.shape={a.shape}, b.shape={b.shape}"
        )
    if k == 0:
        return DotOperands(None, None, out_shape, 0, 0, 0)

    m = a.size // k
    n = b.size // k
    return DotOperands(
        a_matrix=reshape(a, (m, k)),
        b_matrix=reshape(modified_b, (k, n)),
        out_shape=out_shape,
        k=k,
        m=m,
        n=n,
    )
