"""
Dtype promotion and operand validation helpers shared by the routines.
"""

from __future__ import annotations

from typing import Any, Union

import numpy as np

from ...domain._errors import DeviceMismatchError
from ..array._array import Array

Number = Union[int, float, bool]


def result_type(*args: Union[Array, Number, np.dtype]) -> np.dtype:
    """
    NumPy promotion over arrays, dtypes and Python scalars.

    Python scalars are weakly typed: they do not widen a floating array's
    dtype (``float32 array * 2.0`` stays ``float32``).
    """
    arrays = [a.dtype for a in args if isinstance(a, Array)]
    dtypes = [np.dtype(a) for a in args if isinstance(a, (np.dtype, type))]
    scalars = [a for a in args if isinstance(a, (bool, int, float))]
    if not arrays and not dtypes:
        return np.result_type(*scalars)
    base = np.result_type(*arrays, *dtypes)
    for s in scalars:
        if not _is_weak(base, s):
            base = np.result_type(base, np.array(s).dtype)
    return base


def _is_weak(dtype: np.dtype, scalar: Any) -> bool:
    if isinstance(scalar, bool):
        return True
    if isinstance(scalar, int):
        return dtype.kind in "iuf"
    return dtype.kind == "f"


def check_same_device(*arrays: Array) -> None:
    """Raise `DeviceMismatchError` if the arrays live on different devices."""
    first = arrays[0]
    for other in arrays[1:]:
        if other.device != first.device:
            raise DeviceMismatchError(str(first.device), str(other.device))


def as_array(x: Union[Array, Number], like: Array) -> Array:
    """
    Convert an operand into an Array compatible with a reference array.

    Python scalars become 0-d arrays on `like`'s device with the dtype they
    would promote to against `like`.
    """
    if isinstance(x, Array):
        return x
    if isinstance(x, (bool, int, float)):
        dtype = result_type(like, x)
        return Array._wrap(np.asarray(x, dtype=dtype), like.device)
    raise TypeError(f"Unsupported operand type: {type(x)!r}")
