"""
Array creation routines.

Created arrays are leaves: they belong to no graph until `require_grad` is
called on them. Unspecified dtypes and devices fall back to the values in
`keyla.infrastructure._config`.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

import numpy as np

from ...domain.device._device import Device
from .._config import get_config
from ..array._array import Array

ShapeLike = Union[int, Sequence[int]]


def _device(device: Optional[Union[Device, str]]) -> Device:
    if device is None:
        return get_config().default_device
    if isinstance(device, str):
        return Device(device)
    return device


def _dtype(dtype: Any) -> np.dtype:
    return get_config().default_dtype if dtype is None else np.dtype(dtype)


def _shape(shape: ShapeLike) -> tuple[int, ...]:
    if isinstance(shape, int):
        return (shape,)
    return tuple(int(d) for d in shape)


def array(
    obj: Any,
    dtype: Any = None,
    device: Optional[Union[Device, str]] = None,
    *,
    requires_grad: bool = False,
) -> Array:
    """
    Create an array holding a copy of `obj`.

    Unlike the other factories, a missing `dtype` is inferred from `obj`
    (NumPy rules) rather than taken from the configuration.
    """
    return Array._from_numpy(
        obj, device=_device(device), dtype=dtype, requires_grad=requires_grad
    )


def full(
    shape: ShapeLike,
    fill_value: Any,
    dtype: Any = None,
    device: Optional[Union[Device, str]] = None,
) -> Array:
    return Array._wrap(
        np.full(_shape(shape), fill_value, dtype=_dtype(dtype)), _device(device)
    )


def zeros(
    shape: ShapeLike, dtype: Any = None, device: Optional[Union[Device, str]] = None
) -> Array:
    return Array._wrap(np.zeros(_shape(shape), dtype=_dtype(dtype)), _device(device))


def ones(
    shape: ShapeLike, dtype: Any = None, device: Optional[Union[Device, str]] = None
) -> Array:
    return Array._wrap(np.ones(_shape(shape), dtype=_dtype(dtype)), _device(device))


def zeros_like(a: Array, dtype: Any = None) -> Array:
    return zeros(a.shape, a.dtype if dtype is None else dtype, a.device)


def ones_like(a: Array, dtype: Any = None) -> Array:
    return ones(a.shape, a.dtype if dtype is None else dtype, a.device)


def eye(
    n: int,
    m: Optional[int] = None,
    k: int = 0,
    dtype: Any = None,
    device: Optional[Union[Device, str]] = None,
) -> Array:
    """
    2-D array with ones on the `k`-th diagonal and zeros elsewhere.

    Not differentiable; typically used as a mask or a constant.
    """
    return Array._wrap(
        np.eye(int(n), None if m is None else int(m), int(k), dtype=_dtype(dtype)),
        _device(device),
    )
