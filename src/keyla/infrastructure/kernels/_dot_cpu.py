"""
CPU matrix-product kernel (NumPy).
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from ...domain._errors import DimensionError
from ...domain.device._device import DeviceType
from ..array._array import Array
from ._base import Backend, kernel_control_path_manager, unsupported_kernel

logger = logging.getLogger(__name__)


@kernel_control_path_manager(Backend, Backend.dot, DeviceType.CPU, unsupported_kernel)
def dot_cpu(self: Backend, a: Array, b: Array, out_dtype: Any) -> Array:
    """
    Compute `a @ b` for 2-D arrays with NumPy and cast to `out_dtype`.
    """
    if a.ndim != 2 or b.ndim != 2:
        raise DimensionError(
            f"dot kernel requires 2D arrays, got {a.shape} and {b.shape}"
        )
    m, k1 = a.shape
    k2, n = b.shape
    if k1 != k2:
        raise DimensionError(f"dot kernel inner dimension mismatch: {a.shape} x {b.shape}")

    logger.debug("dot kernel (%d, %d) x (%d, %d) on %s", m, k1, k2, n, self.device)
    out = np.matmul(a.data, b.data).astype(np.dtype(out_dtype), copy=False)
    return Array._wrap(out, self.device)
