"""
CPU symmetric eigensolver kernel (NumPy / LAPACK ``syevd``).

Solver failures such as `numpy.linalg.LinAlgError` propagate unchanged.
"""

from __future__ import annotations

import logging

import numpy as np

from ...domain._errors import DimensionError
from ...domain.device._device import DeviceType
from ..array._array import Array
from ._base import Backend, kernel_control_path_manager, unsupported_kernel

logger = logging.getLogger(__name__)

UPLO_VALUES = ("U", "L")


@kernel_control_path_manager(Backend, Backend.syevd, DeviceType.CPU, unsupported_kernel)
def syevd_cpu(
    self: Backend, a: Array, uplo: str, compute_v: bool
) -> tuple[Array, Array]:
    """
    Eigendecomposition of a symmetric matrix reading only the `uplo` triangle.
    """
    if a.ndim != 2:
        raise DimensionError(f"syevd requires a 2D array, got shape={a.shape}")
    if a.shape[0] != a.shape[1]:
        raise DimensionError(f"syevd requires a square matrix, got shape={a.shape}")
    if uplo not in UPLO_VALUES:
        raise ValueError(f"uplo must be 'U' or 'L', got {uplo!r}")

    logger.debug("syevd kernel n=%d uplo=%s compute_v=%s", a.shape[0], uplo, compute_v)
    if compute_v:
        w, v = np.linalg.eigh(a.data, UPLO=uplo)
    else:
        w = np.linalg.eigvalsh(a.data, UPLO=uplo)
        v = np.empty((0,), dtype=w.dtype)
    return Array._wrap(w, self.device), Array._wrap(v, self.device)
