"""
Kernel boundary.

`Backend` is the only place numeric kernels are reached from. Its methods are
pure interface declarations: concrete implementations register themselves
per device type through `kernel_control_path_manager` (see `_dot_cpu` and
`_syevd_cpu`), and calling a kernel for a device type without a registered
implementation raises `DeviceNotSupportedError`.

Kernels have no knowledge of gradients. Callers wrap kernel invocations in
`no_backprop_mode()` and register backward rules themselves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...domain._errors import DeviceNotSupportedError
from ...domain.device._device import Device, DeviceType
from ...domain.utils._control_path import create_path_builder

if TYPE_CHECKING:
    from ..array._array import Array

# Control-path manager that dispatches Backend methods on `self.device_type`
kernel_control_path_manager = create_path_builder("device_type")


def unsupported_kernel(backend: "Backend", method) -> DeviceNotSupportedError:
    """Trap used for device types with no registered kernel."""
    return DeviceNotSupportedError(op=method.__name__, device=str(backend.device))


class Backend:
    """
    Kernel entry points for one device.

    Parameters
    ----------
    device : Device
        Device the kernels run on.
    """

    def __init__(self, device: Device) -> None:
        self.device = device

    @property
    def device_type(self) -> DeviceType:
        return self.device.type

    def __repr__(self) -> str:
        return f"Backend(device={self.device})"

    def dot(self, a: "Array", b: "Array", out_dtype: Any) -> "Array":
        """
        Matrix product of two 2-D arrays.

        Parameters
        ----------
        a : Array
            Left operand of shape (m, k).
        b : Array
            Right operand of shape (k, n).
        out_dtype : dtype
            Element dtype of the result.

        Returns
        -------
        Array
            Result of shape (m, n).

        Raises
        ------
        DimensionError
            If either operand is not 2-D or the inner dimensions differ.
        """
        raise DeviceNotSupportedError(op="dot", device=str(self.device))

    def syevd(
        self, a: "Array", uplo: str, compute_v: bool
    ) -> tuple["Array", "Array"]:
        """
        Symmetric eigendecomposition.

        Parameters
        ----------
        a : Array
            Square 2-D array. Only the triangle selected by `uplo` is read.
        uplo : str
            "U" to read the upper triangle, "L" to read the lower triangle.
        compute_v : bool
            Whether eigenvectors are wanted.

        Returns
        -------
        tuple[Array, Array]
            Eigenvalues in ascending order, and either the matrix whose
            columns are the eigenvectors or an empty placeholder when
            `compute_v` is False.

        Raises
        ------
        DimensionError
            If `a` is not 2-D or not square.
        ValueError
            If `uplo` is not "U" or "L".
        """
        raise DeviceNotSupportedError(op="syevd", device=str(self.device))


_BACKENDS: dict[Device, Backend] = {}


def get_backend(device: Device) -> Backend:
    """Return the (cached) backend for `device`."""
    # Registers the CPU kernels on first use.
    from . import _dot_cpu, _syevd_cpu  # noqa: F401

    backend = _BACKENDS.get(device)
    if backend is None:
        backend = _BACKENDS[device] = Backend(device)
    return backend
