"""
Error types for KeyLA.

This module defines the exceptions raised by arrays, kernels and the
autograd graph. Every error derives from `KeyLAError` and additionally from
the built-in category that best describes it, so callers may catch either
the library-specific type or the familiar built-in one (e.g. `ValueError`
for bad shapes).

Errors are raised synchronously at the point of validation; no routine in
KeyLA catches or downgrades an error raised by a collaborator (such as a
NumPy `LinAlgError` from the eigensolver kernel).
"""


class KeyLAError(Exception):
    """Base class for all KeyLA errors."""


class DimensionError(KeyLAError, ValueError):
    """
    Raised when array dimensions are incompatible with an operation.

    Typical causes are a contraction-axis size mismatch in `dot`, or a
    non-2-D / non-square input given to the symmetric eigensolver.
    """


class DeviceNotSupportedError(KeyLAError, RuntimeError):
    """
    Raised when an operation is requested on a device backend that is not
    implemented.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted (e.g., "dot", "syevd").
    device : str
        String representation of the device on which the operation
        was attempted.
    """

    def __init__(self, op: str, device: str) -> None:
        """
        Initialize the DeviceNotSupportedError.

        Parameters
        ----------
        op : str
            The operation name that is not supported on the given device.
        device : str
            The device identifier (e.g., "cuda:0").
        """
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device


class DeviceMismatchError(KeyLAError, RuntimeError):
    """
    Raised when an operation is attempted between arrays on different devices.
    """

    def __init__(self, device_a: str, device_b: str) -> None:
        super().__init__(f"Device mismatch: '{device_a}' vs '{device_b}'.")
        self.device_a = device_a
        self.device_b = device_b


class GradientError(KeyLAError, RuntimeError):
    """
    Raised on misuse of the autograd machinery.

    Examples: calling `backward` on an array that has no node in the
    requested graph, a backward rule returning a gradient whose shape differs
    from its input, or finalizing a `BackwardBuilder` twice.
    """
