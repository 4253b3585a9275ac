"""
Device abstraction utilities.

This module defines lightweight abstractions for representing computation
devices in a framework-agnostic way:

- `DeviceType`: an enumeration of supported device categories
- `Device`: a concrete device descriptor that validates and normalizes
  user-facing device strings such as "cpu" or "cuda:0"

Arrays carry a `Device` as their affinity. Kernels are dispatched on the
device *type*; whether a kernel exists for a given type is decided by the
kernel registry, not by this module.
"""

from enum import Enum
import re


class DeviceType(Enum):
    """
    Enumeration of supported device categories.

    Attributes
    ----------
    CPU : DeviceType
        Central Processing Unit.
    CUDA : DeviceType
        NVIDIA CUDA-enabled Graphics Processing Unit.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Concrete computation device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be either:
        - "cpu"
        - "cuda:<index>", where <index> is a non-negative integer

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.

    Notes
    -----
    Devices compare equal when both their type and index match, and are
    hashable so they can be used as dictionary keys.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    def __str__(self):
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self):
        return f"Device('{self}')"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return self.type is other.type and self.index == other.index

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """
        Check whether this device represents a CPU.
        """
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """
        Check whether this device represents a CUDA GPU.
        """
        return self.type is DeviceType.CUDA
