"""
KeyLA: differentiable linear algebra on NumPy arrays.

Commonly used names are re-exported here; the linear-algebra primitives are
also available from `keyla.linalg`.
"""

import logging

from .domain._errors import (
    DeviceMismatchError,
    DeviceNotSupportedError,
    DimensionError,
    GradientError,
    KeyLAError,
)
from .domain.device._device import Device
from .infrastructure.array._array import Array
from .infrastructure.graph._backprop_mode import (
    force_backprop_mode,
    is_backprop_enabled,
    no_backprop_mode,
)
from .infrastructure.graph._backward import backward
from .infrastructure.graph._graph import GraphId, get_default_graph, graph_scope
from .infrastructure.routines._creation import (
    array,
    eye,
    full,
    ones,
    ones_like,
    zeros,
    zeros_like,
)
from .infrastructure.routines._linalg import dot, eigh, eigvalsh

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Array",
    "Device",
    "DeviceMismatchError",
    "DeviceNotSupportedError",
    "DimensionError",
    "GradientError",
    "GraphId",
    "KeyLAError",
    "array",
    "backward",
    "dot",
    "eigh",
    "eigvalsh",
    "eye",
    "force_backprop_mode",
    "full",
    "get_default_graph",
    "graph_scope",
    "is_backprop_enabled",
    "no_backprop_mode",
    "ones",
    "ones_like",
    "zeros",
    "zeros_like",
]
