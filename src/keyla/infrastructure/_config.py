"""
Runtime configuration read from environment variables.

Recognised variables
--------------------
KEYLA_DEFAULT_DTYPE
    Element dtype used by creation routines when none is given
    (default ``float32``).
KEYLA_DEFAULT_DEVICE
    Device string used when none is given (default ``cpu``).
KEYLA_DEBUG
    Opt-in debug logging for graph construction and backward traversal.
    Unset, ``0``, empty and ``false`` (any case) mean off.

The configuration is read once and cached; `reload_config` re-reads it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

import numpy as np

from ..domain.device._device import Device

_FALSE_VALUES = ("0", "", "false", "False", "FALSE")


@dataclass(frozen=True)
class Config:
    """
    Immutable snapshot of KeyLA runtime settings.

    Attributes
    ----------
    default_dtype : np.dtype
        Dtype used when a creation routine is called without one.
    default_device : Device
        Device used when a creation routine is called without one.
    debug : bool
        Whether debug logging is enabled for the ``keyla`` logger.
    """

    default_dtype: np.dtype
    default_device: Device
    debug: bool


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Build a `Config` from an environment mapping.

    Parameters
    ----------
    environ : Mapping[str, str], optional
        Source of variables. Defaults to `os.environ`.

    Raises
    ------
    ValueError
        If the dtype or device string is not understood.
    """
    env = os.environ if environ is None else environ

    dtype_name = env.get("KEYLA_DEFAULT_DTYPE", "float32")
    try:
        dtype = np.dtype(dtype_name)
    except TypeError as e:
        raise ValueError(f"Invalid KEYLA_DEFAULT_DTYPE={dtype_name!r}") from e

    device = Device(env.get("KEYLA_DEFAULT_DEVICE", "cpu"))
    debug = env.get("KEYLA_DEBUG", "0") not in _FALSE_VALUES

    return Config(default_dtype=dtype, default_device=device, debug=debug)


_CONFIG: Optional[Config] = None


def _apply(config: Config) -> None:
    logger = logging.getLogger("keyla")
    logger.setLevel(logging.DEBUG if config.debug else logging.NOTSET)


def get_config() -> Config:
    """Return the cached configuration, loading it on first use."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
        _apply(_CONFIG)
    return _CONFIG


def reload_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Re-read the configuration and replace the cached snapshot."""
    global _CONFIG
    _CONFIG = load_config(environ)
    _apply(_CONFIG)
    return _CONFIG
