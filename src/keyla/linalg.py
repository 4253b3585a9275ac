"""
Differentiable linear-algebra routines.

    from keyla.linalg import dot, eigh, eigvalsh
"""

from .infrastructure.routines._linalg import dot, eigh, eigvalsh

__all__ = ["dot", "eigh", "eigvalsh"]
