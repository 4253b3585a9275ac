"""
Computation-graph identifiers.

A `GraphId` names one computation graph. Arrays keep their autograd state in
dictionaries keyed by `GraphId`, so several unrelated differentiation passes
can run over the same arrays without interfering with each other.

`GraphId` compares by identity: two graphs created with the same name are
still distinct graphs.
"""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from typing import Iterator, Optional

_serial = itertools.count()


class GraphId:
    """
    Identity-hashable handle for a computation graph.

    Parameters
    ----------
    name : str
        Human-readable label used in reprs and error messages.
    """

    __slots__ = ("name", "serial", "__weakref__")

    def __init__(self, name: str) -> None:
        self.name = str(name)
        self.serial = next(_serial)

    def __repr__(self) -> str:
        return f"GraphId({self.name!r}, serial={self.serial})"


_DEFAULT_GRAPH = GraphId("default")


def get_default_graph() -> GraphId:
    """Return the process-wide default graph."""
    return _DEFAULT_GRAPH


def resolve_graph(graph: Optional[GraphId]) -> GraphId:
    """Map `None` to the default graph and validate anything else."""
    if graph is None:
        return _DEFAULT_GRAPH
    if not isinstance(graph, GraphId):
        raise TypeError(f"graph must be a GraphId or None, got {type(graph)!r}")
    return graph


@contextmanager
def graph_scope(name: str) -> Iterator[GraphId]:
    """
    Yield a fresh `GraphId` for the duration of a `with` block.

    Examples
    --------
    >>> with graph_scope("outer") as g:
    ...     x.require_grad(g)
    ...     y = dot(x, x)
    ...     y.backward(graph=g)
    """
    yield GraphId(name)
