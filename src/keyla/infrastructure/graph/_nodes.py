"""
Graph node records.

Two record types make up a computation graph:

- `ArrayNode`: the presence of one array in one graph. Leaves have no
  creator; every other node points at the `OpNode` that produced it.
- `OpNode`: the *operation record* of one primitive invocation in one graph.
  It holds the input array nodes, the output array nodes, the backward
  entries declared by the primitive and the arrays it chose to retain for
  its backward pass.

An `ArrayNode` refers back to its array only weakly, so the graph never
keeps user arrays alive by itself. Retained arrays are the exception: the
operation record owns them for as long as the record is reachable.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from ...domain._function import BackwardFunction
from ._graph import GraphId

if TYPE_CHECKING:
    from ..array._array import Array


@dataclass(eq=False)
class ArrayNode:
    """
    Node of one array in one graph.

    Attributes
    ----------
    graph : GraphId
        Graph this node belongs to.
    shape : tuple[int, ...]
        Shape of the array at node creation time.
    dtype : Any
        Dtype of the array.
    creator : Optional[OpNode]
        Operation record that produced the array, or None for a leaf.
    output_index : int
        Position of the array among its creator's outputs.
    """

    graph: GraphId
    shape: tuple[int, ...]
    dtype: Any
    creator: Optional["OpNode"] = None
    output_index: int = 0
    _array_ref: Optional[weakref.ReferenceType] = field(default=None, repr=False)

    @property
    def rank(self) -> int:
        return 0 if self.creator is None else self.creator.rank

    @property
    def is_leaf(self) -> bool:
        return self.creator is None

    def array(self) -> Optional["Array"]:
        """Return the owning array if it is still alive."""
        return None if self._array_ref is None else self._array_ref()


@dataclass(eq=False)
class BackwardEntry:
    """A backward function together with the inputs it produces gradients for."""

    input_indices: tuple[int, ...]
    fn: BackwardFunction


@dataclass(eq=False)
class OpNode:
    """
    Operation record of one primitive invocation in one graph.

    Attributes
    ----------
    name : str
        Operation name (e.g. "dot", "eigh").
    graph : GraphId
        Graph this record belongs to.
    rank : int
        One more than the highest rank among the input nodes. The backward
        traversal visits records in decreasing rank.
    input_nodes : list[Optional[ArrayNode]]
        Node of each input in `graph`, or None for inputs that do not take
        part in it.
    output_nodes : list[ArrayNode]
        Nodes created for the outputs.
    backward_entries : list[BackwardEntry]
        Backward functions defined for this graph.
    retained_inputs, retained_outputs : dict[int, Array]
        Arrays kept alive for backward functions, keyed by position.
    """

    name: str
    graph: GraphId
    rank: int
    input_nodes: list[Optional[ArrayNode]]
    backward_entries: list[BackwardEntry]
    output_nodes: list[ArrayNode] = field(default_factory=list)
    retained_inputs: dict[int, "Array"] = field(default_factory=dict)
    retained_outputs: dict[int, "Array"] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"OpNode(name={self.name!r}, graph={self.graph.name!r}, rank={self.rank}, "
            f"inputs={len(self.input_nodes)}, outputs={len(self.output_nodes)})"
        )
