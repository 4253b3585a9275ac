"""
Gradient registration for differentiable primitives.

A primitive computes its outputs with graph recording disabled, then
describes its contribution to every active graph with a `BackwardBuilder`:

    bb = BackwardBuilder("dot", (a_matrix, b_matrix), out_matrix)
    if bt := bb.create_target(0):
        b_tok = bb.retain_input(1)

        def backward_a(bctx):
            b_matrix = bctx.get_retained_input(b_tok)
            bctx.input_grad = dot(bctx.output_grad(), b_matrix.T)

        bt.define(backward_a)
    bb.finalize()

Rules
-----
- Only graphs in which at least one input has a node are considered, and
  none at all inside a no-backprop scope.
- A `Target` is falsy unless some considered graph needs a gradient for one
  of its inputs, so primitives skip building closures nobody will call.
- `finalize()` creates one `OpNode` per graph that received at least one
  backward function and attaches fresh output nodes to the outputs.
"""

from __future__ import annotations

import logging
import weakref
from typing import TYPE_CHECKING, Sequence, Union

from ...domain._errors import GradientError
from ...domain._function import BackwardFunction
from ._backprop_mode import is_backprop_enabled
from ._graph import GraphId
from ._nodes import ArrayNode, BackwardEntry, OpNode

if TYPE_CHECKING:
    from ..array._array import Array

logger = logging.getLogger(__name__)


class RetainedInputToken:
    """Opaque handle to an input retained for the backward pass."""

    __slots__ = ("index",)

    def __init__(self, index: int) -> None:
        self.index = index

    def __repr__(self) -> str:
        return f"RetainedInputToken({self.index})"


class RetainedOutputToken:
    """Opaque handle to an output retained for the backward pass."""

    __slots__ = ("index",)

    def __init__(self, index: int) -> None:
        self.index = index

    def __repr__(self) -> str:
        return f"RetainedOutputToken({self.index})"


def _as_array_tuple(arrays) -> tuple["Array", ...]:
    if isinstance(arrays, (list, tuple)):
        return tuple(arrays)
    return (arrays,)


class Target:
    """
    Gradient target covering one or more inputs of an operation.

    Truthiness tells whether any active graph requests a gradient for the
    covered inputs.
    """

    def __init__(self, builder: "BackwardBuilder", input_indices: tuple[int, ...]):
        self._builder = builder
        self._input_indices = input_indices
        self._graphs: list[GraphId] = [
            g
            for g in builder._graphs
            if any(builder._inputs[i]._get_node(g) is not None for i in input_indices)
        ]

    def __bool__(self) -> bool:
        return bool(self._graphs)

    @property
    def input_indices(self) -> tuple[int, ...]:
        return self._input_indices

    def define(self, fn: BackwardFunction) -> None:
        """Register `fn` as the backward function of this target."""
        if self._builder._finalized:
            raise GradientError("Cannot define a target after finalize().")
        if not callable(fn):
            raise TypeError(f"backward function must be callable, got {type(fn)!r}")
        for g in self._graphs:
            self._builder._entries.setdefault(g, []).append(
                BackwardEntry(self._input_indices, fn)
            )


class BackwardBuilder:
    """
    Declares the operation record of a primitive invocation.

    Parameters
    ----------
    name : str
        Operation name recorded on the created `OpNode`s.
    inputs : Array or sequence of Array
        Inputs the backward functions produce gradients for.
    outputs : Array or sequence of Array
        Freshly created outputs of the primitive.
    """

    def __init__(
        self,
        name: str,
        inputs: Union["Array", Sequence["Array"]],
        outputs: Union["Array", Sequence["Array"]],
    ) -> None:
        self._name = name
        self._inputs = _as_array_tuple(inputs)
        self._outputs = _as_array_tuple(outputs)
        self._finalized = False
        self._entries: dict[GraphId, list[BackwardEntry]] = {}
        self._retained_inputs: set[int] = set()
        self._retained_outputs: set[int] = set()

        graphs: list[GraphId] = []
        if is_backprop_enabled():
            for x in self._inputs:
                for g in x._graph_ids():
                    if g not in graphs:
                        graphs.append(g)
        self._graphs = graphs

        for out in self._outputs:
            for g in self._graphs:
                if out._get_node(g) is not None:
                    raise GradientError(
                        f"Output of '{name}' already belongs to graph {g.name!r}; "
                        "outputs must be freshly created arrays."
                    )

    @property
    def name(self) -> str:
        return self._name

    def create_target(self, input_index: Union[int, Sequence[int]]) -> Target:
        """
        Create a gradient target for one input, or for several inputs whose
        gradients are computed together.
        """
        if isinstance(input_index, int):
            indices: tuple[int, ...] = (input_index,)
        else:
            indices = tuple(int(i) for i in input_index)
        for i in indices:
            if not 0 <= i < len(self._inputs):
                raise IndexError(
                    f"input index {i} out of range for '{self._name}' "
                    f"with {len(self._inputs)} inputs"
                )
        return Target(self, indices)

    def retain_input(self, index: int) -> RetainedInputToken:
        """Keep input `index` alive for the backward pass."""
        if not 0 <= index < len(self._inputs):
            raise IndexError(f"input index {index} out of range")
        self._retained_inputs.add(index)
        return RetainedInputToken(index)

    def retain_output(self, index: int) -> RetainedOutputToken:
        """Keep output `index` alive for the backward pass."""
        if not 0 <= index < len(self._outputs):
            raise IndexError(f"output index {index} out of range")
        self._retained_outputs.add(index)
        return RetainedOutputToken(index)

    def finalize(self) -> None:
        """Create the operation records and connect the outputs to them."""
        if self._finalized:
            raise GradientError(f"BackwardBuilder for '{self._name}' finalized twice.")
        self._finalized = True

        for g in self._graphs:
            entries = self._entries.get(g)
            if not entries:
                continue

            input_nodes = [x._get_node(g) for x in self._inputs]
            rank = 1 + max((n.rank for n in input_nodes if n is not None), default=0)
            op = OpNode(
                name=self._name,
                graph=g,
                rank=rank,
                input_nodes=input_nodes,
                backward_entries=entries,
                retained_inputs={i: self._inputs[i] for i in self._retained_inputs},
                retained_outputs={i: self._outputs[i] for i in self._retained_outputs},
            )
            for j, out in enumerate(self._outputs):
                node = ArrayNode(
                    graph=g,
                    shape=out.shape,
                    dtype=out.dtype,
                    creator=op,
                    output_index=j,
                    _array_ref=weakref.ref(out),
                )
                out._set_node(g, node)
                op.output_nodes.append(node)

            logger.debug("recorded %r", op)
