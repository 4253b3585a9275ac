"""
Reverse-mode traversal of a computation graph.

`backward` seeds the gradients of the given outputs, visits every reachable
operation record in decreasing rank (so a record runs only once all
consumers of its outputs have contributed), calls its backward functions and
accumulates the resulting input gradients. Gradients reaching leaf nodes are
finally added into the `grad` of the corresponding arrays for that graph.

With `enable_double_backprop=False` the whole traversal runs inside a
no-backprop scope and the produced gradients carry no graph history. With
`enable_double_backprop=True` backward functions run with recording on, so
the gradients are themselves differentiable.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import warnings
from contextlib import nullcontext
from typing import TYPE_CHECKING, Optional, Sequence, Union

import numpy as np

from ...domain._errors import GradientError
from ._backprop_mode import no_backprop_mode
from ._backward_context import BackwardContext
from ._graph import GraphId, resolve_graph
from ._nodes import ArrayNode, OpNode

if TYPE_CHECKING:
    from ..array._array import Array

logger = logging.getLogger(__name__)


def _seed_grad(out: "Array", grad_out: Optional["Array"]) -> "Array":
    from ..array._array import Array

    if grad_out is None:
        if out.shape != ():
            raise ValueError(
                "grad_out must be provided for non-scalar arrays. "
                f"Got shape={out.shape}."
            )
        return Array._wrap(np.ones((), dtype=out.dtype), out.device)

    if not isinstance(grad_out, Array):
        raise TypeError(f"grad_out must be an Array, got {type(grad_out)!r}")
    if grad_out.shape != out.shape:
        raise ValueError(
            f"grad_out shape mismatch: expected {out.shape}, got {grad_out.shape}"
        )
    if grad_out.device != out.device:
        raise ValueError("grad_out must be on the same device as the output")
    return grad_out


def backward(
    outputs: Union["Array", Sequence["Array"]],
    grad_outputs: Optional[Union["Array", Sequence[Optional["Array"]]]] = None,
    graph: Optional[GraphId] = None,
    *,
    enable_double_backprop: bool = False,
) -> None:
    """
    Backpropagate from `outputs` through `graph`.

    Parameters
    ----------
    outputs : Array or sequence of Array
        Arrays to start from. Each must have a node in `graph`.
    grad_outputs : Array or sequence of Optional[Array], optional
        Seed gradient per output. A scalar output may omit its seed, in
        which case it is seeded with one.
    graph : GraphId, optional
        Graph to traverse. Defaults to the default graph.
    enable_double_backprop : bool, optional
        Record the backward computation itself so the resulting gradients
        can be differentiated again.

    Raises
    ------
    GradientError
        If an output has no node in `graph`, or a backward function returns
        a gradient whose shape differs from its input.
    ValueError
        If a non-scalar output has no seed gradient or a seed has the wrong
        shape.
    """
    from ..routines._arithmetic import add

    g_id = resolve_graph(graph)

    if not isinstance(outputs, (list, tuple)):
        outputs = (outputs,)
        grad_outputs = (grad_outputs,)
    elif grad_outputs is None:
        grad_outputs = (None,) * len(outputs)
    if len(grad_outputs) != len(outputs):
        raise ValueError(
            f"got {len(grad_outputs)} grad_outputs for {len(outputs)} outputs"
        )

    scope = nullcontext() if enable_double_backprop else no_backprop_mode()
    with scope:
        grads: dict[ArrayNode, "Array"] = {}
        heap: list[tuple[int, int, OpNode]] = []
        queued: set[int] = set()
        tiebreak = itertools.count()

        def accumulate(node: ArrayNode, g: "Array") -> None:
            prev = grads.get(node)
            grads[node] = g if prev is None else add(prev, g)

        def push(op: OpNode) -> None:
            if id(op) not in queued:
                queued.add(id(op))
                heapq.heappush(heap, (-op.rank, next(tiebreak), op))

        for out, seed in zip(outputs, grad_outputs):
            node = out._get_node(g_id)
            if node is None:
                raise GradientError(
                    f"Cannot backward from an array that is not in graph {g_id.name!r}."
                )
            accumulate(node, _seed_grad(out, seed))
            if node.creator is not None:
                push(node.creator)

        logger.debug("backward on graph %r from %d output(s)", g_id.name, len(outputs))

        while heap:
            _, _, op = heapq.heappop(heap)
            out_grads = [grads.pop(n, None) for n in op.output_nodes]
            if all(g is None for g in out_grads):
                continue

            for entry in op.backward_entries:
                if all(op.input_nodes[i] is None for i in entry.input_indices):
                    continue

                bctx = BackwardContext(op, out_grads, entry.input_indices)
                entry.fn(bctx)

                for i in entry.input_indices:
                    node = op.input_nodes[i]
                    g = bctx.input_grads.get(i)
                    if node is None or g is None:
                        continue
                    if g.shape != node.shape:
                        raise GradientError(
                            f"Gradient shape mismatch for input {i} of '{op.name}': "
                            f"expected {node.shape}, got {g.shape}"
                        )
                    accumulate(node, g)
                    if node.creator is not None:
                        push(node.creator)

        reached = 0
        for node, g in grads.items():
            if not node.is_leaf:
                continue
            arr = node.array()
            if arr is None:
                continue
            arr._accumulate_grad(g, g_id)
            reached += 1

    if reached == 0:
        warnings.warn(
            f"backward() on graph {g_id.name!r} did not reach any leaf array.",
            RuntimeWarning,
            stacklevel=2,
        )
