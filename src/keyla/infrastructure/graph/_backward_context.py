"""
Backward context passed to backward functions.

The context exposes the downstream gradients of the operation's outputs,
resolves retention tokens to the arrays retained at registration time, and
collects the gradients the backward function computes for its inputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from ...domain._errors import GradientError
from ._backward_builder import RetainedInputToken, RetainedOutputToken
from ._nodes import OpNode

if TYPE_CHECKING:
    from ..array._array import Array


class BackwardContext:
    """
    Context for one backward function invocation.

    Parameters
    ----------
    op : OpNode
        Operation record being differentiated.
    output_grads : Sequence[Optional[Array]]
        Downstream gradient per output; None where nothing flows.
    input_indices : tuple[int, ...]
        Inputs the backward function is responsible for.
    """

    def __init__(
        self,
        op: OpNode,
        output_grads: Sequence[Optional["Array"]],
        input_indices: tuple[int, ...],
    ) -> None:
        self._op = op
        self._output_grads = list(output_grads)
        self._input_indices = input_indices
        self._input_grads: dict[int, Optional["Array"]] = {}

    @property
    def op_name(self) -> str:
        return self._op.name

    @property
    def output_count(self) -> int:
        return len(self._output_grads)

    def output_grad(self, index: int = 0) -> Optional["Array"]:
        return self._output_grads[index]

    def is_input_grad_required(self, index: int) -> bool:
        return index in self._input_indices and self._op.input_nodes[index] is not None

    def get_retained_input(self, token: RetainedInputToken) -> "Array":
        if not isinstance(token, RetainedInputToken):
            raise TypeError(f"expected RetainedInputToken, got {type(token)!r}")
        try:
            return self._op.retained_inputs[token.index]
        except KeyError:
            raise GradientError(
                f"input {token.index} of '{self._op.name}' was not retained"
            ) from None

    def get_retained_output(self, token: RetainedOutputToken) -> "Array":
        if not isinstance(token, RetainedOutputToken):
            raise TypeError(f"expected RetainedOutputToken, got {type(token)!r}")
        try:
            return self._op.retained_outputs[token.index]
        except KeyError:
            raise GradientError(
                f"output {token.index} of '{self._op.name}' was not retained"
            ) from None

    def set_input_grad(self, index: int, grad: Optional["Array"]) -> None:
        if index not in self._input_indices:
            raise GradientError(
                f"backward function of '{self._op.name}' is not defined for input {index}"
            )
        self._input_grads[index] = grad

    @property
    def input_grad(self) -> Optional["Array"]:
        """Gradient of the single input covered by this target."""
        return self._input_grads.get(self._single_index())

    @input_grad.setter
    def input_grad(self, grad: Optional["Array"]) -> None:
        self._input_grads[self._single_index()] = grad

    @property
    def input_grads(self) -> dict[int, Optional["Array"]]:
        return self._input_grads

    def _single_index(self) -> int:
        if len(self._input_indices) != 1:
            raise GradientError(
                "input_grad is only available for single-input targets; "
                "use set_input_grad(index, grad)"
            )
        return self._input_indices[0]
