from unittest import TestCase
import gc
import unittest

import numpy as np

from keyla.domain._errors import GradientError
from keyla.infrastructure.array._array import Array
from keyla.infrastructure.graph._backprop_mode import no_backprop_mode
from keyla.infrastructure.graph._backward_builder import (
    BackwardBuilder,
    RetainedInputToken,
    RetainedOutputToken,
)
from keyla.infrastructure.graph._backward_context import BackwardContext
from keyla.infrastructure.graph._graph import GraphId
from keyla.infrastructure.routines._creation import array


def _arr(values, requires_grad=False) -> Array:
    return array(np.asarray(values, dtype=np.float64), requires_grad=requires_grad)


def _fresh_like(x: Array) -> Array:
    return Array._wrap(np.array(x.data, copy=True), x.device)


class TestBackwardBuilderTargets(TestCase):
    def test_target_is_falsy_when_no_input_requires_grad(self):
        a, b = _arr([1.0]), _arr([2.0])
        bb = BackwardBuilder("op", (a, b), _fresh_like(a))
        self.assertFalse(bb.create_target(0))
        self.assertFalse(bb.create_target((0, 1)))
        bb.finalize()

    def test_target_truthiness_follows_inputs(self):
        a, b = _arr([1.0], requires_grad=True), _arr([2.0])
        bb = BackwardBuilder("op", (a, b), _fresh_like(a))
        self.assertTrue(bb.create_target(0))
        self.assertFalse(bb.create_target(1))
        self.assertTrue(bb.create_target((0, 1)))

    def test_no_targets_inside_no_backprop_scope(self):
        a = _arr([1.0], requires_grad=True)
        with no_backprop_mode():
            bb = BackwardBuilder("op", a, _fresh_like(a))
            self.assertFalse(bb.create_target(0))

    def test_create_target_out_of_range_raises(self):
        a = _arr([1.0], requires_grad=True)
        bb = BackwardBuilder("op", a, _fresh_like(a))
        with self.assertRaises(IndexError):
            bb.create_target(1)

    def test_retain_out_of_range_raises(self):
        a = _arr([1.0], requires_grad=True)
        bb = BackwardBuilder("op", a, _fresh_like(a))
        with self.assertRaises(IndexError):
            bb.retain_input(3)
        with self.assertRaises(IndexError):
            bb.retain_output(1)


class TestBackwardBuilderFinalize(TestCase):
    def test_finalize_creates_op_record_and_output_node(self):
        a = _arr([1.0, 2.0], requires_grad=True)
        out = _fresh_like(a)
        bb = BackwardBuilder("scale", a, out)
        bt = bb.create_target(0)
        bt.define(lambda bctx: None)
        bb.finalize()

        self.assertTrue(out.requires_grad)
        node = out._nodes[next(iter(out._nodes))]
        self.assertEqual(node.creator.name, "scale")
        self.assertEqual(node.creator.rank, 1)
        self.assertIs(node.creator.input_nodes[0], a._nodes[node.graph])
        self.assertIs(node.array(), out)

    def test_finalize_without_definitions_records_nothing(self):
        a = _arr([1.0], requires_grad=True)
        out = _fresh_like(a)
        bb = BackwardBuilder("noop", a, out)
        bb.finalize()
        self.assertFalse(out.requires_grad)

    def test_finalize_twice_raises(self):
        a = _arr([1.0], requires_grad=True)
        bb = BackwardBuilder("op", a, _fresh_like(a))
        bb.finalize()
        with self.assertRaises(GradientError):
            bb.finalize()

    def test_define_after_finalize_raises(self):
        a = _arr([1.0], requires_grad=True)
        bb = BackwardBuilder("op", a, _fresh_like(a))
        bt = bb.create_target(0)
        bb.finalize()
        with self.assertRaises(GradientError):
            bt.define(lambda bctx: None)

    def test_define_rejects_non_callable(self):
        a = _arr([1.0], requires_grad=True)
        bb = BackwardBuilder("op", a, _fresh_like(a))
        with self.assertRaises(TypeError):
            bb.create_target(0).define("not callable")

    def test_output_that_already_has_node_is_rejected(self):
        a = _arr([1.0], requires_grad=True)
        with self.assertRaises(GradientError):
            BackwardBuilder("op", a, a)

    def test_rank_is_one_more_than_max_input_rank(self):
        a = _arr([1.0], requires_grad=True)
        b = a * 2.0
        c = b * 3.0
        g = next(iter(c._nodes))
        self.assertEqual(b._nodes[g].rank, 1)
        self.assertEqual(c._nodes[g].rank, 2)

    def test_one_record_per_graph(self):
        g1, g2 = GraphId("g1"), GraphId("g2")
        a = _arr([1.0])
        a.require_grad(g1)
        b = _arr([2.0])
        b.require_grad(g2)
        out = _fresh_like(a)
        bb = BackwardBuilder("op", (a, b), out)
        if bt := bb.create_target(0):
            bt.define(lambda bctx: None)
        if bt := bb.create_target(1):
            bt.define(lambda bctx: None)
        bb.finalize()

        self.assertTrue(out.is_grad_required(g1))
        self.assertTrue(out.is_grad_required(g2))
        op1 = out._get_node(g1).creator
        op2 = out._get_node(g2).creator
        self.assertIsNot(op1, op2)
        self.assertIsNone(op1.input_nodes[1])
        self.assertIsNone(op2.input_nodes[0])


class TestRetention(TestCase):
    def test_retained_input_survives_forward_local(self):
        a = _arr([1.0, 2.0], requires_grad=True)
        b = _arr([3.0, 4.0])
        out = _fresh_like(a)
        bb = BackwardBuilder("op", (a, b), out)
        tok = bb.retain_input(1)
        bb.create_target(0).define(lambda bctx: None)
        bb.finalize()
        b_id = id(b)
        del b
        gc.collect()

        op = out._nodes[next(iter(out._nodes))].creator
        ctx = BackwardContext(op, [None], (0,))
        retained = ctx.get_retained_input(tok)
        self.assertEqual(id(retained), b_id)
        np.testing.assert_array_equal(retained.to_numpy(), [3.0, 4.0])

    def test_unretained_token_raises(self):
        a = _arr([1.0], requires_grad=True)
        out = _fresh_like(a)
        bb = BackwardBuilder("op", a, out)
        bb.create_target(0).define(lambda bctx: None)
        bb.finalize()
        op = out._nodes[next(iter(out._nodes))].creator
        ctx = BackwardContext(op, [None], (0,))
        with self.assertRaises(GradientError):
            ctx.get_retained_input(RetainedInputToken(0))
        with self.assertRaises(GradientError):
            ctx.get_retained_output(RetainedOutputToken(0))

    def test_token_type_is_checked(self):
        a = _arr([1.0], requires_grad=True)
        out = _fresh_like(a)
        bb = BackwardBuilder("op", a, out)
        tok = bb.retain_output(0)
        bb.create_target(0).define(lambda bctx: None)
        bb.finalize()
        op = out._nodes[next(iter(out._nodes))].creator
        ctx = BackwardContext(op, [None], (0,))
        self.assertIs(ctx.get_retained_output(tok), out)
        with self.assertRaises(TypeError):
            ctx.get_retained_input(tok)


class TestBackwardContext(TestCase):
    def _op(self):
        a = _arr([1.0], requires_grad=True)
        b = _arr([1.0], requires_grad=True)
        out = _fresh_like(a)
        bb = BackwardBuilder("pair", (a, b), out)
        bb.create_target((0, 1)).define(lambda bctx: None)
        bb.finalize()
        return out._nodes[next(iter(out._nodes))].creator

    def test_input_grad_requires_single_input_target(self):
        ctx = BackwardContext(self._op(), [None], (0, 1))
        with self.assertRaises(GradientError):
            ctx.input_grad = _arr([1.0])
        ctx.set_input_grad(1, _arr([2.0]))
        self.assertIn(1, ctx.input_grads)

    def test_set_input_grad_outside_target_raises(self):
        ctx = BackwardContext(self._op(), [None], (0,))
        with self.assertRaises(GradientError):
            ctx.set_input_grad(1, _arr([2.0]))

    def test_output_grad_and_metadata(self):
        g = _arr([5.0])
        ctx = BackwardContext(self._op(), [g], (0,))
        self.assertIs(ctx.output_grad(), g)
        self.assertEqual(ctx.op_name, "pair")
        self.assertEqual(ctx.output_count, 1)
        self.assertTrue(ctx.is_input_grad_required(0))
        self.assertFalse(ctx.is_input_grad_required(1))


if __name__ == "__main__":
    unittest.main()
