from unittest import TestCase
import unittest

import numpy as np

from keyla.domain._errors import DimensionError
from keyla.infrastructure.array._array import Array
from keyla.infrastructure.routines._arithmetic import multiply, sum as _sum
from keyla.infrastructure.routines._creation import array
from keyla.infrastructure.routines._indexing import diag, where


def _arr(values, requires_grad=False) -> Array:
    return array(np.asarray(values, dtype=np.float64), requires_grad=requires_grad)


class TestWhere(TestCase):
    def test_forward_with_scalars(self):
        cond = array(np.array([True, False, True]))
        x = _arr([1.0, 2.0, 3.0])
        np.testing.assert_array_equal(where(cond, x, 0.0).to_numpy(), [1.0, 0.0, 3.0])
        np.testing.assert_array_equal(
            where(cond, np.inf, x).to_numpy(), [np.inf, 2.0, np.inf]
        )

    def test_condition_must_be_bool(self):
        with self.assertRaises(TypeError):
            where(_arr([1.0]), _arr([1.0]), _arr([2.0]))

    def test_shape_mismatch(self):
        cond = array(np.array([True, False]))
        with self.assertRaises(DimensionError):
            where(cond, _arr([1.0, 2.0, 3.0]), 0.0)

    def test_gradients_follow_mask(self):
        cond = array(np.array([True, False, True]))
        x = _arr([1.0, 2.0, 3.0], requires_grad=True)
        y = _arr([4.0, 5.0, 6.0], requires_grad=True)
        out = where(cond, x, y)
        _sum(multiply(out, _arr([10.0, 20.0, 30.0]))).backward()
        np.testing.assert_allclose(x.grad.to_numpy(), [10.0, 0.0, 30.0])
        np.testing.assert_allclose(y.grad.to_numpy(), [0.0, 20.0, 0.0])

    def test_broadcast_operand_gradient_is_reduced(self):
        cond = array(np.array([[True, False], [False, False]]))
        y = _arr([1.0, 1.0], requires_grad=True)
        _sum(where(cond, 0.0, y)).backward()
        np.testing.assert_allclose(y.grad.to_numpy(), [1.0, 2.0])


class TestDiag(TestCase):
    def test_embed_and_extract(self):
        v = _arr([1.0, 2.0, 3.0])
        np.testing.assert_array_equal(diag(v).to_numpy(), np.diag([1.0, 2.0, 3.0]))
        m_np = np.arange(12.0).reshape(3, 4)
        np.testing.assert_array_equal(diag(_arr(m_np)).to_numpy(), np.diag(m_np))

    def test_invalid_rank(self):
        with self.assertRaises(DimensionError):
            diag(_arr(np.ones((2, 2, 2))))

    def test_embed_gradient_extracts(self):
        v = _arr([1.0, 2.0], requires_grad=True)
        w = np.array([[1.0, 2.0], [3.0, 4.0]])
        _sum(multiply(diag(v), _arr(w))).backward()
        np.testing.assert_allclose(v.grad.to_numpy(), [1.0, 4.0])

    def test_extract_gradient_embeds(self):
        for shape in ((3, 3), (2, 4), (4, 2)):
            with self.subTest(shape=shape):
                m = _arr(np.random.randn(*shape), requires_grad=True)
                d = diag(m)
                weights = np.arange(1.0, d.shape[0] + 1.0)
                _sum(multiply(d, _arr(weights))).backward()
                expected = np.zeros(shape)
                k = min(shape)
                expected[np.arange(k), np.arange(k)] = weights
                np.testing.assert_allclose(m.grad.to_numpy(), expected)


if __name__ == "__main__":
    unittest.main()
