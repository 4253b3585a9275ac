from unittest import TestCase
from unittest import mock
import unittest

import numpy as np

from keyla.domain._errors import DeviceNotSupportedError, DimensionError, GradientError
from keyla.domain.device._device import Device
from keyla.infrastructure.array._array import Array
from keyla.infrastructure.kernels._base import Backend
from keyla.infrastructure.routines._arithmetic import add, multiply, sum as _sum
from keyla.infrastructure.routines._creation import array
from keyla.infrastructure.routines._linalg import eigh, eigvalsh
from keyla.infrastructure.routines._manipulation import transpose
from keyla.linalg import eigh as public_eigh, eigvalsh as public_eigvalsh


def _arr(values, requires_grad=False) -> Array:
    return array(np.asarray(values, dtype=np.float64), requires_grad=requires_grad)


def _numerical_grad(f, x: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    grad = np.zeros_like(x)
    it = np.nditer(x, flags=["multi_index"])
    for _ in it:
        idx = it.multi_index
        xp = x.copy()
        xm = x.copy()
        xp[idx] += eps
        xm[idx] -= eps
        grad[idx] = (f(xp) - f(xm)) / (2 * eps)
    return grad


def _separated_symmetric(n: int, seed: int = 0) -> np.ndarray:
    """Symmetric matrix with well separated eigenvalues 1, 3, 6, 10, ..."""
    rng = np.random.default_rng(seed)
    q, _ = np.linalg.qr(rng.standard_normal((n, n)))
    eigvals = np.cumsum(np.arange(1.0, n + 1.0))
    return (q * eigvals) @ q.T


def _symmetrize(x: Array) -> Array:
    return multiply(add(x, transpose(x)), 0.5)


class TestEighForward(TestCase):
    def test_decomposition_properties(self):
        a_np = _separated_symmetric(5)
        for uplo in ("L", "U"):
            with self.subTest(uplo=uplo):
                w, v = eigh(_arr(a_np), uplo)
                w_np, v_np = w.to_numpy(), v.to_numpy()
                self.assertEqual(w.shape, (5,))
                self.assertEqual(v.shape, (5, 5))
                self.assertTrue(np.all(np.diff(w_np) > 0))
                np.testing.assert_allclose(v_np.T @ v_np, np.eye(5), atol=1e-10)
                np.testing.assert_allclose((v_np * w_np) @ v_np.T, a_np, atol=1e-10)

    def test_only_selected_triangle_is_read(self):
        a_np = _separated_symmetric(4, seed=1)
        garbage = np.triu(np.full((4, 4), 100.0), k=1)

        w_l, _ = eigh(_arr(np.tril(a_np) + garbage), "L")
        np.testing.assert_allclose(w_l.to_numpy(), np.linalg.eigvalsh(a_np), atol=1e-10)

        w_u, _ = eigh(_arr(np.triu(a_np) + garbage.T), "U")
        np.testing.assert_allclose(w_u.to_numpy(), np.linalg.eigvalsh(a_np), atol=1e-10)

    def test_default_uplo_is_lower(self):
        a_np = _separated_symmetric(3, seed=2)
        lower_only = np.tril(a_np) + np.triu(np.ones((3, 3)), k=1)
        w, _ = eigh(_arr(lower_only))
        np.testing.assert_allclose(w.to_numpy(), np.linalg.eigvalsh(a_np), atol=1e-10)

    def test_invalid_shapes_raise(self):
        for shape in ((3, 4), (3,), (2, 2, 2), ()):
            with self.subTest(shape=shape):
                with self.assertRaises(DimensionError):
                    eigh(_arr(np.ones(shape)))
                with self.assertRaises(DimensionError):
                    eigvalsh(_arr(np.ones(shape)))

    def test_invalid_uplo_raises_before_kernel(self):
        with mock.patch.object(Backend, "syevd") as kernel:
            with self.assertRaises(ValueError):
                eigh(_arr(np.eye(2)), "X")
            with self.assertRaises(ValueError):
                eigvalsh(_arr(np.eye(2)), "lower")
        kernel.assert_not_called()

    def test_unsupported_device_raises(self):
        a = Array._wrap(np.eye(3), Device("cuda:0"))
        with self.assertRaises(DeviceNotSupportedError):
            eigh(a)
        with self.assertRaises(DeviceNotSupportedError):
            eigvalsh(a)

    def test_public_facade(self):
        self.assertIs(public_eigh, eigh)
        self.assertIs(public_eigvalsh, eigvalsh)


class TestEighBackward(TestCase):
    def test_eigenvalue_gradient_closed_form(self):
        # d(sum(c * w)) / da = V diag(c) V^T
        a_np = _separated_symmetric(4)
        c = np.array([0.5, -1.0, 2.0, 3.0])
        a = _arr(a_np, requires_grad=True)
        w, v = eigh(a)
        _sum(multiply(w, _arr(c))).backward()
        v_np = v.to_numpy()
        np.testing.assert_allclose(a.grad.to_numpy(), (v_np * c) @ v_np.T, atol=1e-10)

    def test_gradient_matches_finite_differences(self):
        n = 4
        rng = np.random.default_rng(3)
        noise = rng.standard_normal((n, n))
        x_np = _separated_symmetric(n) + 0.3 * (noise - noise.T)
        cw = rng.standard_normal(n)
        cv = rng.standard_normal((n, n))

        def f(x):
            w, v = np.linalg.eigh(0.5 * (x + x.T))
            return float(np.sum(w * cw) + np.sum(v * v * cv))

        for uplo in ("L", "U"):
            with self.subTest(uplo=uplo):
                x = _arr(x_np, requires_grad=True)
                w, v = eigh(_symmetrize(x), uplo)
                loss = add(
                    _sum(multiply(w, _arr(cw))),
                    _sum(multiply(multiply(v, v), _arr(cv))),
                )
                loss.backward()
                np.testing.assert_allclose(
                    x.grad.to_numpy(), _numerical_grad(f, x_np), rtol=1e-5, atol=1e-7
                )

    def test_eigenvector_only_loss(self):
        n = 3
        x_np = _separated_symmetric(n, seed=4)
        cv = np.random.default_rng(5).standard_normal((n, n))

        def f(x):
            _, v = np.linalg.eigh(0.5 * (x + x.T))
            return float(np.sum(v * v * cv))

        x = _arr(x_np, requires_grad=True)
        _, v = eigh(_symmetrize(x))
        _sum(multiply(multiply(v, v), _arr(cv))).backward()
        np.testing.assert_allclose(
            x.grad.to_numpy(), _numerical_grad(f, x_np), rtol=1e-5, atol=1e-7
        )

    def test_second_order_through_eigh(self):
        n = 3
        x_np = _separated_symmetric(n, seed=6)
        rng = np.random.default_rng(7)
        cw = rng.standard_normal(n)
        c = rng.standard_normal((n, n))

        def first_grad(x):
            _, v = np.linalg.eigh(0.5 * (x + x.T))
            m = (v * cw) @ v.T
            return 0.5 * (m + m.T)

        x = _arr(x_np, requires_grad=True)
        w, _ = eigh(_symmetrize(x))
        _sum(multiply(w, _arr(cw))).backward(enable_double_backprop=True)
        gx = x.grad
        np.testing.assert_allclose(gx.to_numpy(), first_grad(x_np), atol=1e-10)

        x.cleargrad()
        _sum(multiply(gx, _arr(c))).backward()
        expected = _numerical_grad(lambda z: float(np.sum(first_grad(z) * c)), x_np)
        np.testing.assert_allclose(x.grad.to_numpy(), expected, rtol=1e-4, atol=1e-6)


class TestEigvalsh(TestCase):
    def test_matches_eigh_eigenvalues(self):
        a_np = _separated_symmetric(5, seed=8)
        for uplo in ("L", "U"):
            with self.subTest(uplo=uplo):
                w_only = eigvalsh(_arr(a_np), uplo)
                w, _ = eigh(_arr(a_np), uplo)
                np.testing.assert_allclose(w_only.to_numpy(), w.to_numpy(), atol=1e-10)

    def test_no_gradient_is_recorded(self):
        a = _arr(_separated_symmetric(3), requires_grad=True)
        w = eigvalsh(a)
        self.assertFalse(w.requires_grad)
        with self.assertRaises(GradientError):
            _sum(w).backward()
        self.assertIsNone(a.grad)


if __name__ == "__main__":
    unittest.main()
