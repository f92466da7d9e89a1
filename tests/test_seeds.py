"""Tests for the grad/grads convenience drivers."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from aad_graph import grad, grads, grads_list, value, DiffArray, ops


def test_grad_scalar_input():
    g = grad(lambda x: 3.0 * x * x, 2.0)
    assert isinstance(g, float)
    assert g == pytest.approx(12.0)


def test_grad_vector_input():
    g = grad(lambda x: ops.hsum(x * x), np.array([1.0, 2.0, 3.0]))
    assert_allclose(g, [2.0, 4.0, 6.0])


def test_grad_rejects_vector_output():
    with pytest.raises(ValueError, match="scalar output"):
        grad(lambda x: x * 2.0, np.array([1.0, 2.0]))


def test_grad_of_constant_function():
    assert grad(lambda x: DiffArray(5.0), 1.0) == 0.0


def test_grads_dict():
    out = grads(lambda v: v["a"] * v["b"] + ops.exp(v["a"]), {"a": 0.5, "b": 2.0})
    assert list(out) == ["a", "b"]
    assert out["a"] == pytest.approx(2.0 + np.exp(0.5))
    assert out["b"] == pytest.approx(0.5)


def test_grads_list():
    out = grads_list(lambda xs: xs[0] * xs[0] + 3 * xs[1], [2.0, 4.0])
    assert out == pytest.approx([4.0, 3.0])


def test_value():
    assert value(3.0) == 3.0
    assert_allclose(value(DiffArray([1.0, 2.0])), [1.0, 2.0])
