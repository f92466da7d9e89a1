"""Tests for the value capability helpers."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from aad_graph.core import numeric
from aad_graph.core.numeric import safe_fmadd, safe_mul


class TestSafeMul:
    @pytest.mark.parametrize("x", [1.5, -3.0, np.inf, -np.inf, np.nan, 1e308])
    def test_zero_operand_forces_zero(self, x):
        assert safe_mul(0.0, x) == 0.0
        assert safe_mul(x, 0.0) == 0.0

    def test_regular_product(self):
        assert safe_mul(2.0, 3.0) == 6.0

    def test_elementwise(self):
        out = safe_mul(np.array([0.0, 2.0, 0.0]), np.array([np.inf, 3.0, np.nan]))
        assert_array_equal(out, [0.0, 6.0, 0.0])

    def test_does_not_mutate_inputs(self):
        a = np.array([1.0, 2.0])
        safe_mul(a, 3.0)
        assert_array_equal(a, [1.0, 2.0])


class TestSafeFmadd:
    @pytest.mark.parametrize("x", [2.0, np.inf, -np.inf, np.nan])
    def test_zero_operand_returns_addend(self, x):
        assert safe_fmadd(0.0, x, 5.0) == 5.0
        assert safe_fmadd(x, 0.0, 5.0) == 5.0

    def test_regular(self):
        assert safe_fmadd(2.0, 3.0, 1.0) == 7.0

    def test_broadcasts_scalar_addend(self):
        out = safe_fmadd(np.array([1.0, 0.0, 2.0]), np.array([1.0, np.inf, 3.0]), np.zeros(1))
        assert_array_equal(out, [1.0, 0.0, 6.0])


class TestIndexing:
    def test_gather_masks_inactive_lanes(self):
        out = numeric.gather([10.0, 20.0, 30.0], [2, 0, 1], [True, True, False])
        assert_array_equal(out, [30.0, 10.0, 0.0])

    def test_scatter_is_pure(self):
        buf = np.zeros(4)
        out = numeric.scatter(buf, [1.0, 2.0], [3, 0])
        assert_array_equal(out, [2.0, 0.0, 0.0, 1.0])
        assert_array_equal(buf, np.zeros(4))

    def test_scatter_broadcasts_scalar(self):
        out = numeric.scatter(np.ones(4), 0.0, [1, 2], [True, False])
        assert_array_equal(out, [1.0, 0.0, 1.0, 1.0])

    def test_scatter_add_accumulates_repeated_offsets(self):
        out = numeric.scatter_add(np.zeros(3), [1.0, 2.0, 4.0], [0, 0, 2])
        assert_array_equal(out, [3.0, 0.0, 4.0])

    def test_mask_length_mismatch(self):
        with pytest.raises(ValueError):
            numeric.as_mask([True, False, True], 2)

    def test_negative_offset_is_rejected(self):
        with pytest.raises(IndexError, match="negative offset -1"):
            numeric.gather([1.0, 2.0, 3.0], [-1])
        with pytest.raises(IndexError):
            numeric.scatter(np.zeros(3), 1.0, [0, -2])
        with pytest.raises(IndexError):
            numeric.scatter_add(np.zeros(3), 1.0, [-3])

    def test_negative_offset_on_inactive_lane_is_ignored(self):
        out = numeric.gather([1.0, 2.0, 3.0], [2, -1], [True, False])
        assert_array_equal(out, [3.0, 0.0])


def test_hsum_returns_size_one():
    out = numeric.hsum(np.array([1.0, 2.0, 3.5]))
    assert out.shape == (1,)
    assert_allclose(out, [6.5])


def test_as_value_rejects_matrices():
    with pytest.raises(ValueError):
        numeric.as_value(np.zeros((2, 2)))


def test_as_value_copies():
    a = np.array([1.0, 2.0])
    v = numeric.as_value(a)
    v[0] = 5.0
    assert a[0] == 1.0
