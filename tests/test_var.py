"""Tests for the DiffArray forward layer and the ops modules."""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.stats import norm

from aad_graph import DiffArray, Tape, ops
from aad_graph.core.errors import NoGradientRequestedError, TapeMismatchError


def leaf(tape, val, name=None):
    return DiffArray(val, tape=tape, requires_grad=True, name=name)


class TestDiffArray:
    def test_constant_has_no_node(self):
        c = DiffArray([1.0, 2.0])
        assert c.index == 0
        assert not c.requires_grad
        assert (c * 2.0).index == 0

    def test_rejects_non_numeric(self):
        with pytest.raises(TypeError):
            DiffArray("abc")

    def test_leaf_label(self, tape):
        x = leaf(tape, [1.0, 2.0], name="x")
        assert tape.node(x.index).label == "'x'"
        assert x.size == 2

    def test_requires_gradient_needs_tape(self):
        with pytest.raises(ValueError):
            DiffArray(1.0).requires_gradient()

    def test_constant_has_no_gradient(self):
        with pytest.raises(NoGradientRequestedError):
            DiffArray(1.0).backward()
        with pytest.raises(NoGradientRequestedError):
            DiffArray(1.0).gradient

    def test_release_on_garbage_collection(self, tape):
        x = leaf(tape, [1.0, 2.0])
        y = x * x + 1.0
        assert len(tape) >= 2
        del y
        del x
        assert len(tape) == 0

    def test_release_is_idempotent(self, tape):
        x = leaf(tape, 1.0)
        x.release()
        x.release()
        assert x.index == 0
        assert len(tape) == 0

    def test_tape_mismatch(self):
        x = leaf(Tape(), 1.0)
        y = leaf(Tape(), 2.0)
        with pytest.raises(TapeMismatchError):
            x + y

    def test_numpy_operand_on_the_left(self, tape):
        x = leaf(tape, [1.0, 2.0])
        y = np.array([3.0, 4.0]) * x
        assert isinstance(y, DiffArray)
        ops.hsum(y).backward()
        assert_allclose(x.gradient, [3.0, 4.0])

    def test_prefix_scope_applies_to_ops(self, tape):
        x = leaf(tape, 1.0)
        y = leaf(tape, 2.0)
        with tape.prefix_scope("layer"):
            z = x + y
        assert tape.node(z.index).label == "layer/add"


class TestGradients:
    def test_polynomial(self, tape):
        x = leaf(tape, [1.0, 2.0])
        y = leaf(tape, [3.0, -1.0])
        z = x * y + x
        z.backward()
        assert_allclose(x.gradient, [4.0, 0.0])
        assert_allclose(y.gradient, [1.0, 2.0])

    def test_scalar_broadcast(self, tape):
        s = leaf(tape, 2.0)
        v = leaf(tape, [1.0, 2.0, 3.0])
        out = ops.hsum(s * v)
        out.backward()
        assert_allclose(s.gradient, [6.0])
        assert_allclose(v.gradient, [2.0, 2.0, 2.0])

    def test_division_and_power(self, tape):
        x = leaf(tape, [2.0, 4.0])
        y = leaf(tape, [3.0, 0.5])
        z = x / y + x ** 2.0
        z.backward()
        assert_allclose(x.gradient, 1.0 / y.val + 2.0 * x.val)
        assert_allclose(y.gradient, -x.val / y.val ** 2)

    def test_power_exponent_gradient(self, tape):
        x = leaf(tape, 2.0)
        p = leaf(tape, 3.0)
        (x ** p).backward()
        assert_allclose(x.gradient, [12.0])
        assert_allclose(p.gradient, [8.0 * np.log(2.0)])

    def test_transcendental(self, tape):
        xv = np.array([0.3, 1.2, 2.5])
        x = leaf(tape, xv)
        y = ops.exp(x) + ops.log(x) + ops.sqrt(x) + ops.sin(x) + ops.cos(x) + ops.norm_cdf(x)
        y.backward()
        expected = (np.exp(xv) + 1.0 / xv + 0.5 / np.sqrt(xv)
                    + np.cos(xv) - np.sin(xv) + norm.pdf(xv))
        assert_allclose(x.gradient, expected)
        assert_allclose(ops.norm_cdf(DiffArray(xv)).val, norm.cdf(xv))

    def test_neg_and_sub(self, tape):
        x = leaf(tape, 1.5)
        y = 1.0 - (-x)
        y.backward()
        assert_allclose(x.gradient, [1.0])

    def test_select(self, tape):
        a = leaf(tape, [1.0, 2.0, 3.0])
        b = leaf(tape, [10.0, 20.0, 30.0])
        out = ops.select([True, False, True], a, b)
        assert_allclose(out.val, [1.0, 20.0, 3.0])
        ops.hsum(out).backward()
        assert_allclose(a.gradient, [1.0, 0.0, 1.0])
        assert_allclose(b.gradient, [0.0, 1.0, 0.0])

    def test_same_variable_twice(self, tape):
        x = leaf(tape, 3.0)
        (x * x).backward()
        assert_allclose(x.gradient, [6.0])

    def test_graph_survives_without_free(self, tape):
        x = leaf(tape, 2.0)
        y = x * x
        y.backward()
        y.backward()
        assert_allclose(x.gradient, [4.0])

    def test_free_graph(self, tape):
        x = leaf(tape, 2.0)
        y = ops.exp(x * 3.0)
        y.backward(free_graph=True)
        assert_allclose(x.gradient, [3.0 * np.exp(6.0)])
        assert tape.node(y.index).edges == []


class TestIndexingOps:
    def test_scatter_then_gather(self, tape):
        buffer = DiffArray(np.zeros(5))
        src = leaf(tape, [1.0, 2.0])
        ops.scatter(buffer, src, [0, 3])
        assert buffer.index != 0
        assert_allclose(buffer.val, [1.0, 0.0, 0.0, 2.0, 0.0])

        out = ops.gather(buffer, [3, 0])
        assert_allclose(out.val, [2.0, 1.0])
        loss = ops.hsum(out * [10.0, 100.0])
        loss.backward()
        assert_allclose(src.gradient, [100.0, 10.0])

    def test_scatter_into_tracked_buffer(self, tape):
        buffer = leaf(tape, [1.0, 2.0, 3.0])
        base = buffer.index
        tape.inc_ref(base)
        src = leaf(tape, 5.0)
        ops.scatter(buffer, src, [1])
        assert_allclose(buffer.val, [1.0, 5.0, 3.0])
        ops.hsum(buffer * [1.0, 2.0, 3.0]).backward()
        assert_allclose(tape.gradient(base), [1.0, 0.0, 3.0])
        assert_allclose(src.gradient, [2.0])
        tape.dec_ref(base)

    def test_scatter_add(self, tape):
        buffer = leaf(tape, [1.0, 1.0])
        src = leaf(tape, [2.0, 3.0])
        ops.scatter_add(buffer, src, [0, 0])
        assert_allclose(buffer.val, [6.0, 1.0])
        ops.hsum(buffer).backward()
        assert_allclose(src.gradient, [1.0, 1.0])

    def test_gather_of_constant(self):
        out = ops.gather(DiffArray([4.0, 5.0]), [1])
        assert out.index == 0
        assert_allclose(out.val, [5.0])

    def test_scatter_needs_diffarray_target(self, tape):
        with pytest.raises(TypeError):
            ops.scatter(np.zeros(3), leaf(tape, 1.0), [0])

    def test_scatter_across_tapes_leaves_buffer_untouched(self, tape):
        buffer = leaf(tape, [1.0, 2.0, 3.0])
        other = leaf(Tape(), 9.0)
        index = buffer.index
        with pytest.raises(TapeMismatchError):
            ops.scatter(buffer, other, [0])
        assert_allclose(buffer.val, [1.0, 2.0, 3.0])
        assert buffer.index == index

    def test_negative_offset_is_rejected(self, tape):
        buffer = leaf(tape, [1.0, 2.0, 3.0])
        with pytest.raises(IndexError):
            ops.gather(buffer, [-1])
        assert len(tape) == 1

    def test_everything_released(self, tape):
        buffer = DiffArray(np.zeros(4))
        src = leaf(tape, [1.0, 2.0])
        ops.scatter(buffer, src, [1, 2])
        out = ops.gather(buffer, [2])
        ops.hsum(out).backward(free_graph=True)
        del out, buffer, src
        assert len(tape) == 0
