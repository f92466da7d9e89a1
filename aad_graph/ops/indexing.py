# aad_graph/ops/indexing.py
"""
Indexed reads/writes, selection and reductions on DiffArray.

gather/scatter/scatter_add are recorded through the tape's scatter-gather
operand API (special edges); select and hsum are ordinary weighted nodes.
"""

import numpy as np
from ..core import numeric
from ..core.var import DiffArray
from .arithmetic import _as_ad, _record, _tape_of


def gather(source, offset, mask=None, *, permute=False):
    """
    out[i] = source[offset[i]] on active lanes, 0 elsewhere.

    permute=True promises that every source lane is read at most once, which
    lets the adjoint overwrite instead of accumulate.
    """
    source = _as_ad(source)
    offset = numeric.as_index(offset)
    mask = numeric.as_mask(mask, offset.size)
    val = numeric.gather(source.val, offset, mask)

    tape = source.tape
    if tape is None or source.index == 0:
        return DiffArray._wrap(val, None, 0)
    tape.set_scatter_gather_operand(source, source.size, permute)
    try:
        index = tape.append_gather(offset, mask)
    finally:
        tape.set_scatter_gather_operand(None)
    return DiffArray._wrap(val, tape, index)


def _scatter_into(target, source, offset, mask, permute, add):
    if not isinstance(target, DiffArray):
        raise TypeError(f"scatter target must be a DiffArray buffer, got {type(target)}")
    source = _as_ad(source)
    offset = numeric.as_index(offset)
    mask = numeric.as_mask(mask, offset.size)
    tape = _tape_of(target, source)
    write = numeric.scatter_add if add else numeric.scatter
    target.val = write(target.val, source.val, offset, mask)

    if tape is None:
        return target
    target.tape = tape
    tape.set_scatter_gather_operand(target, target.size, permute)
    try:
        if add:
            tape.append_scatter_add(source.index, offset, mask)
        else:
            tape.append_scatter(source.index, offset, mask)
    finally:
        tape.set_scatter_gather_operand(None)
    return target


def scatter(target, source, offset, mask=None, *, permute=False):
    """
    In place: target[offset[i]] = source[i] on active lanes. Returns target.

    Repeated scatters into the same buffer are recorded as a chain of nodes;
    the previous buffer contents keep their gradient on the untouched slots.
    """
    return _scatter_into(target, source, offset, mask, permute, add=False)


def scatter_add(target, source, offset, mask=None):
    """In place: target[offset[i]] += source[i] on active lanes. Returns target."""
    return _scatter_into(target, source, offset, mask, False, add=True)


def select(mask, a, b):
    """out = a where mask else b."""
    a = _as_ad(a)
    b = _as_ad(b)
    m = np.asarray(mask, dtype=bool)
    val = np.atleast_1d(numeric.select(m, a.val, b.val))
    return _record("select", val, (a, b),
                   lambda: [m.astype(np.float64), (~m).astype(np.float64)])


def hsum(x):
    """Sum of all lanes, as a scalar (size-1) DiffArray."""
    x = _as_ad(x)
    return _record("hsum", numeric.hsum(x.val), (x,), lambda: [1.0])
