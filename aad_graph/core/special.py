# aad_graph/core/special.py
"""
Backward rules of special (indexed) edges.

    GATHER      : forward  y = gather(x, offset, mask)
                  adjoint  x.grad  <- scatter_add(x.grad, y.grad, offset, mask)
                           (plain scatter when the gather was a permutation)
    SCATTER     : forward  buf = scatter(buf, x, offset, mask)
    SCATTER_ADD : forward  buf = scatter_add(buf, x, offset, mask)
                  adjoint  x.grad += gather(buf.grad, offset, mask)
"""

from __future__ import annotations
from typing import TYPE_CHECKING

from . import numeric
from .node import Edge, SpecialKind

if TYPE_CHECKING:
    from .tape import Tape


def apply_adjoint(tape: "Tape", target: int, edge: Edge) -> None:
    """Propagate target's gradient through one special edge into edge.source."""
    sp = edge.special
    grad_target = tape.node(target).grad
    source = tape.node(edge.source)

    if sp.kind is SpecialKind.GATHER:
        if sp.permute:
            source.grad = numeric.scatter(source.grad, grad_target, sp.offset, sp.mask)
        else:
            source.grad = numeric.scatter_add(source.grad, grad_target, sp.offset, sp.mask)
    elif sp.kind in (SpecialKind.SCATTER, SpecialKind.SCATTER_ADD):
        source.grad = source.grad + numeric.gather(grad_target, sp.offset, sp.mask)
    else:
        raise ValueError(f"unsupported special edge kind {sp.kind!r}")
