# aad_graph/core/__init__.py

"""
Core public API of aad_graph.

Exports:
    Tape          : Reference-counted graph context (arena, edges, backward pass).
    TapeConfig    : Log level / edge contraction switches of a Tape.
    DiffArray     : Differentiable 1-D array recorded on an explicit Tape.
    OperandSlot   : Minimal holder for a scatter/gather operand id.
    safe_mul      : a*b with exact zeros forcing 0.
    safe_fmadd    : a*b+c with exact zeros leaving c.
    grad, grads   : Convenience drivers running one reverse pass on a fresh tape.
    value         : Extract the primal value from a DiffArray.
"""

from .config import TapeConfig
from .errors import (
    AutodiffError,
    UnknownNodeError,
    RefCountUnderflowError,
    NoGradientRequestedError,
    EmptyPrefixStackError,
    GraphOrderError,
    TapeMismatchError,
    SeedSizeError,
    EdgeConflictError,
)
from .node import Node, Edge, Special, SpecialKind, OperandSlot
from .numeric import safe_mul, safe_fmadd
from .tape import Tape
from .var import DiffArray
from .seeds import grad, grads, grads_list, value

__all__ = [
    "Tape", "TapeConfig",
    "Node", "Edge", "Special", "SpecialKind", "OperandSlot",
    "DiffArray",
    "safe_mul", "safe_fmadd",
    "grad", "grads", "grads_list", "value",
    "AutodiffError", "UnknownNodeError", "RefCountUnderflowError",
    "NoGradientRequestedError", "EmptyPrefixStackError",
    "GraphOrderError", "TapeMismatchError", "SeedSizeError", "EdgeConflictError",
]
