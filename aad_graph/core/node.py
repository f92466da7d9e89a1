# aad_graph/core/node.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Any
import numpy as np


class SpecialKind(Enum):
    """Closed set of indexed adjoints an edge can carry instead of a weight."""
    GATHER = "gather"            # adjoint of gather: scatter(_add) into the operand
    SCATTER = "scatter"          # adjoint of scatter: gather out of the buffer
    SCATTER_ADD = "scatter_add"  # adjoint of scatter_add: gather out of the buffer


@dataclass
class Special:
    """
    State captured from the forward indexed operation.

    Attributes
    ----------
    kind    : SpecialKind
    offset  : np.ndarray   int64 lane offsets used by the forward op
    mask    : np.ndarray   active lanes of the forward op
    size    : int          size of the gathered-from operand (GATHER only)
    permute : bool         forward gather was a pure permutation (GATHER only)
    """
    kind: SpecialKind
    offset: np.ndarray
    mask: np.ndarray
    size: int = 0
    permute: bool = False


@dataclass
class Edge:
    """
    One incoming dependency of a node.

    `source` is a weak reference (an arena id); the reference-count protocol is
    what keeps it valid. Exactly one of `weight` / `special` is set.
    """
    source: int
    weight: Any = None
    special: Optional[Special] = None

    @property
    def is_special(self) -> bool:
        return self.special is not None


@dataclass
class Node:
    """
    One vertex of the tape.

    Attributes
    ----------
    label      : str
        Diagnostic name; "a/b/name" when created under pushed prefixes,
        "'name'" (quoted) once the user labelled it.
    size       : int
        Logical width; 1 means scalar (gradients broadcast wider are summed).
    grad       : np.ndarray | None
        Accumulated gradient. None until the node is scheduled or is a leaf.
    grad_label : str
        Diagnostic name of the gradient storage.
    edges      : List[Edge]
        Incoming edges, owned exclusively by this node.
    ref_count  : int
        Edges sourcing this node plus external holders of its id.
    """
    label: str
    size: int
    grad: Optional[np.ndarray] = None
    grad_label: str = ""
    edges: List[Edge] = field(default_factory=list)
    ref_count: int = 0

    @property
    def is_scalar(self) -> bool:
        return self.size == 1

    @property
    def degree(self) -> int:
        return len(self.edges)

    @property
    def has_special(self) -> bool:
        return any(e.special is not None for e in self.edges)


@dataclass
class OperandSlot:
    """
    Holder of the node id of a logical buffer written by scatters.

    Tape.set_scatter_gather_operand() accepts any object with a mutable
    `index`; this is the minimal one for callers working with raw ids.
    """
    index: int = 0
