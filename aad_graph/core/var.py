# aad_graph/core/var.py
from __future__ import annotations
import numpy as np
from typing import Any, Optional

from . import numeric
from .errors import NoGradientRequestedError
from .tape import Tape


class DiffArray:
    """
    Differentiable 1-D array recorded on an explicit Tape.

    Attributes
    ----------
    val   : np.ndarray
        Forward (primal) value, float64, 1-D. Size 1 means scalar.
    tape  : Tape | None
        Graph this variable is recorded on (None for plain constants).
    index : int
        Node id on `tape`; 0 means the value does not depend on any
        differentiable input. The DiffArray owns one reference to the node
        and releases it in release() / when garbage collected.
    name  : Optional[str]
        Optional debug/pretty-print name.
    """

    __array_priority__ = 1000
    __array_ufunc__ = None  # make ndarray defer to our reflected operators

    def __init__(self, val: Any, *, tape: Optional[Tape] = None,
                 requires_grad: bool = False, name: Optional[str] = None):
        if not isinstance(val, (int, float, list, tuple, np.ndarray, np.number)):
            raise TypeError(
                f"DiffArray only accepts numeric types (int, float, list, tuple, ndarray), "
                f"but got {type(val)}"
            )
        self.val = numeric.as_value(val)
        self.tape = tape
        self.index = 0
        self.name = name
        if requires_grad:
            self.requires_gradient()

    @classmethod
    def _wrap(cls, val: np.ndarray, tape: Optional[Tape], index: int) -> "DiffArray":
        """Adopt a freshly recorded node; the reference returned by the tape moves here."""
        out = cls.__new__(cls)
        out.val = val
        out.tape = tape
        out.index = index
        out.name = None
        return out

    # ---------------- graph bookkeeping ---------------- #
    @property
    def size(self) -> int:
        return int(self.val.size)

    def __len__(self) -> int:
        return self.size

    @property
    def requires_grad(self) -> bool:
        return self.index != 0

    def requires_gradient(self, tape: Optional[Tape] = None) -> "DiffArray":
        """Turn this variable into a fresh leaf (input) of `tape`."""
        tape = tape if tape is not None else self.tape
        if tape is None:
            raise ValueError("requires_gradient(): no Tape given for this variable")
        self.release()
        self.tape = tape
        self.index = tape.append_leaf(self.size)
        if self.name:
            tape.set_label(self.index, self.name)
        return self

    def set_label(self, name: str) -> None:
        self.name = name
        if self.tape is not None:
            self.tape.set_label(self.index, name)

    def release(self) -> None:
        """Drop this variable's reference to its node (idempotent)."""
        index = getattr(self, "index", 0)
        if index and self.tape is not None:
            self.index = 0
            self.tape.dec_ref(index)

    def __del__(self):
        self.release()

    def __copy__(self) -> "DiffArray":
        out = DiffArray._wrap(self.val.copy(), self.tape, self.index)
        out.name = self.name
        if self.tape is not None:
            self.tape.inc_ref(self.index)
        return out

    def detach(self) -> "DiffArray":
        """Constant copy of the value, not connected to any tape."""
        return DiffArray(self.val.copy())

    # ---------------- gradients ---------------- #
    @property
    def gradient(self) -> np.ndarray:
        if self.tape is None:
            raise NoGradientRequestedError("gradient")
        return self.tape.gradient(self.index)

    def backward(self, free_graph: bool = False) -> None:
        """Seed this variable with ones and run one reverse pass."""
        if self.tape is None:
            raise NoGradientRequestedError("backward")
        self.tape.set_gradient(self.index, numeric.full(1.0, self.size))
        self.tape.backward(free_graph)

    def __repr__(self):
        rg = f"#{self.index}" if self.index else "const"
        return f"DiffArray({self.val!r}, {rg}, name={self.name!r})"

    # Operator overloading for arithmetic operations
    def __add__(self, other):
        from ..ops.arithmetic import add
        return add(self, other)

    def __radd__(self, other):
        from ..ops.arithmetic import add
        return add(other, self)

    def __sub__(self, other):
        from ..ops.arithmetic import sub
        return sub(self, other)

    def __rsub__(self, other):
        from ..ops.arithmetic import sub
        return sub(other, self)

    def __mul__(self, other):
        from ..ops.arithmetic import mul
        return mul(self, other)

    def __rmul__(self, other):
        from ..ops.arithmetic import mul
        return mul(other, self)

    def __truediv__(self, other):
        from ..ops.arithmetic import div
        return div(self, other)

    def __rtruediv__(self, other):
        from ..ops.arithmetic import div
        return div(other, self)

    def __neg__(self):
        from ..ops.arithmetic import neg
        return neg(self)

    def __pow__(self, other):
        from ..ops.arithmetic import pow
        return pow(self, other)

    def __rpow__(self, other):
        from ..ops.arithmetic import pow
        return pow(other, self)
