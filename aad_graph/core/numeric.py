# aad_graph/core/numeric.py
"""
Value capability used by the tape.

The tape never touches numbers directly: every gradient / weight operation goes
through the helpers below. Values are 1-D float64 numpy arrays; a value of size
1 is a "scalar" and broadcasts against wider values. Weights may also be Python
floats or 0-d arrays (NumPy broadcasting handles the rest).

All helpers are pure: they return new arrays and never write into their
arguments, since weights and seeds may alias caller-owned buffers.
"""

from __future__ import annotations
import numpy as np
from typing import Any, Optional


def as_value(x: Any) -> np.ndarray:
    """Convert x to a fresh 1-D float64 array (scalars become size 1)."""
    arr = np.array(x, dtype=np.float64, copy=True)
    if arr.ndim > 1:
        raise ValueError(f"values must be scalars or 1-D arrays, got shape {arr.shape}")
    return np.atleast_1d(arr)


def as_index(offset: Any) -> np.ndarray:
    return np.asarray(offset, dtype=np.int64).ravel()


def active_offsets(offset: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Offsets of the active lanes; negative entries are rejected, not wrapped."""
    active = offset[mask]
    if active.size and active.min() < 0:
        raise IndexError(f"negative offset {int(active.min())} in indexed access")
    return active


def as_mask(mask: Optional[Any], n: int) -> np.ndarray:
    """Boolean lane mask of length n; None means all lanes active."""
    if mask is None:
        return np.ones(n, dtype=bool)
    m = np.asarray(mask, dtype=bool).ravel()
    if m.size == 1 and n != 1:
        return np.full(n, bool(m[0]))
    if m.size != n:
        raise ValueError(f"mask has {m.size} lanes, expected {n}")
    return m


def zero(size: int) -> np.ndarray:
    return np.zeros(size, dtype=np.float64)


def full(value: float, size: int) -> np.ndarray:
    return np.full(size, value, dtype=np.float64)


def slices(x: Any) -> int:
    """Number of lanes of a value (1 for Python scalars)."""
    return int(np.size(x))


def is_scalar(x: Any) -> bool:
    return slices(x) == 1


def hsum(x: Any) -> np.ndarray:
    """Horizontal sum, returned as a size-1 value."""
    return np.atleast_1d(np.sum(x, dtype=np.float64))


def select(mask: Any, a: Any, b: Any) -> np.ndarray:
    return np.where(np.asarray(mask, dtype=bool), a, b)


def gather(buffer: Any, offset: Any, mask: Optional[Any] = None) -> np.ndarray:
    """
    out[i] = buffer[offset[i]] for active lanes, 0 for masked-off lanes.
    """
    buffer = np.asarray(buffer, dtype=np.float64).ravel()
    offset = as_index(offset)
    mask = as_mask(mask, offset.size)
    out = np.zeros(offset.size, dtype=np.float64)
    out[mask] = buffer[active_offsets(offset, mask)]
    return out


def scatter(buffer: Any, value: Any, offset: Any, mask: Optional[Any] = None) -> np.ndarray:
    """
    Copy of `buffer` with buffer[offset[i]] = value[i] for active lanes.
    A size-1 `value` is broadcast to every lane.
    """
    out = np.array(buffer, dtype=np.float64, copy=True).ravel()
    offset = as_index(offset)
    mask = as_mask(mask, offset.size)
    value = np.broadcast_to(np.asarray(value, dtype=np.float64).ravel(), offset.shape)
    out[active_offsets(offset, mask)] = value[mask]
    return out


def scatter_add(buffer: Any, value: Any, offset: Any, mask: Optional[Any] = None) -> np.ndarray:
    """Like scatter(), but accumulates; repeated offsets add up."""
    out = np.array(buffer, dtype=np.float64, copy=True).ravel()
    offset = as_index(offset)
    mask = as_mask(mask, offset.size)
    value = np.broadcast_to(np.asarray(value, dtype=np.float64).ravel(), offset.shape)
    np.add.at(out, active_offsets(offset, mask), value[mask])
    return out


# ---------------- IEEE edge-case policy ---------------- #
# A structurally zero weight must not turn an infinite gradient into NaN
# (0 * inf), so exact zeros short-circuit both helpers.

def safe_mul(a: Any, b: Any) -> np.ndarray:
    """a * b, with an exactly zero operand forcing a zero result."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    with np.errstate(invalid="ignore", over="ignore"):
        tentative = a * b
    return np.where((a == 0.0) | (b == 0.0), 0.0, tentative)


def safe_fmadd(a: Any, b: Any, c: Any) -> np.ndarray:
    """a * b + c, returning c unchanged wherever a or b is exactly zero."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    c = np.asarray(c, dtype=np.float64)
    with np.errstate(invalid="ignore", over="ignore"):
        tentative = a * b + c
    return np.where((a == 0.0) | (b == 0.0), c, tentative)
