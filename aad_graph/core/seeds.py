# aad_graph/core/seeds.py

#-----------------------------------------------------------------------------
# We "plant" a seed (dy/dy = 1) at the scalar output and let gradients grow
# backwards through the tape.
#-----------------------------------------------------------------------------
from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, List, Union
import numpy as np

from .tape import Tape
from .var import DiffArray


def value(x: Any) -> Any:
    """Return the numeric value of a DiffArray; pass through plain numbers unchanged."""
    return x.val if isinstance(x, DiffArray) else x


def _ensure_ad(v: Any, *, tape: Tape, name: str) -> DiffArray:
    """Declare v (plain value or DiffArray) as a fresh input leaf of `tape`."""
    return DiffArray(value(v), tape=tape, requires_grad=True, name=name)


def _reverse_scalar(y: Any, tape: Tape, who: str) -> None:
    """Seed a scalar output with 1 and run one freeing reverse pass."""
    if not isinstance(y, DiffArray):
        y = DiffArray(y)
    if y.size != 1:
        raise ValueError(f"{who} expects scalar output.")
    if y.index == 0:
        return  # output does not depend on any input: all gradients stay zero
    tape.set_gradient(y.index, 1.0)
    tape.backward(free_graph=True)


def _shaped(x0: Any, g: np.ndarray) -> Union[float, np.ndarray]:
    """Return g in the shape of the original input (float for scalar inputs)."""
    return float(g[0]) if np.ndim(value(x0)) == 0 else g.copy()


# ----------------------------- single-input grad ----------------------------- #
def grad(f: Callable[[DiffArray], DiffArray],
         x0: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Gradient of a scalar-output function y=f(x) at x0 (single input).
    Runs one reverse pass on a fresh, isolated tape.
    """
    tape = Tape()
    x = _ensure_ad(x0, tape=tape, name="x")
    y = f(x)
    _reverse_scalar(y, tape, "grad(f, x0)")
    return _shaped(x0, x.gradient)


# ----------------------------- multi-input grads ----------------------------- #
def grads(f: Callable[[Dict[str, DiffArray]], DiffArray],
          inputs: Dict[str, Union[float, np.ndarray]]) -> Dict[str, Union[float, np.ndarray]]:
    """
    Gradient of a scalar-output function y=f(vars) w.r.t. ALL inputs (dict form).
    Performs ONE reverse pass to obtain all ∂y/∂var simultaneously.

    Parameters
    ----------
    f       : function taking a dict {name: DiffArray} and returning a scalar DiffArray
    inputs  : dict {name: numeric}

    Returns
    -------
    dict {name: numeric}  # gradients in the same key order as `inputs`
    """
    tape = Tape()
    vars_ad: Dict[str, DiffArray] = {
        k: _ensure_ad(v, tape=tape, name=k) for k, v in inputs.items()
    }
    y = f(vars_ad)
    _reverse_scalar(y, tape, "grads(f, inputs)")
    return {k: _shaped(inputs[k], vars_ad[k].gradient) for k in inputs.keys()}


def grads_list(f: Callable[[List[DiffArray]], DiffArray],
               x0_list: Iterable[Union[float, np.ndarray]]) -> List[Union[float, np.ndarray]]:
    """
    Same as grads(), but the inputs are provided as a list and the result is a list
    of partials in the same order.

    Example
    -------
    f = lambda xs: xs[0]*xs[0] + 3*xs[1]
    grads_list(f, [2.0, 4.0]) -> [4.0, 3.0]
    """
    tape = Tape()
    x0_list = list(x0_list)
    xs: List[DiffArray] = [
        _ensure_ad(v, tape=tape, name=f"x{i}") for i, v in enumerate(x0_list)
    ]
    y = f(xs)
    _reverse_scalar(y, tape, "grads_list(f, x0_list)")
    return [_shaped(v, x.gradient) for v, x in zip(x0_list, xs)]
