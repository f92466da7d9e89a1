# aad_graph/ops/arithmetic.py
import numpy as np
from ..core import numeric
from ..core.errors import TapeMismatchError
from ..core.var import DiffArray


def _as_ad(x):
    """Ensure x is a DiffArray; otherwise wrap it as a constant."""
    return x if isinstance(x, DiffArray) else DiffArray(x)


def _tape_of(*args):
    """The Tape shared by the differentiable arguments (None if all are constant)."""
    tape = None
    for a in args:
        if a.tape is None or a.index == 0:
            continue
        if tape is None:
            tape = a.tape
        elif a.tape is not tape:
            raise TapeMismatchError(
                "cannot combine variables recorded on different tapes")
    return tape


def _record(tag, val, args, partials):
    """
    Wrap `val` as the result of primitive `tag`:
      - `partials` is a callable returning one local partial per argument;
        it is only evaluated when some argument is differentiable
      - the node is appended on the shared tape (index 0 if nothing to track)
    """
    tape = _tape_of(*args)
    if tape is None:
        return DiffArray._wrap(val, None, 0)
    index = tape.append(tag, numeric.slices(val), [a.index for a in args], partials())
    return DiffArray._wrap(val, tape, index)


def _binary(x, y, f, dfdx, dfdy, tag):
    """
    Generic binary primitive:
      - computes out.val = f(x.val, y.val)
      - records local partials (∂out/∂x, ∂out/∂y)
    """
    x = _as_ad(x)
    y = _as_ad(y)
    val = np.atleast_1d(np.asarray(f(x.val, y.val), dtype=np.float64))
    return _record(tag, val, (x, y),
                   lambda: [dfdx(x.val, y.val), dfdy(x.val, y.val)])


def _unary(x, f, dfdx, tag):
    x = _as_ad(x)
    val = np.atleast_1d(np.asarray(f(x.val), dtype=np.float64))
    return _record(tag, val, (x,), lambda: [dfdx(x.val, val)])


def add(x, y): return _binary(x, y, lambda a,b:a+b, lambda a,b:1.0,        lambda a,b:1.0,        "add")
def sub(x, y): return _binary(x, y, lambda a,b:a-b, lambda a,b:1.0,        lambda a,b:-1.0,       "sub")
def mul(x, y): return _binary(x, y, lambda a,b:a*b, lambda a,b:b,          lambda a,b:a,          "mul")
def div(x, y): return _binary(x, y, lambda a,b:a/b, lambda a,b:1.0/b,      lambda a,b:-a/np.square(b),   "div")


def neg(x):
    return _unary(x, lambda a: -a, lambda a, y: -1.0, "neg")


def pow(x, y):
    """
    Power:
      out.val = x.val ** y.val

    Local partials:
      ∂out/∂x = y * x^(y-1)
      ∂out/∂y = x^y * log(x)        (only where x > 0; 0 elsewhere)
    """
    x = _as_ad(x)
    y = _as_ad(y)
    xv, pv = x.val, y.val
    val = np.atleast_1d(xv ** pv)

    def partials():
        dfdx = pv * (xv ** (pv - 1.0))
        with np.errstate(divide="ignore", invalid="ignore"):
            logx = np.where(xv > 0, np.log(np.where(xv > 0, xv, 1.0)), 0.0)
        return [dfdx, val * logx]

    return _record("pow", val, (x, y), partials)
