# aad_graph/ops/__init__.py

# Convenience re-exports so users can do: from aad_graph.ops import mul, exp, ...
from .arithmetic import add, sub, mul, div, neg, pow
from .transcendental import exp, log, sqrt, sin, cos, norm_cdf
from .indexing import gather, scatter, scatter_add, select, hsum

__all__ = [
    "add", "sub", "mul", "div", "neg", "pow",
    "exp", "log", "sqrt", "sin", "cos",
    "norm_cdf",
    "gather", "scatter", "scatter_add", "select", "hsum",
]
