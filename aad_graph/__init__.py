# aad_graph/__init__.py
# Reference-counted reverse-mode automatic differentiation graph

from .core.tape import Tape
from .core.config import TapeConfig
from .core.var import DiffArray
from .core.node import OperandSlot
from .core.seeds import grad, grads, grads_list, value
from .core.graph_utils import graphviz, get_graph_stats, print_graph_summary
from .core import errors

from . import ops

__all__ = [
    # Core
    'Tape',
    'TapeConfig',
    'DiffArray',
    'OperandSlot',
    'errors',
    # Drivers
    'grad',
    'grads',
    'grads_list',
    'value',
    # Diagnostics
    'graphviz',
    'get_graph_stats',
    'print_graph_summary',
    # Operations
    'ops',
]
