# aad_graph/core/errors.py
"""
Error taxonomy of the tape.

Every error here is a programmer-contract violation: a graph that raised one of
them is no longer safe to continue with, so callers are not expected to retry.
"""


class AutodiffError(RuntimeError):
    """Base class for all tape errors."""


class UnknownNodeError(AutodiffError):
    """An id was looked up but is not (or no longer) present in the arena."""

    def __init__(self, index: int, where: str = "node"):
        super().__init__(f"autodiff: {where}(): Unknown index {index}")
        self.index = index


class RefCountUnderflowError(AutodiffError):
    """dec_ref() on a node that already has zero references (double free)."""

    def __init__(self, index: int):
        super().__init__(f"autodiff: dec_ref(): Node {index} has zero references!")
        self.index = index


class NoGradientRequestedError(AutodiffError):
    """gradient()/set_gradient() called with the null id 0."""

    def __init__(self, where: str):
        super().__init__(
            f"{where}(): no gradient information for this variable "
            f"(a prior call to requires_gradient() on a dependent variable is required)"
        )


class EmptyPrefixStackError(AutodiffError):
    def __init__(self):
        super().__init__("pop_prefix(): prefix list is already empty!")


class GraphOrderError(AutodiffError):
    """An edge would point from a node to a source that is not strictly older."""

    def __init__(self, source: int, target: int):
        super().__init__(
            f"autodiff: edge {target} <- {source} violates construction order "
            f"(sources must have a smaller id than their target)"
        )
        self.source = source
        self.target = target


class TapeMismatchError(AutodiffError):
    """A forward operation combined variables recorded on different tapes."""


class SeedSizeError(AutodiffError):
    """set_gradient() seed is neither a scalar nor as wide as the node."""

    def __init__(self, index: int, got: int, expected: int):
        super().__init__(
            f"autodiff: set_gradient(): seed of size {got} does not match "
            f"node {index} of size {expected}"
        )
        self.index = index


class EdgeConflictError(AutodiffError):
    """A weighted edge would duplicate an existing special edge from the same source."""

    def __init__(self, source: int, target: int):
        super().__init__(
            f"autodiff: node {target} already has a special edge from {source}; "
            f"a weighted edge from the same source cannot be merged into it"
        )
        self.source = source
        self.target = target
