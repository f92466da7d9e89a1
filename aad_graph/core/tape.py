# aad_graph/core/tape.py
from __future__ import annotations
import dataclasses
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from . import numeric
from . import special as special_mod
from .config import TapeConfig
from .errors import (
    EdgeConflictError,
    EmptyPrefixStackError,
    GraphOrderError,
    NoGradientRequestedError,
    RefCountUnderflowError,
    SeedSizeError,
    UnknownNodeError,
)
from .node import Edge, Node, Special, SpecialKind

logger = logging.getLogger(__name__)


class Tape:
    """
    Reference-counted reverse-mode graph.

    Nodes live in an arena keyed by monotonically increasing ids (starting at
    1; 0 means "not differentiable"). Every edge points from a node to a
    strictly older source, so the graph is a DAG by construction and the
    backward sweep can simply visit scheduled ids in decreasing order.

    Ownership
    ---------
    - A node owns its list of incoming edges.
    - A node is shared by every edge sourcing it and by every external holder
      of its id; `ref_count` counts both. Ids returned by append*/append_leaf
      come with one reference that the caller owns and must release with
      dec_ref() (DiffArray does this automatically).
    - The count reaching zero frees the node at once and cascades to the
      sources of its edges.

    Not thread-safe: use one Tape per thread.
    """

    def __init__(self, config: Optional[TapeConfig] = None):
        # copied: set_log_level()/set_contract_edges() act on this tape only
        self.config = dataclasses.replace(config) if config is not None else TapeConfig()
        self.nodes: Dict[int, Node] = {}
        self.prefix: List[str] = []
        self.scheduled: Set[int] = set()

        # Counters; the *_last fields mark the state after the last freeing pass
        self.node_counter = 1
        self.node_counter_last = 1
        self.edge_contractions = 0
        self.edge_contractions_last = 0
        self.edge_merges = 0
        self.edge_merges_last = 0

        # Logical buffer bound for gather/scatter recording
        self._operand: Any = None
        self._operand_size = 0
        self._operand_permute = False

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, index: int) -> bool:
        return index in self.nodes

    # ---------------- configuration / diagnostics ---------------- #
    def set_log_level(self, level: int) -> None:
        self.config.log_level = int(level)

    def set_contract_edges(self, value: bool) -> None:
        self.config.contract_edges = bool(value)

    def _log(self, level: int, msg: str, *args) -> None:
        if self.config.log_level >= level:
            if level <= 1:
                logger.info("autodiff: " + msg, *args)
            else:
                logger.debug("autodiff: " + msg, *args)

    def report_leaks(self) -> int:
        """Log every node still alive (log level >= 1) and return how many there are."""
        if self.config.log_level >= 1:
            for idx in sorted(self.nodes):
                logger.warning("autodiff: variable %d still live. (ref_count=%d)",
                               idx, self.nodes[idx].ref_count)
        return len(self.nodes)

    def node(self, index: int) -> Node:
        try:
            return self.nodes[index]
        except KeyError:
            raise UnknownNodeError(index) from None

    # ---------------- node construction ---------------- #
    def append_node(self, size: int, label: Optional[str] = None) -> int:
        """Allocate a node with no edges; the caller owns its single reference."""
        idx = self.node_counter
        self.node_counter += 1
        name = label or ""
        if self.prefix:
            name = "/".join(self.prefix + [name])
        self.nodes[idx] = Node(label=name, size=int(size))
        self._log(3, 'append_node("%s", size=%d) -> %d', label or "", size, idx)
        self.inc_ref(idx)
        return idx

    def append_leaf(self, size: int) -> int:
        """Declare a differentiable input; its gradient is valid immediately."""
        idx = self.append_node(size, "'unnamed'")
        n = self.nodes[idx]
        n.grad = numeric.zero(n.size)
        return idx

    def append(self, label: str, size: int,
               sources: Sequence[int], weights: Sequence[Any]) -> int:
        """
        Record one elementary operation.

        Args:
            label   : Operation name (diagnostics only)
            size    : Width of the result
            sources : Ids of the operands (0 for non-differentiable operands)
            weights : Local partials d(result)/d(operand), one per source

        Returns:
            New node id, or 0 if no operand is differentiable (nothing recorded).
        """
        sources = [int(s) for s in sources]
        weights = list(weights)
        if len(sources) != len(weights):
            raise ValueError(
                f"append(): got {len(sources)} sources but {len(weights)} weights")
        if all(s == 0 for s in sources):
            return 0
        idx = self.append_node(size, label)
        self._log(3, 'append("%s", %d <- %s)', label, idx, sources)
        for s, w in zip(sources, weights):
            self.append_edge(s, idx, w)
        return idx

    def set_label(self, index: int, label: str) -> None:
        if index == 0:
            return
        self._log(3, "set_label(%d) -> %s", index, label)
        n = self.node(index)
        n.label = f"'{label}'"
        n.grad_label = f"{label}.grad"

    # ---------------- label prefixes ---------------- #
    def push_prefix(self, value: str) -> None:
        self.prefix.append(value)

    def pop_prefix(self) -> None:
        if not self.prefix:
            raise EmptyPrefixStackError()
        self.prefix.pop()

    @contextmanager
    def prefix_scope(self, value: str):
        """
        Group the nodes created inside the block under `value/`:
            with tape.prefix_scope("layer1"):
                ...
        """
        self.push_prefix(value)
        try:
            yield self
        finally:
            self.pop_prefix()

    # ---------------- edges ---------------- #
    def _check_order(self, source: int, target: int) -> None:
        if source >= target:
            raise GraphOrderError(source, target)

    def _insert_edge(self, target: int, edge: Edge) -> None:
        self._check_order(edge.source, target)
        self.node(target).edges.append(edge)
        self.inc_ref(edge.source)

    def _contractible(self, source: Node, target: Node) -> bool:
        return (self.config.contract_edges
                and source.degree > 0
                and not source.has_special
                and source.size == target.size)

    def _existing_edge(self, target: Node, source_idx: int, target_idx: int) -> Optional[Edge]:
        """Weighted edge of `target` from `source_idx`, if any (the merge partner)."""
        for edge in target.edges:
            if edge.source == source_idx:
                if edge.special is not None:
                    raise EdgeConflictError(source_idx, target_idx)
                return edge
        return None

    def append_edge(self, source_idx: int, target_idx: int, weight: Any) -> None:
        """
        Add the dependency target <- source with local partial `weight`.

        Pass-through sources (only weighted edges, same size) are contracted
        away; an existing weighted edge from the same source absorbs the
        weight instead of a duplicate being inserted. A special edge from the
        same source cannot absorb it: that raises EdgeConflictError.
        """
        if source_idx == 0:
            return
        self._check_order(source_idx, target_idx)
        self._log(4, "append_edge(%d <- %d)", target_idx, source_idx)

        source = self.node(source_idx)
        target = self.node(target_idx)

        if self._contractible(source, target):
            for edge in list(source.edges):
                self._log(4, " ... contracting with edge -> %d", edge.source)
                self.append_edge_prod(edge.source, target_idx, weight, edge.weight)
                self.edge_contractions += 1
            return

        edge = self._existing_edge(target, source_idx, target_idx)
        if edge is not None:
            edge.weight = edge.weight + weight
            self._log(4, " ... merging into existing edge")
            self.edge_merges += 1
            return

        self._insert_edge(target_idx, Edge(source_idx, weight=weight))

    def append_edge_prod(self, source_idx: int, target_idx: int,
                         weight1: Any, weight2: Any) -> None:
        """append_edge() with the weight given as the product weight1 * weight2."""
        if source_idx == 0:
            return
        self._check_order(source_idx, target_idx)
        self._log(4, "append_edge_prod(%d <- %d)", target_idx, source_idx)

        source = self.node(source_idx)
        target = self.node(target_idx)

        if self._contractible(source, target):
            for edge in list(source.edges):
                self._log(4, " ... contracting with edge -> %d", edge.source)
                self.append_edge_prod(edge.source, target_idx,
                                      numeric.safe_mul(weight1, weight2), edge.weight)
                self.edge_contractions += 1
            return

        edge = self._existing_edge(target, source_idx, target_idx)
        if edge is not None:
            edge.weight = numeric.safe_fmadd(weight1, weight2, edge.weight)
            self._log(4, " ... merging into existing edge")
            self.edge_merges += 1
            return

        self._insert_edge(target_idx,
                          Edge(source_idx, weight=numeric.safe_mul(weight1, weight2)))

    # ---------------- gather / scatter ---------------- #
    def set_scatter_gather_operand(self, operand: Any, size: int = 0,
                                   permute: bool = False) -> None:
        """
        Bind the logical buffer used by the next append_gather/append_scatter*.

        `operand` is any object with a mutable int attribute `index` (e.g. a
        DiffArray or an OperandSlot); scatters replace its index with the node
        describing the buffer after the write. Pass None to unbind.
        """
        self._operand = operand
        self._operand_size = int(size)
        self._operand_permute = bool(permute)

    def append_gather(self, offset: Any, mask: Any = None) -> int:
        """Record y = gather(operand, offset, mask); returns 0 if the operand is constant."""
        if self._operand is None or self._operand.index == 0:
            return 0
        source = self._operand.index
        offset = numeric.as_index(offset)
        mask = numeric.as_mask(mask, offset.size)
        numeric.active_offsets(offset, mask)

        sp = Special(SpecialKind.GATHER, offset, mask,
                     size=self.node(source).size,
                     permute=self._operand_permute)
        target = self.append_node(offset.size, "gather")
        self._insert_edge(target, Edge(source, special=sp))
        self._log(3, "append_gather(%d <- %d)", target, source)
        return target

    def append_scatter(self, source: int, offset: Any, mask: Any = None) -> None:
        """Record operand = scatter(operand, source, offset, mask)."""
        self._append_scatter(SpecialKind.SCATTER, source, offset, mask)

    def append_scatter_add(self, source: int, offset: Any, mask: Any = None) -> None:
        """Record operand = scatter_add(operand, source, offset, mask)."""
        self._append_scatter(SpecialKind.SCATTER_ADD, source, offset, mask)

    def _append_scatter(self, kind: SpecialKind, source: int,
                        offset: Any, mask: Any) -> None:
        if self._operand is None:
            return
        target_orig = self._operand.index
        size = self._operand_size
        offset = numeric.as_index(offset)
        mask = numeric.as_mask(mask, offset.size)
        numeric.active_offsets(offset, mask)
        plain = kind is SpecialKind.SCATTER

        # Slots of the previous buffer state that survive the write
        keep = 1.0
        if plain and not self._operand_permute:
            keep = numeric.scatter(numeric.full(1.0, size), 0.0, offset, mask)

        if source == 0:
            # constant written into the buffer: only the overwritten slots change
            if plain and target_orig != 0:
                target_new = self.append("scatter_mask", size, [target_orig], [keep])
                self.dec_ref(target_orig)
                self._operand.index = target_new
            return

        target_new = self.append_node(size, kind.value)
        self._insert_edge(target_new, Edge(source, special=Special(kind, offset, mask)))

        if target_orig != 0:
            sa_node = target_new
            if plain:
                target_new = self.append("scatter_combine", size,
                                         [sa_node, target_orig], [1.0, keep])
            else:
                target_new = self.append("add", size,
                                         [sa_node, target_orig], [1.0, 1.0])
            self.dec_ref(sa_node)
            self.dec_ref(target_orig)

        self._operand.index = target_new
        self._log(3, "append_%s(%d <- %d) -> %d", kind.value, target_orig, source, target_new)

    # ---------------- reference counting ---------------- #
    def inc_ref(self, index: int) -> None:
        if index == 0:
            return
        node = self.node(index)
        node.ref_count += 1
        self._log(4, "inc_ref(%d) -> %d", index, node.ref_count)

    def dec_ref(self, index: int) -> None:
        """
        Drop one reference; at zero the node is freed and its sources are
        released in turn (iteratively, so long chains are fine).
        """
        if index == 0:
            return
        pending = [index]
        while pending:
            idx = pending.pop()
            node = self.node(idx)
            if node.ref_count == 0:
                raise RefCountUnderflowError(idx)
            node.ref_count -= 1
            self._log(4, "dec_ref(%d) -> %d", idx, node.ref_count)
            if node.ref_count == 0:
                pending.extend(self._free_node(idx))

    def _free_node(self, index: int) -> List[int]:
        """Remove a node from the arena; returns the sources its edges held."""
        self._log(4, "free_node(%d)", index)
        node = self.nodes.pop(index, None)
        if node is None:
            raise UnknownNodeError(index, "free_node")
        released = [e.source for e in node.edges]
        node.edges = []
        return released

    # ---------------- scheduling ---------------- #
    def _dfs(self, index: int, clear_grad: bool, visited: Set[int]) -> None:
        stack = [index]
        while stack:
            k = stack.pop()
            if k in visited:
                continue
            visited.add(k)
            n = self.node(k)
            if clear_grad:
                n.grad = numeric.zero(n.size)
                if n.label and not n.grad_label:
                    n.grad_label = n.label + ".grad"
            stack.extend(e.source for e in n.edges)

    def reachable(self, roots: Iterable[int]) -> Set[int]:
        """Ids reachable from `roots` (inclusive). Leaves the schedule untouched."""
        seen: Set[int] = set()
        for r in roots:
            if r != 0:
                self._dfs(r, False, seen)
        return seen

    # ---------------- gradients ---------------- #
    def gradient(self, index: int):
        if index == 0:
            raise NoGradientRequestedError("gradient")
        return self.node(index).grad

    def set_gradient(self, index: int, value: Any) -> None:
        """
        Seed `index` with `value` and schedule everything it depends on.

        Gradients of newly scheduled nodes are reset to zero. Several seeds may
        be set before a single backward() call.
        """
        if index == 0:
            raise NoGradientRequestedError("set_gradient")
        n = self.node(index)
        seed = numeric.as_value(value)
        if seed.size not in (1, n.size):
            raise SeedSizeError(index, seed.size, n.size)
        if seed.size == 1 and n.size > 1:
            seed = numeric.full(seed[0], n.size)
        self._dfs(index, True, self.scheduled)
        n.grad = seed

    def backward(self, free_graph: bool = False) -> None:
        """
        Propagate the seeded gradients through the scheduled nodes.

        Args:
            free_graph : Release every edge as soon as it has been used. Nodes
                         without external holders disappear from the arena;
                         the remaining ones lose their edges.

        The schedule is cleared even when the sweep raises; with free_graph the
        nodes pinned for the sweep are unpinned again and unused edges stay.
        """
        order = sorted(self.scheduled, reverse=True)
        edge_count = 0
        pinned: Set[int] = set()

        try:
            if free_graph:
                for idx in order:
                    self.inc_ref(idx)
                    pinned.add(idx)

            for target_idx in order:
                target = self.node(target_idx)

                if target.is_scalar and numeric.slices(target.grad) != 1:
                    target.grad = numeric.hsum(target.grad)

                if free_graph:
                    while target.edges:
                        edge = target.edges[0]
                        edge_count += self._propagate(target_idx, target, edge)
                        del target.edges[0]
                        self.dec_ref(edge.source)
                    pinned.discard(target_idx)
                    self.dec_ref(target_idx)
                else:
                    for edge in target.edges:
                        edge_count += self._propagate(target_idx, target, edge)

            self._log(1, "processed %d/%d nodes, %d edges [%d edge contractions, %d edge merges]..",
                      len(order), self.node_counter - self.node_counter_last, edge_count,
                      self.edge_contractions - self.edge_contractions_last,
                      self.edge_merges - self.edge_merges_last)

            if free_graph:
                self.node_counter_last = self.node_counter
                self.edge_contractions_last = self.edge_contractions
                self.edge_merges_last = self.edge_merges
        finally:
            self.scheduled.clear()
            for idx in sorted(pinned, reverse=True):
                self.dec_ref(idx)

    def _propagate(self, target_idx: int, target: Node, edge: Edge) -> int:
        """Push target.grad through one edge; returns 1 for a weighted edge."""
        if edge.special is not None:
            special_mod.apply_adjoint(self, target_idx, edge)
            return 0
        source = self.node(edge.source)
        source.grad = numeric.safe_fmadd(edge.weight, target.grad, source.grad)
        return 1
