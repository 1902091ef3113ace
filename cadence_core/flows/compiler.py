"""
Graph Compiler.

Turns a flat list of nodes and edges into a FlowGraph and finds its entry
nodes. Pure and deterministic: no I/O, linear in nodes plus edges.
"""

from typing import Dict, List, Sequence, Set

import structlog

from .base import (
    CycleDetectedError,
    DuplicateNodeIdError,
    FlowEdge,
    FlowGraph,
    FlowNode,
    NoEntryNodeError,
)

logger = structlog.get_logger(__name__)

# DFS colours for cycle detection
_WHITE, _GREY, _BLACK = 0, 1, 2


class GraphCompiler:
    """
    Compiles flow nodes and edges into an adjacency structure.

    Checks:
    - Node ids are unique
    - Edges reference existing nodes (dangling edges are dropped)
    - At least one entry node exists
    - The graph is acyclic
    """

    def __init__(self, detect_cycles: bool = True):
        self.detect_cycles = detect_cycles

    def compile(
        self,
        nodes: Sequence[FlowNode],
        edges: Sequence[FlowEdge],
    ) -> FlowGraph:
        """
        Compile nodes and edges.

        Args:
            nodes: Flow nodes, in document order
            edges: Flow edges, in document order

        Returns:
            FlowGraph with children lists in edge order and entry ids in
            node order

        Raises:
            DuplicateNodeIdError: Two nodes share an id
            NoEntryNodeError: Non-empty flow where every node has a parent
            CycleDetectedError: A node can reach itself
        """
        graph = FlowGraph()

        for node in nodes:
            if node.id in graph.nodes:
                raise DuplicateNodeIdError(node.id)
            graph.nodes[node.id] = node
            graph.children[node.id] = []

        targets: Set[str] = set()
        for edge in edges:
            if edge.source not in graph.nodes or edge.target not in graph.nodes:
                logger.warning(
                    "dangling_edge_ignored",
                    edge_id=edge.id,
                    source=edge.source,
                    target=edge.target,
                )
                continue
            graph.children[edge.source].append(edge.target)
            targets.add(edge.target)

        graph.entry_ids = [node_id for node_id in graph.nodes if node_id not in targets]

        if graph.nodes and not graph.entry_ids:
            raise NoEntryNodeError(len(graph.nodes))

        if self.detect_cycles:
            self._check_acyclic(graph)

        logger.debug(
            "graph_compiled",
            nodes=len(graph.nodes),
            edges=graph.edge_count,
            entries=len(graph.entry_ids),
        )

        return graph

    def _check_acyclic(self, graph: FlowGraph) -> None:
        """Iterative three-colour DFS over every node."""
        colour: Dict[str, int] = {node_id: _WHITE for node_id in graph.nodes}

        for root in graph.nodes:
            if colour[root] != _WHITE:
                continue

            # Stack of (node_id, index of next child to look at)
            stack: List[List] = [[root, 0]]
            colour[root] = _GREY

            while stack:
                frame = stack[-1]
                node_id, index = frame
                children = graph.children[node_id]

                if index >= len(children):
                    colour[node_id] = _BLACK
                    stack.pop()
                    continue

                frame[1] = index + 1
                child = children[index]

                if colour[child] == _GREY:
                    path = [f[0] for f in stack]
                    path = path[path.index(child):] + [child]
                    raise CycleDetectedError(path)

                if colour[child] == _WHITE:
                    colour[child] = _GREY
                    stack.append([child, 0])


def compile_graph(
    nodes: Sequence[FlowNode],
    edges: Sequence[FlowEdge],
) -> FlowGraph:
    """Compile with default settings."""
    return GraphCompiler().compile(nodes, edges)


__all__ = ["GraphCompiler", "compile_graph"]
