"""
Dependency graph builder.

Turns a set of ResourceSpecs into ordered layers. A layer is the set of
resources with no unresolved dependencies among the resources not yet
layered; layers are processed one after another, members of a layer
concurrently.

Usage:
    graph = DependencyGraph.build(specs)
    for layer in graph.layers:
        ...
    for layer in graph.reverse_layers():
        ...  # teardown order
"""

import logging
from typing import Dict, Iterable, Tuple

import networkx as nx

from .exceptions import ConfigurationError, CycleDetected
from .models import ResourceSpec

logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Read-only DAG of resource specs with precomputed topological layers.

    Edges point from a dependency to its dependent, so ``successors(id)``
    are the resources that depend on ``id``.
    """

    def __init__(self, graph: nx.DiGraph, layers: Tuple[Tuple[str, ...], ...]):
        self._graph = graph
        self._layers = layers
        self._layer_of: Dict[str, int] = {
            node: index for index, layer in enumerate(layers) for node in layer
        }

    @classmethod
    def build(cls, specs: Iterable[ResourceSpec]) -> "DependencyGraph":
        """
        Build and validate the graph.

        Raises:
            ConfigurationError: On duplicate ids, unknown dependencies or
                ${ref} placeholders not declared in depends_on
            CycleDetected: If the dependency edges contain a cycle
        """
        specs = list(specs)
        graph = nx.DiGraph()

        for spec in specs:
            if spec.id in graph:
                raise ConfigurationError("Duplicate resource id", resource_id=spec.id)
            graph.add_node(spec.id, kind=spec.kind)

        for spec in specs:
            for dependency in spec.depends_on:
                if dependency not in graph:
                    raise ConfigurationError(
                        f"Depends on unknown resource '{dependency}'",
                        resource_id=spec.id
                    )
                graph.add_edge(dependency, spec.id)

            undeclared = spec.references() - spec.depends_on
            if undeclared:
                raise ConfigurationError(
                    f"References {sorted(undeclared)} must also be listed in depends_on",
                    resource_id=spec.id
                )

        layers = cls._compute_layers(graph)
        logger.debug(f"Built dependency graph: {len(specs)} resources in {len(layers)} layers")
        return cls(graph, layers)

    @staticmethod
    def _compute_layers(graph: nx.DiGraph) -> Tuple[Tuple[str, ...], ...]:
        in_degree = {node: graph.in_degree(node) for node in graph.nodes}
        remaining = set(graph.nodes)
        layers = []

        while remaining:
            layer = sorted(node for node in remaining if in_degree[node] == 0)
            if not layer:
                raise CycleDetected(remaining)
            for node in layer:
                remaining.discard(node)
                for dependent in graph.successors(node):
                    in_degree[dependent] -= 1
            layers.append(tuple(layer))

        return tuple(layers)

    @property
    def layers(self) -> Tuple[Tuple[str, ...], ...]:
        """Layers in creation order, ids sorted within a layer."""
        return self._layers

    def reverse_layers(self) -> Tuple[Tuple[str, ...], ...]:
        """Layers in deletion order."""
        return tuple(reversed(self._layers))

    def layer_of(self, resource_id: str) -> int:
        """Index of the layer containing resource_id."""
        return self._layer_of[resource_id]

    def dependencies(self, resource_id: str) -> frozenset[str]:
        """Direct dependencies of resource_id."""
        return frozenset(self._graph.predecessors(resource_id))

    def dependents(self, resource_id: str) -> frozenset[str]:
        """Resources that directly depend on resource_id."""
        return frozenset(self._graph.successors(resource_id))

    def descendants(self, resource_id: str) -> frozenset[str]:
        """All resources that transitively depend on resource_id."""
        return frozenset(nx.descendants(self._graph, resource_id))

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()
