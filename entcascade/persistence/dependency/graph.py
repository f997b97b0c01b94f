"""
Cascade dependency graph.

Builds a read-only picture of what a save or delete of a root entity would
reach: one node per entity (by identity), one edge per cascading reference,
plus the cycles found along the way. Building the graph follows exactly the
same rules as the cascade walker (only cascading relationships, never loading
uninitialized lazy data) but does not touch ``will_be_saved`` and emits no
events.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Set
import logging

from pydantic import BaseModel, ConfigDict, Field

from entcascade.persistence.entity import Entity
from entcascade.persistence.metadata import EntityTypeRegistry, default_registry
from entcascade.persistence.proxy import ProxyUnwrapper, TargetKind

logger = logging.getLogger("CascadeGraph")


class CycleStatus(Enum):
    """Status of cycle detection."""
    NO_CYCLE = 0
    CYCLE_DETECTED = 1


class GraphNode(BaseModel):
    """Represents one entity reached by the cascade."""
    entity: Any = Field(exclude=True)
    node_id: int  # id() of the entity
    dependencies: Set[int] = Field(default_factory=set)  # entities this one cascades to
    dependents: Set[int] = Field(default_factory=set)  # entities cascading to this one
    skipped_relationships: List[str] = Field(default_factory=list)  # left alone because not loaded

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def add_dependency(self, dep_id: int) -> None:
        self.dependencies.add(dep_id)

    def add_dependent(self, dep_id: int) -> None:
        self.dependents.add(dep_id)

    def __str__(self) -> str:
        return f"Node({self.entity!r}, deps={len(self.dependencies)}, dependents={len(self.dependents)})"

    def __repr__(self) -> str:
        return self.__str__()


class CascadeGraph(BaseModel):
    """
    The graph of entities a cascade from ``root`` reaches.

    Attributes:
        nodes: Map of entity identity to its node, in discovery order
        cycles: Detected cycles, each as a list of node ids closing on its first element
        root_id: Identity of the root entity
    """
    nodes: Dict[int, GraphNode] = Field(default_factory=dict)
    cycles: List[List[int]] = Field(default_factory=list)
    root_id: Optional[int] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def build(
        cls,
        root: Entity,
        unwrapper: Optional[ProxyUnwrapper] = None,
        registry: Optional[EntityTypeRegistry] = None,
    ) -> "CascadeGraph":
        graph = cls()
        graph.build_graph(root, unwrapper or ProxyUnwrapper(), registry or default_registry)
        return graph

    def build_graph(self, root: Entity, unwrapper: ProxyUnwrapper, registry: EntityTypeRegistry) -> CycleStatus:
        """
        Build the graph starting from ``root``.

        Returns:
            CycleStatus indicating if any cycles were detected
        """
        logger.debug(f"Building cascade graph for {root!r}")
        self.nodes.clear()
        self.cycles.clear()
        self.root_id = id(root)
        self.nodes[id(root)] = GraphNode(entity=root, node_id=id(root))

        to_process = [root]
        processed: Set[int] = set()
        while to_process:
            entity = to_process.pop(0)
            if id(entity) in processed:
                continue
            processed.add(id(entity))
            node = self.nodes[id(entity)]

            for relationship in registry.describe(type(entity)).cascading:
                target = unwrapper.target_of(entity, relationship)
                if target.kind is TargetKind.UNINITIALIZED:
                    node.skipped_relationships.append(relationship.name)
                    continue
                for dep in target.entities:
                    if id(dep) not in self.nodes:
                        self.nodes[id(dep)] = GraphNode(entity=dep, node_id=id(dep))
                    node.add_dependency(id(dep))
                    self.nodes[id(dep)].add_dependent(id(entity))
                    if id(dep) not in processed:
                        to_process.append(dep)

        status = self._detect_cycles()
        logger.info(f"Built cascade graph with {len(self.nodes)} nodes")
        if self.cycles:
            logger.warning(f"Detected {len(self.cycles)} cycles in the cascade graph of {root!r}")
        return status

    def _detect_cycles(self) -> CycleStatus:
        done: Set[int] = set()  # fully processed
        for start_id in self.nodes:
            if start_id in done:
                continue
            # Iterative DFS: path holds the current branch, stack the pending dependencies of each node on it
            path: List[int] = [start_id]
            on_path: Set[int] = {start_id}
            stack = [iter(sorted(self.nodes[start_id].dependencies))]
            while stack:
                dep_id = next(stack[-1], None)
                if dep_id is None:
                    stack.pop()
                    finished = path.pop()
                    on_path.discard(finished)
                    done.add(finished)
                elif dep_id in on_path:
                    start = path.index(dep_id)
                    self.cycles.append(path[start:] + [dep_id])
                elif dep_id not in done:
                    path.append(dep_id)
                    on_path.add(dep_id)
                    stack.append(iter(sorted(self.nodes[dep_id].dependencies)))
        return CycleStatus.CYCLE_DETECTED if self.cycles else CycleStatus.NO_CYCLE

    def get_node(self, entity: Any) -> Optional[GraphNode]:
        return self.nodes.get(id(entity))

    def entities(self) -> List[Any]:
        """All reached entities, in discovery order."""
        return [node.entity for node in self.nodes.values()]

    def contains(self, entity: Any) -> bool:
        return id(entity) in self.nodes

    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def get_topological_sort(self) -> List[Any]:
        """
        Return entities with the ones they cascade to first.

        Nodes are ordered by their longest dependency chain; edges that close a
        cycle are ignored.
        """
        depths: Dict[int, int] = {}
        for start_id in self.nodes:
            if start_id in depths:
                continue
            on_path: Set[int] = {start_id}
            stack = [(start_id, iter(self.nodes[start_id].dependencies))]
            while stack:
                node_id, pending = stack[-1]
                dep_id = next(pending, None)
                if dep_id is None:
                    # Post-order: every dependency not on the current path is finished
                    stack.pop()
                    on_path.discard(node_id)
                    depths[node_id] = max(
                        (depths[d] + 1 for d in self.nodes[node_id].dependencies if d in depths),
                        default=0,
                    )
                elif dep_id not in on_path and dep_id not in depths:
                    on_path.add(dep_id)
                    stack.append((dep_id, iter(self.nodes[dep_id].dependencies)))

        sorted_ids = sorted(self.nodes.keys(), key=lambda node_id: depths[node_id])
        return [self.nodes[node_id].entity for node_id in sorted_ids]
