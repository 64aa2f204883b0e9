#!/usr/bin/env python3
"""
Bus Topology Module
Reconstruct the bus hierarchy implied by a flat feeder list.

Each feeder record runs from a load-side bus (from_bus) to its supplying
bus (to_bus). This module provides:
- Directed bus graph with per-bus feeders and children
- Hierarchy levels by BFS from the source buses (level 0)
- Structural validation: cycles, isolated buses, missing endpoints,
  missing transformer/source bus

Bus names are compared trimmed and upper-cased.
"""

import logging
from collections import deque
from dataclasses import dataclass, field

from feeder_records import normalize_bus

logger = logging.getLogger(__name__)

ROOT_BUS_PREFIXES = ("TRF",)
ROOT_BUS_KEYWORDS = ("TRANSFORMER",)


def is_root_bus(name: str) -> bool:
    """True for buses named like a transformer/source (TRF-*, *TRANSFORMER*)."""
    key = normalize_bus(name)
    if not key:
        return False
    return key.startswith(ROOT_BUS_PREFIXES) or any(k in key for k in ROOT_BUS_KEYWORDS)


@dataclass
class BusNode:
    name: str
    level: int = 0
    children: list = field(default_factory=list)
    feeders: list = field(default_factory=list)
    is_root: bool = False


@dataclass
class BusGraph:
    nodes: dict = field(default_factory=dict)
    roots: list = field(default_factory=list)
    disconnected: list = field(default_factory=list)
    issues: list = field(default_factory=list)

    def node(self, name: str) -> BusNode:
        key = normalize_bus(name)
        if key not in self.nodes:
            self.nodes[key] = BusNode(name=key)
        return self.nodes[key]

    def get(self, name: str):
        return self.nodes.get(normalize_bus(name))


def build_bus_graph(records: list) -> BusGraph:
    """
    Build the directed bus graph from feeder records.

    Records with an empty endpoint, or connecting a bus to itself, are
    reported in graph.issues and left out of the graph.

    Args:
        records: FeederRecords

    Returns:
        BusGraph with levels assigned
    """
    graph = BusGraph()

    for record in records:
        from_key, to_key = record.from_key, record.to_key
        if not from_key or not to_key:
            graph.issues.append(
                f"Feeder {record.cable_number}: missing "
                f"{'from_bus' if not from_key else 'to_bus'}, skipped"
            )
            continue
        if from_key == to_key:
            graph.issues.append(
                f"Feeder {record.cable_number}: from_bus and to_bus are both {from_key}, skipped"
            )
            continue

        source = graph.node(to_key)
        load = graph.node(from_key)
        load.feeders.append(record)
        if from_key not in source.children:
            source.children.append(from_key)

    assign_levels(graph)
    logger.debug("Bus graph: %d buses, %d roots", len(graph.nodes), len(graph.roots))
    return graph


def find_root_buses(graph: BusGraph) -> list[str]:
    """Buses that feed nothing upstream, plus buses named like a transformer."""
    return [
        name for name, node in graph.nodes.items()
        if not node.feeders or is_root_bus(name)
    ]


def assign_levels(graph: BusGraph) -> BusGraph:
    """
    Assign hierarchy levels by breadth-first search from the roots.

    Roots are level 0 and each child is parent + 1. Buses BFS never
    reaches (a loop with no source) keep level 0 and are listed in
    graph.disconnected.
    """
    graph.roots = find_root_buses(graph)
    for node in graph.nodes.values():
        node.level = 0
        node.is_root = node.name in graph.roots

    visited = set(graph.roots)
    queue = deque(graph.roots)
    while queue:
        current = graph.nodes[queue.popleft()]
        for child_name in current.children:
            if child_name in visited:
                continue
            visited.add(child_name)
            graph.nodes[child_name].level = current.level + 1
            queue.append(child_name)

    graph.disconnected = [name for name in graph.nodes if name not in visited]
    for name in graph.disconnected:
        graph.issues.append(f"Bus {name} is not connected to any source bus")
    return graph


def get_bus_levels(graph: BusGraph) -> dict:
    """Bus name -> hierarchy level."""
    return {name: node.level for name, node in graph.nodes.items()}


def _find_cycles(edges: dict) -> list[list[str]]:
    # Iterative DFS; feeder chains can be deeper than the recursion limit
    visited = set()
    cycles = []

    for root in edges:
        if root in visited:
            continue
        visited.add(root)
        stack = [root]
        on_stack = {root}
        pending = [iter(edges.get(root, []))]

        while pending:
            upstream = next(pending[-1], None)
            if upstream is None:
                pending.pop()
                on_stack.discard(stack.pop())
            elif upstream not in visited:
                visited.add(upstream)
                stack.append(upstream)
                on_stack.add(upstream)
                pending.append(iter(edges.get(upstream, [])))
            elif upstream in on_stack:
                cycles.append(stack[stack.index(upstream):] + [upstream])
    return cycles


def validate_bus_structure(records: list) -> dict:
    """
    Check a feeder list for structural problems.

    Args:
        records: FeederRecords

    Returns:
        dict with valid flag and issue strings
    """
    issues = []
    buses = []
    edges = {}
    connected = set()

    for record in records:
        from_key, to_key = record.from_key, record.to_key
        for key in (from_key, to_key):
            if key and key not in buses:
                buses.append(key)
        if not from_key or not to_key:
            issues.append(f"Feeder {record.cable_number}: missing from_bus or to_bus")
            continue
        if from_key == to_key:
            issues.append(f"Feeder {record.cable_number}: bus {from_key} feeds itself")
            continue
        edges.setdefault(from_key, [])
        if to_key not in edges[from_key]:
            edges[from_key].append(to_key)
        connected.update((from_key, to_key))

    for cycle in _find_cycles(edges):
        issues.append(f"Circular bus reference: {' -> '.join(cycle)}")

    for bus in buses:
        if bus not in connected:
            issues.append(f"Isolated bus: {bus} - not connected to any feeder")

    if not any(is_root_bus(bus) for bus in buses):
        issues.append('No transformer found - ensure at least one bus contains "TRF" or "TRANSFORMER"')

    return {
        "valid": not issues,
        "issues": issues,
    }


if __name__ == "__main__":
    from feeder_records import FeederRecord

    print("Testing bus_topology module...")
    print("=" * 60)

    records = [
        FeederRecord("C1", "MOTOR-1", "MCC-1", load_kw=30),
        FeederRecord("C2", "MOTOR-2", "MCC-1", load_kw=45),
        FeederRecord("C3", "MCC-1", "PMCC-1", load_kw=75),
        FeederRecord("C4", "PMCC-1", "TRF-MAIN", load_kw=75),
    ]
    graph = build_bus_graph(records)
    print(f"\nRoots: {graph.roots}")
    for name, level in get_bus_levels(graph).items():
        print(f"  L{level} {name}")

    print("\nCycle check:")
    loop = [
        FeederRecord("L1", "A", "B"),
        FeederRecord("L2", "B", "C"),
        FeederRecord("L3", "C", "A"),
    ]
    for issue in validate_bus_structure(loop)["issues"]:
        print(f"  {issue}")

    print("\n" + "=" * 60)
    print("All tests completed!")
