"""Deployment ordering for interdependent releases.

Release graphs map a namespaced release id (``namespace/name``) to the ids it
depends on. :func:`sort_dependencies` returns an order in which every
dependency comes before the releases that depend on it.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from airgap_deployer.integrations.kubernetes.exceptions import CycleError

HELM_RELEASE_KIND = "HelmRelease"


def namespaced_name(namespace: str, name: str) -> str:
    """Build the graph node id for a release."""
    return f"{namespace}/{name}"


def sort_dependencies(graph: Mapping[str, Sequence[str]]) -> list[str]:
    """Order nodes so that each node follows all of its dependencies.

    Depth-first from every node in the mapping's iteration order, so the
    result is deterministic for a given input. Dependencies that are not
    themselves keys of ``graph`` are treated as leaf nodes and still emitted.

    Args:
        graph: Node id to the ids it depends on.

    Returns:
        Every node exactly once, dependencies first.

    Raises:
        CycleError: If following dependencies leads back to a node whose
            dependencies are still being visited.

    Example:
        >>> sort_dependencies({"A": [], "B": ["A"], "C": ["B"]})
        ['A', 'B', 'C']
    """
    ordered: list[str] = []
    visited: set[str] = set()

    for root in graph:
        if root in visited:
            continue

        # One dependency iterator per node on the path
        path: list[str] = [root]
        on_path: set[str] = {root}
        pending: list[Iterator[str]] = [iter(graph.get(root, ()))]
        while pending:
            dependency = next(pending[-1], None)
            if dependency is None:
                pending.pop()
                node = path.pop()
                on_path.discard(node)
                visited.add(node)
                ordered.append(node)
                continue
            if dependency in visited:
                continue
            if dependency in on_path:
                start = path.index(dependency)
                raise CycleError([*path[start:], dependency])

            path.append(dependency)
            on_path.add(dependency)
            pending.append(iter(graph.get(dependency, ())))

    return ordered


def build_dependency_graph(resources: Iterable[Mapping[str, Any]]) -> dict[str, list[str]]:
    """Extract a release graph from Flux ``HelmRelease`` documents.

    Each ``spec.dependsOn`` entry names another release; its namespace
    defaults to the namespace of the release that declares it. Documents of
    any other kind are ignored.

    Args:
        resources: Parsed manifest documents.

    Returns:
        Namespaced release id to namespaced dependency ids, in document order.
    """
    graph: dict[str, list[str]] = {}
    for resource in resources:
        if resource.get("kind") != HELM_RELEASE_KIND:
            continue
        metadata = resource.get("metadata") or {}
        namespace = metadata.get("namespace") or ""
        node = namespaced_name(namespace, metadata.get("name", ""))

        depends_on = (resource.get("spec") or {}).get("dependsOn") or []
        graph[node] = [
            namespaced_name(dep.get("namespace") or namespace, dep.get("name", ""))
            for dep in depends_on
        ]
    return graph
