from typing import List

from bomgraph.core.model import DependencyNode

REQUIRED_BY = "Required by:"


def shortest_chain(node: DependencyNode, max_depth: int) -> List[DependencyNode]:
    """
    Returns the shortest path of dependants leading from `node` to a project
    root or build configuration, nearest requirer first.

    The search is breadth-first and bounded: a path that has taken
    `max_depth + 1` hops without reaching a terminal node is accepted as is.
    Among paths of equal length the one found first wins.
    """
    if node.terminal:
        return []

    frontier = [[node]]
    visited = {id(node)}
    for hops in range(1, max_depth + 2):
        next_frontier = []
        for path in frontier:
            for dependant in path[-1].dependants:
                if id(dependant) in visited:
                    continue
                candidate = path + [dependant]
                if dependant.terminal or hops == max_depth + 1:
                    return candidate[1:]
                visited.add(id(dependant))
                next_frontier.append(candidate)
        if not next_frontier:
            break
        frontier = next_frontier

    return []


def required_by(node: DependencyNode, max_depth: int) -> str:
    chain = shortest_chain(node, max_depth)
    lines = "\n\t".join(dependant.label for dependant in chain)
    return f"{REQUIRED_BY}\n\t{lines}"
