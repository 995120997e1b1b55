from dataclasses import dataclass, field
from typing import List, Dict, Set, Optional

from bomgraph.core.bom import Component


@dataclass(eq=False)
class DependencyNode:
    name: str
    version: str
    group: str = ""
    purl: str = ""
    description: str = ""
    subcomponents: List['DependencyNode'] = field(default_factory=list, repr=False)

    # Graph state, dropped when converted to a Component
    requires: List[str] = field(default_factory=list, repr=False)
    dependants: List['DependencyNode'] = field(default_factory=list, repr=False)
    parent: Optional['DependencyNode'] = field(default=None, repr=False)
    installed: Dict[str, 'DependencyNode'] = field(default_factory=dict, repr=False)
    scopes: Set[str] = field(default_factory=set, repr=False)

    root: bool = False
    configuration: bool = False
    project: bool = False
    resolved: bool = True

    @property
    def label(self) -> str:
        if not self.version:
            return self.name
        return f"{self.name}@{self.version}"

    @property
    def terminal(self) -> bool:
        """Provenance chains stop at project roots and build configurations."""
        return self.root or self.configuration

    def add_dependant(self, node: 'DependencyNode') -> None:
        if node is self:
            return
        for existing in self.dependants:
            if existing is node:
                return
        self.dependants.append(node)

    def to_component(self, include_subcomponents: bool = False) -> Component:
        component = Component(
            name=self.name,
            version=self.version,
            group=self.group,
            description=self.description,
            purl=self.purl,
        )
        if include_subcomponents:
            component.components = [
                child.to_component(include_subcomponents) for child in self.subcomponents
            ]
        return component
