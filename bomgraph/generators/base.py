import os
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Pattern

from bomgraph.core.bom import BOM, Component
from bomgraph.core.errors import BomError, ManifestNotFoundError
from bomgraph.core.model import DependencyNode
from bomgraph.core.options import Options, combine_patterns, compile_pattern
from bomgraph.core.walker import walk_directories


class Generator(ABC):
    """Base class inherited by all ecosystem generators."""

    # Directory names never entered in recursive mode
    skip_directories: tuple = ()

    def __init__(self) -> None:
        self.options = Options()
        self.excludes: Optional[Pattern] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Short generator name used for lookups (e.g. npm, gradle)."""
        pass

    @property
    @abstractmethod
    def property_prefix(self) -> str:
        """Prefix of the properties this generator reads (e.g. Npm)."""
        pass

    @property
    @abstractmethod
    def manifest_files(self) -> List[str]:
        """Exact filenames that mark a directory as belonging to this ecosystem."""
        pass

    def detect(self, files: List[str]) -> bool:
        for manifest in self.manifest_files:
            if manifest in files:
                return True
        return False

    def property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.options.properties.get(f"{self.property_prefix}{key}", default)

    def configure(self, options: Options) -> None:
        """Applies options; raises ConfigurationError on malformed properties."""
        self.options = options
        scoped = self.property("Excludes")
        self.excludes = combine_patterns(
            compile_pattern(scoped) if scoped else None,
            options.excludes,
        )

    def generate_bom(self, path: str) -> BOM:
        if not self.options.recurse:
            return BOM(components=self.generate_components(path))

        if not os.path.isdir(path):
            raise ManifestNotFoundError(f"'{path}' is not a directory")

        components = []
        for directory in walk_directories(path, self.excludes, self.skip_directories):
            try:
                components.extend(self.generate_components(directory))
            except ManifestNotFoundError:
                continue
            except BomError as e:
                logging.warning(f"{self.name}: skipping '{directory}': {e}")
        return BOM(components=components)

    def generate_components(self, path: str) -> List[Component]:
        nodes = self.build_graph(path)
        for node in nodes:
            self.describe(node)
        return [node.to_component(self.options.include_subcomponents) for node in nodes]

    @abstractmethod
    def build_graph(self, path: str) -> List[DependencyNode]:
        """Reads the manifest in `path` and returns the resolved nodes, flattened."""
        pass

    @abstractmethod
    def describe(self, node: DependencyNode) -> None:
        """Fills in the node's provenance description."""
        pass
