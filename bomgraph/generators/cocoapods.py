import os
import re
import logging
from typing import Any, Dict, List, Tuple

import yaml

from bomgraph.core import purl
from bomgraph.core.errors import ManifestMalformedError, ManifestNotFoundError
from bomgraph.core.model import DependencyNode
from bomgraph.core.provenance import required_by
from bomgraph.generators.base import Generator

LOCKFILE = "Podfile.lock"
MAX_CHAIN_DEPTH = 5

# "Name (Version)"
RE_POD = re.compile(r'^(\S+)\s+\((.*)\)$')


class CocoapodsGenerator(Generator):
    @property
    def name(self) -> str:
        return "cocoapods"

    @property
    def property_prefix(self) -> str:
        return "Cocoapods"

    @property
    def manifest_files(self) -> list[str]:
        return [LOCKFILE]

    def build_graph(self, path: str) -> List[DependencyNode]:
        lockfile = self._read_lockfile(path)

        root = DependencyNode(name=path, version="unknown", root=True)
        root.purl = purl.purl(purl.GENERIC, path, "unknown")
        # "Name (source or constraint)" -> "Name"
        root.requires = [_first_field(dep) for dep in lockfile.get("DEPENDENCIES") or []]

        nodes: Dict[str, DependencyNode] = {path: root}
        for entry in lockfile.get("PODS") or []:
            name, version, requires = _parse_pod(entry)
            node = DependencyNode(name=name, version=version, requires=requires)
            node.purl = purl.purl(purl.COCOAPODS, name, version)
            nodes[name] = node

        # Podfile.lock names subspecs in full, so lookups need no scoping
        for node in nodes.values():
            for name in node.requires:
                dependency = nodes.get(name)
                if dependency is None:
                    logging.debug(f"Dropping unresolved requirement '{name}' of {node.label}")
                    continue
                dependency.add_dependant(node)

        for name, node in nodes.items():
            if node.root or "/" not in name:
                continue
            base = nodes.get(name.split("/", 1)[0])
            if base is not None:
                base.subcomponents.append(node)

        return list(nodes.values())

    def describe(self, node: DependencyNode) -> None:
        if node.root:
            node.description = "CocoaPods project root\n"
            return
        node.description = f"CocoaPods package\n\n{required_by(node, MAX_CHAIN_DEPTH)}"

    @staticmethod
    def _read_lockfile(path: str) -> Dict[str, Any]:
        lockfile_path = os.path.join(path, LOCKFILE)
        if not os.path.exists(lockfile_path):
            raise ManifestNotFoundError(f"{LOCKFILE} not found in '{path}'")

        try:
            with open(lockfile_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ManifestMalformedError(f"Error reading {lockfile_path}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestMalformedError(f"{lockfile_path} is not a YAML mapping")

        logging.info(f"Read '{LOCKFILE}' in '{path}'")
        return data


def _parse_pod(entry: Any) -> Tuple[str, str, List[str]]:
    """
    PODS entries are either "Name (Version)" or, when the pod has
    dependencies, {"Name (Version)": ["Dep (= Version)", "Other"]}.
    """
    if isinstance(entry, str):
        name, version = _split_pod(entry)
        return name, version, []

    if isinstance(entry, dict) and len(entry) == 1:
        key, values = next(iter(entry.items()))
        if not isinstance(values, list):
            raise ManifestMalformedError(f"Bad requirements for pod '{key}'")
        name, version = _split_pod(key)
        return name, version, [_first_field(value) for value in values]

    raise ManifestMalformedError(f"Bad PODS entry: {entry!r}")


def _split_pod(text: Any) -> Tuple[str, str]:
    match = RE_POD.match(str(text).strip())
    if not match:
        raise ManifestMalformedError(f"Bad pod '{text}', expected 'Name (Version)'")
    return match.group(1), match.group(2)


def _first_field(text: Any) -> str:
    fields = str(text).split()
    if not fields:
        raise ManifestMalformedError("Empty requirement in Podfile.lock")
    return fields[0]
