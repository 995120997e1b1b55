import os
import json
import logging
from typing import Dict, List, Optional, Any, Iterator

from bomgraph.core import purl
from bomgraph.core.errors import ManifestMalformedError, ManifestNotFoundError
from bomgraph.core.model import DependencyNode
from bomgraph.core.options import Options, parse_bool, tests_allowed
from bomgraph.core.provenance import required_by
from bomgraph.generators.base import Generator

LOCKFILES = ["package-lock.json", "npm-shrinkwrap.json"]
MANIFEST = "package.json"
NODE_MODULES = "node_modules"
MAX_CHAIN_DEPTH = 5


class NpmGenerator(Generator):
    skip_directories = (NODE_MODULES,)

    def __init__(self) -> None:
        super().__init__()
        self.include_dev = False

    @property
    def name(self) -> str:
        return "npm"

    @property
    def property_prefix(self) -> str:
        return "Npm"

    @property
    def manifest_files(self) -> list[str]:
        return LOCKFILES

    def configure(self, options: Options) -> None:
        super().configure(options)
        requested = options.include_tests
        dev_property = self.property("DevDependencies")
        if dev_property is not None:
            requested = parse_bool(dev_property)
        self.include_dev = requested and tests_allowed(options.filters)

    def build_graph(self, path: str) -> List[DependencyNode]:
        lockfile = self._read_lockfile(path)
        manifest = self._read_manifest(path)

        packages = _mapping(lockfile.get("packages"), "packages")
        dependencies = _mapping(lockfile.get("dependencies"), "dependencies")
        if "dependencies" not in lockfile and packages:
            dependencies = _nest_packages(packages)
        if manifest is None and packages:
            manifest = _mapping(packages.get(""), "root package")

        # devDependencies first so a package listed in both keeps its runtime range
        requires = {}
        if manifest:
            requires.update(_mapping(manifest.get("devDependencies"), "devDependencies"))
            requires.update(_mapping(manifest.get("dependencies"), "dependencies"))

        name = lockfile.get("name") or path
        if not isinstance(name, str):
            raise ManifestMalformedError(f"Bad project name in npm lockfile: {name!r}")

        root = self._build_subtree(
            name,
            {
                "version": lockfile.get("version") or "unknown",
                "requires": requires,
                "dependencies": dependencies,
            },
            None,
        )
        self._resolve(root)
        return list(_iter_tree(root))

    def describe(self, node: DependencyNode) -> None:
        if node.root:
            node.description = "npm project root\n"
            return
        node.description = f"npm package\n\n{required_by(node, MAX_CHAIN_DEPTH)}"

    def _read_lockfile(self, path: str) -> Dict[str, Any]:
        for filename in LOCKFILES:
            lockfile_path = os.path.join(path, filename)
            if not os.path.exists(lockfile_path):
                continue

            try:
                with open(lockfile_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                raise ManifestMalformedError(f"Error reading {lockfile_path}: {e}") from e

            if not isinstance(data, dict):
                raise ManifestMalformedError(f"{lockfile_path} is not a JSON object")

            logging.info(f"Read '{filename}' in '{path}'")
            return data

        raise ManifestNotFoundError(f"No npm lockfile found in '{path}'")

    def _read_manifest(self, path: str) -> Optional[Dict[str, Any]]:
        manifest_path = os.path.join(path, MANIFEST)
        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logging.warning(f"Ignoring unreadable {manifest_path}: {e}")
            return None

        logging.debug(f"Read '{MANIFEST}' in '{path}'")
        return data if isinstance(data, dict) else None

    def _build_subtree(
        self, key: str, entry: Dict[str, Any], parent: Optional[DependencyNode]
    ) -> DependencyNode:
        # The lockfile mirrors the node_modules layout, not the requirement graph:
        # a package may be installed anywhere above the package that needs it.
        # Nodes are built in install order first and wired up by _resolve later.
        group, _, name = key.rpartition("/")
        version = entry.get("version") or "unknown"

        node = DependencyNode(name=name, group=group, version=version)
        node.purl = purl.purl(purl.NPM, key, version)
        node.parent = parent
        node.root = parent is None

        requires = entry.get("requires")
        if isinstance(requires, dict):
            node.requires = list(requires)

        dependencies = entry.get("dependencies") or {}
        if not isinstance(dependencies, dict):
            raise ManifestMalformedError(f"Bad dependencies of '{key}' in npm lockfile")

        for dep_name, info in dependencies.items():
            if not isinstance(info, dict):
                raise ManifestMalformedError(f"Bad lockfile entry for '{dep_name}'")
            if self.include_dev or not info.get("dev", False):
                node.installed[dep_name] = self._build_subtree(dep_name, info, node)

        node.subcomponents = list(node.installed.values())
        return node

    @staticmethod
    def _resolve(root: DependencyNode) -> None:
        # Node's lookup order: own node_modules first, then each enclosing one
        for node in _iter_tree(root):
            for name in node.requires:
                ancestor = node
                while ancestor is not None:
                    dependency = ancestor.installed.get(name)
                    if dependency is not None:
                        dependency.add_dependant(node)
                        break
                    ancestor = ancestor.parent
                else:
                    logging.debug(f"Dropping unresolved requirement '{name}' of {node.label}")


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestMalformedError(f"Bad '{what}' in npm manifest: expected an object")
    return value


def _iter_tree(node: DependencyNode) -> Iterator[DependencyNode]:
    yield node
    for child in node.installed.values():
        yield from _iter_tree(child)


def _nest_packages(packages: Dict[str, Any]) -> Dict[str, Any]:
    """
    Converts a lockfile v2/v3 `packages` map into the nested `dependencies`
    layout of lockfile v1.

    "node_modules/a/node_modules/b" becomes {"a": {"dependencies": {"b": ...}}}.
    Entries outside node_modules (workspaces) and symlinks are skipped.
    """
    prefix = NODE_MODULES + "/"
    separator = "/" + NODE_MODULES + "/"
    tree: Dict[str, Any] = {}

    for key, info in packages.items():
        if not key.startswith(prefix) or not isinstance(info, dict) or info.get("link"):
            continue

        names = key[len(prefix):].split(separator)
        level = tree
        for name in names[:-1]:
            level = level.setdefault(name, {}).setdefault("dependencies", {})

        entry = level.setdefault(names[-1], {})
        requires = {}
        requires.update(_mapping(info.get("optionalDependencies"), f"{key} optionalDependencies"))
        requires.update(_mapping(info.get("dependencies"), f"{key} dependencies"))
        entry["version"] = info.get("version", "")
        entry["dev"] = bool(info.get("dev", False))
        entry["requires"] = requires

    return tree
