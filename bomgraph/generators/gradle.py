import os
import re
import shutil
import logging
import tempfile
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from bomgraph.core import purl
from bomgraph.core.errors import CoordinateParseError, ManifestNotFoundError, ToolError
from bomgraph.core.model import DependencyNode
from bomgraph.core.options import Options
from bomgraph.core.provenance import required_by
from bomgraph.generators.base import Generator

BUILD_FILES = ["build.gradle", "build.gradle.kts"]
# Never the wrapper by default: ./gradlew would run code from the scanned project
DEFAULT_BINARIES = ["gradle"]
MAX_CHAIN_DEPTH = 3

INDENT = 5
NODE_PREFIX = re.compile(r"([| ]    )*[\\+]--- ")
CONFIG_LINE = re.compile(r"^(.*?) - (.*)$")
NAME_DELIMITER = re.compile(r"[: \n]")
ARROW = " -> "
PROJECT = "project "


@dataclass
class TreeNode:
    value: str
    nodes: List['TreeNode'] = field(default_factory=list)
    _coordinate: Optional[DependencyNode] = field(default=None, repr=False)

    def coordinate(self) -> DependencyNode:
        if self._coordinate is None:
            self._coordinate = parse_coordinate(self.value)
        return self._coordinate

    def walk(self) -> Iterator[Tuple['TreeNode', 'TreeNode']]:
        for child in self.nodes:
            yield child, self
            yield from child.walk()


@dataclass
class BuildConfig:
    """A top-level tree of the dependency report, e.g. compileClasspath."""
    tree: TreeNode

    @property
    def name(self) -> str:
        match = CONFIG_LINE.match(self.tree.value)
        return match.group(1) if match else self.tree.value.strip()

    @property
    def description(self) -> str:
        match = CONFIG_LINE.match(self.tree.value)
        return match.group(2) if match else ""

    def walk(self) -> Iterator[Tuple[TreeNode, Optional[TreeNode]]]:
        """Yields (dependency, dependant) pairs; dependant is None for direct entries."""
        for child in self.tree.nodes:
            yield child, None
            yield from child.walk()


class _LineReader:
    def __init__(self, lines: Iterable[str]) -> None:
        self._lines = iter(lines)
        self._next: Optional[str] = None
        self._done = False

    def peek(self) -> Optional[str]:
        if self._next is None and not self._done:
            try:
                self._next = next(self._lines).rstrip("\r\n")
            except StopIteration:
                self._done = True
        return self._next

    def take(self) -> str:
        line = self.peek()
        self._next = None
        return line


def parse_report(lines: Iterable[str]) -> List[TreeNode]:
    """
    Parses `gradle dependencies` console output into a forest.

    Every line of the output becomes a top-level node unless it is indented as
    a child of the line above it: a child at depth d starts with d-1 units of
    "|    " or five spaces followed by "+--- " or "\\--- ".
    """
    reader = _LineReader(lines)
    output = []
    while reader.peek() is not None:
        output.append(_parse_subtree(reader, 0))
    return output


def _parse_subtree(reader: _LineReader, depth: int) -> Optional[TreeNode]:
    line = reader.peek()
    if line is None:
        return None

    if depth > 0:
        width = depth * INDENT
        if len(line) < width or not NODE_PREFIX.fullmatch(line[:width]):
            return None
        line = line[width:]

    reader.take()
    tree = TreeNode(value=line)
    while True:
        subtree = _parse_subtree(reader, depth + 1)
        if subtree is None:
            return tree
        tree.nodes.append(subtree)


def parse_build_configs(lines: Iterable[str]) -> List[BuildConfig]:
    return [BuildConfig(tree) for tree in parse_report(lines) if tree.nodes]


def parse_coordinate(text: str) -> DependencyNode:
    """
    Parses one dependency entry of the report, e.g.

        com.wix:detox:+ -> 18.1.1
        org.hamcrest:hamcrest-library:1.3 (*)
        project react-native-local-auth (n)

    Substitution arrows are followed while the target is itself a coordinate.
    A trailing (n) marks the entry as not resolved.
    """
    node = DependencyNode(name="", version="")
    value = text.rstrip("\n") + "\n"

    while True:
        node.resolved = True
        if value.startswith(PROJECT):
            node.project = True
            value = value[len(PROJECT):]

        group, separator, rest = value.partition(":")
        if separator:
            node.group = group
            value = rest

        match = NAME_DELIMITER.search(value)
        if match is None or match.start() == 0:
            raise CoordinateParseError(f"unable to parse dependency value: '{text.strip()}'")
        node.name = value[:match.start()]
        # "g:n -> v" has no version: the delimiter is the arrow's leading space
        remainder = value[match.start():]
        value = value[match.end():]

        arrow = remainder.find(ARROW)
        if arrow == -1:
            break
        value = remainder[arrow + len(ARROW):]
        if ":" not in value:
            break

    if value.endswith("(*)\n") or value.endswith("(c)\n"):
        value = value[:-4]
    elif value.endswith("(n)\n"):
        node.resolved = False
        value = value[:-4]

    node.version = value.strip() or "unknown"

    full_name = f"{node.group}/{node.name}" if node.group else node.name
    node.purl = purl.purl(purl.GRADLE, full_name, node.version)
    return node


class GradleGenerator(Generator):
    def __init__(self) -> None:
        super().__init__()
        self.binaries = list(DEFAULT_BINARIES)

    @property
    def name(self) -> str:
        return "gradle"

    @property
    def property_prefix(self) -> str:
        return "Gradle"

    @property
    def manifest_files(self) -> list[str]:
        return BUILD_FILES

    def configure(self, options: Options) -> None:
        super().configure(options)
        paths = self.property("Path")
        self.binaries = [p for p in paths.split(":") if p] if paths else list(DEFAULT_BINARIES)

    def build_graph(self, path: str) -> List[DependencyNode]:
        if not any(os.path.exists(os.path.join(path, f)) for f in BUILD_FILES):
            raise ManifestNotFoundError(f"No Gradle build file in '{path}'")

        configs = parse_build_configs(self._run_gradle(path))
        logging.debug(f"Parsing dependency hierarchy of {len(configs)} configurations")
        return merge_configs(configs)

    def describe(self, node: DependencyNode) -> None:
        if node.configuration:
            node.description = "Gradle build configuration\n"
            return

        heading = "Gradle project\n" if node.project else "Gradle dependency\n"
        scopes = ", ".join(sorted(node.scopes))
        node.description = (
            f"{heading}\nAppears in: {scopes}\n"
            f"\n{required_by(node, MAX_CHAIN_DEPTH)}\n"
        )

    def locate_gradle(self, wd: str) -> str:
        for candidate in self.binaries:
            if not os.path.isabs(candidate) and candidate != os.path.basename(candidate):
                candidate = os.path.join(os.path.abspath(wd), candidate)
            found = shutil.which(candidate)
            if found:
                logging.debug(f"Using Gradle binary from '{found}'")
                return found
        raise ToolError(f"could not locate Gradle binary (tried {', '.join(self.binaries)})")

    def _run_gradle(self, path: str) -> Iterator[str]:
        """Streams the dependency report; raises ToolError once the output is drained."""
        logging.info(f"Listing dependencies in '{path}'")
        gradle = self.locate_gradle(path)

        # stderr goes to a file so a chatty build cannot block the stdout pipe
        with tempfile.TemporaryFile(mode="w+", encoding="utf-8", errors="replace") as stderr:
            try:
                process = subprocess.Popen(
                    [gradle, "-q", "--console", "plain", "dependencies"],
                    cwd=path,
                    stdout=subprocess.PIPE,
                    stderr=stderr,
                    encoding="utf-8",
                )
            except OSError as e:
                raise ToolError(f"failed to start '{gradle}': {e}") from e

            with process:
                try:
                    yield from process.stdout
                except UnicodeDecodeError as e:
                    process.kill()
                    raise ToolError(f"'{gradle} dependencies' printed undecodable output: {e}") from e
                returncode = process.wait()

            if returncode != 0:
                stderr.seek(0)
                raise ToolError(
                    f"'{gradle} dependencies' exited with status {returncode}", stderr.read()
                )


def merge_configs(configs: List[BuildConfig]) -> List[DependencyNode]:
    """
    Merges the per-configuration trees into one graph keyed by package URL.

    Direct entries of a configuration are attached to a synthetic node for the
    configuration itself, which terminates provenance chains. Unresolved
    entries are left out.
    """
    nodes: Dict[str, DependencyNode] = {}

    for config in configs:
        config_name = config.name
        for dependency, dependant in config.walk():
            parsed = dependency.coordinate()
            if not parsed.resolved:
                continue

            node = nodes.setdefault(parsed.purl, parsed)
            node.scopes.add(config_name)

            if dependant is not None:
                requirer = nodes.get(dependant.coordinate().purl)
                if requirer is not None:
                    node.add_dependant(requirer)
                continue

            configuration = nodes.get(config_name)
            if configuration is None:
                configuration = DependencyNode(name=config_name, version="", configuration=True)
                nodes[config_name] = configuration
            node.add_dependant(configuration)

    return list(nodes.values())
