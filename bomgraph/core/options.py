import os
import re
import sys
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Any, Iterable

from bomgraph.core.errors import ConfigurationError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_FILES = ["bomgraph.toml", "pyproject.toml"]

RELEASE = "release"
TEST = "test"


@dataclass
class Options:
    recurse: bool = False
    include_subcomponents: bool = False
    include_tests: bool = False
    filters: List[str] = field(default_factory=list)
    properties: Dict[str, str] = field(default_factory=dict)
    excludes: Optional[Pattern] = None
    generators: List[str] = field(default_factory=list)

    @property
    def wants_tests(self) -> bool:
        return self.include_tests and tests_allowed(self.filters)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> 'Options':
        properties = {}
        for key, value in (data.get("properties") or {}).items():
            if isinstance(value, (list, tuple)):
                value = ":".join(str(v) for v in value)
            elif isinstance(value, bool):
                value = "true" if value else "false"
            properties[key] = str(value)

        excludes = data.get("excludes")
        return cls(
            recurse=bool(data.get("recurse", False)),
            include_subcomponents=bool(data.get("include_subcomponents", False)),
            include_tests=bool(data.get("include_tests", False)),
            filters=list(data.get("filters") or []),
            properties=properties,
            excludes=compile_pattern(excludes) if excludes else None,
            generators=list(data.get("generators") or []),
        )


def tests_allowed(filters: Iterable[str]) -> bool:
    """The release preset rules out test/dev dependencies unless test is also selected."""
    filters = set(filters)
    return RELEASE not in filters or TEST in filters


def compile_pattern(pattern: str) -> Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"invalid exclude pattern '{pattern}': {e}") from e


def combine_patterns(*patterns: Optional[Pattern]) -> Optional[Pattern]:
    """Joins patterns by alternation; None entries are ignored."""
    present = [p for p in patterns if p is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return re.compile("|".join(p.pattern for p in present))


def parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise ConfigurationError(f"unsupported boolean value '{value}'")


def parse_properties(pairs: Iterable[str]) -> Dict[str, str]:
    """Turns ["Key=value", "Flag"] into {"Key": "value", "Flag": ""}."""
    properties = {}
    for pair in pairs:
        key, _, value = pair.partition("=")
        properties[key.strip()] = value
    return properties


def load_options(path: str) -> Options:
    """
    Reads options from a TOML file. A directory is searched for
    bomgraph.toml first and pyproject.toml ([tool.bomgraph]) second.
    Missing files give the defaults.
    """
    candidates = [path]
    if os.path.isdir(path):
        candidates = [os.path.join(path, name) for name in CONFIG_FILES]

    for candidate in candidates:
        if not os.path.isfile(candidate):
            continue

        logging.debug(f"Reading options from '{candidate}'")
        try:
            with open(candidate, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"cannot read '{candidate}': {e}") from e

        if os.path.basename(candidate) == "pyproject.toml":
            data = data.get("tool", {}).get("bomgraph")
            if data is None:
                continue
        return Options.from_mapping(data)

    return Options()
