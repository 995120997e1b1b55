import os
import logging
from typing import Dict, List, Tuple

from bomgraph.core.bom import BOM
from bomgraph.core.errors import BomError, ConfigurationError
from .base import Generator
from .cocoapods import CocoapodsGenerator
from .gradle import GradleGenerator
from .npm import NpmGenerator

GENERATORS: List[Generator] = [
    NpmGenerator(),
    GradleGenerator(),
    CocoapodsGenerator(),
]


def get_generator(name: str) -> Generator:
    for generator in GENERATORS:
        if generator.name == name.strip().lower():
            return generator
    raise ConfigurationError(f"no such generator: '{name}'")


def detect_generators(path: str = ".") -> List[Generator]:
    """Returns the generators whose manifests are present in `path`."""
    try:
        files = os.listdir(path)
    except OSError as e:
        logging.warning(f"Cannot list '{path}': {e}")
        return []

    return [generator for generator in GENERATORS if generator.detect(files)]


def run_generators(generators: List[Generator], path: str) -> Tuple[List[Tuple[str, BOM]], Dict[str, BomError]]:
    """
    Runs each generator on `path`. A failing generator is logged and reported
    in the returned error map; the others still run.
    """
    results = []
    errors = {}
    for generator in generators:
        logging.info(f"Running '{generator.name}' generator")
        try:
            bom = generator.generate_bom(path)
        except BomError as e:
            logging.warning(f"'{generator.name}' generator returned an error: {e}")
            errors[generator.name] = e
            continue
        results.append((generator.name, bom))
    return results, errors
