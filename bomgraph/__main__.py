import sys
import asyncio
import logging
import argparse
from typing import List, Optional

from bomgraph.__version__ import __version__
from bomgraph.core.bom import merge, to_xml
from bomgraph.core.errors import BomError
from bomgraph.core.options import Options, compile_pattern, load_options, parse_properties
from bomgraph.core.uploader import DependencyTrackClient
from bomgraph.generators import GENERATORS, Generator, detect_generators, get_generator, run_generators

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bomgraph", description="Generate software bills of materials")
    parser.add_argument("path", nargs="?", default=".", help="project directory to scan")
    parser.add_argument("-g", "--generators", help="comma-separated list of generators to run")
    parser.add_argument("-r", "--recurse", action="store_true", default=None, help="scan the target path recursively")
    parser.add_argument("-x", "--excludes", help="regexp of paths to exclude in recursive mode")
    parser.add_argument("-f", "--filters", help="filtering presets, e.g. 'release' or 'test'")
    parser.add_argument("-p", "--properties", action="append", default=[], metavar="KEY=VALUE",
                        help="generator property, may be repeated")
    parser.add_argument("--subcomponents", action="store_true", default=None, help="nest subcomponents in the output")
    parser.add_argument("--tests", action="store_true", default=None, help="include test/dev dependencies")
    parser.add_argument("-c", "--config", help="TOML file or directory to read options from")
    parser.add_argument("-o", "--output", help="write the BOM to this file instead of stdout")
    parser.add_argument("--tui", action="store_true", help="browse the result interactively")
    parser.add_argument("--url", help="Dependency-Track API base URL to upload to")
    parser.add_argument("--api-key", default="", help="Dependency-Track API key")
    parser.add_argument("--project", default="", help="Dependency-Track project name")
    parser.add_argument("--project-version", default="", help="Dependency-Track project version")
    parser.add_argument("--project-uuid", default="", help="Dependency-Track project UUID")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> Options:
    options = load_options(args.config) if args.config else Options()

    if args.recurse is not None:
        options.recurse = args.recurse
    if args.subcomponents is not None:
        options.include_subcomponents = args.subcomponents
    if args.tests is not None:
        options.include_tests = args.tests
    if args.filters:
        options.filters = [f.strip() for f in args.filters.split(",") if f.strip()]
    if args.excludes:
        options.excludes = compile_pattern(args.excludes)
    if args.generators:
        options.generators = [g.strip() for g in args.generators.split(",") if g.strip()]
    options.properties.update(parse_properties(args.properties))
    return options


def select_generators(options: Options, path: str) -> List[Generator]:
    if options.generators:
        candidates = []
        for name in options.generators:
            try:
                candidates.append(get_generator(name))
            except BomError as e:
                logging.warning(str(e))
    elif options.recurse:
        candidates = list(GENERATORS)
    else:
        candidates = detect_generators(path)

    configured = []
    for generator in candidates:
        try:
            generator.configure(options)
        except BomError as e:
            logging.warning(f"Configuring '{generator.name}' failed: {e}")
            continue
        configured.append(generator)
    return configured


async def publish(client: DependencyTrackClient, document: bytes, args: argparse.Namespace) -> str:
    server_version = await client.version()
    logging.info(f"Connected to Dependency-Track {server_version or '(unknown version)'}")
    return await client.upload(document, args.project, args.project_version, args.project_uuid)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO

    if args.tui:
        # the terminal belongs to the viewer
        logging.basicConfig(filename="debug.log", level=logging.DEBUG, filemode="w", format=LOG_FORMAT)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)

    try:
        options = build_options(args)
    except BomError as e:
        logging.error(str(e))
        return 2

    generators = select_generators(options, args.path)
    if not generators:
        logging.error(f"No applicable generators for '{args.path}'")
        return 1

    if args.tui:
        from bomgraph.app import BomApp

        BomApp(args.path, generators).run()
        return 0

    results, _ = run_generators(generators, args.path)
    if not results:
        logging.error("No BOM could be generated")
        return 1

    document = to_xml(merge(bom for _, bom in results))

    if args.url:
        try:
            client = DependencyTrackClient(args.url, args.api_key)
            token = asyncio.run(publish(client, document, args))
        except BomError as e:
            logging.error(f"Upload failed: {e}")
            return 1
        logging.info(f"Upload accepted, token {token}")
        return 0

    if args.output:
        with open(args.output, "wb") as f:
            f.write(document)
    else:
        sys.stdout.buffer.write(document + b"\n")
    return 0


# Development mode
if __name__ == "__main__":
    sys.exit(main())
