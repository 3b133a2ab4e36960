"""
Command line entry point.

Usage:
    python -m ontoschema sql -c settings.yaml            # SQL DDL to stdout
    python -m ontoschema class-diagram -o model.mmd      # Mermaid class diagram
    python -m ontoschema er-diagram -c settings.yaml -v  # with DEBUG logging
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import LoggingSettings, load_settings
from .errors import OntoschemaError
from .generators import generate, output_path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("ontoschema.yaml")

GENERATOR_HELP = {
    "class": "Print a summary of the simplified class model",
    "class-diagram": "Render a Mermaid class diagram",
    "er-diagram": "Render a Mermaid ER diagram of the relational schema",
    "sql": "Render SQL DDL",
    "shacl": "Render SHACL shapes as Turtle",
}


def configure_logging(settings: LoggingSettings, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.format, stream=sys.stderr, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ontoschema",
        description="Compile an OWL ontology into class models, diagrams and SQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="generator", help="Generators")
    for name, help_text in GENERATOR_HELP.items():
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--config", "-c",
            type=Path,
            default=DEFAULT_CONFIG,
            help=f"Settings file (default: {DEFAULT_CONFIG})",
        )
        sub.add_argument(
            "--output", "-o",
            type=Path,
            help="Output file (default: generators.<name>.output_file, else stdout)",
        )
        sub.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Log at DEBUG level",
        )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.generator:
        parser.print_help()
        return 1

    try:
        settings = load_settings(args.config)
        configure_logging(settings.logging, args.verbose)
        text = generate(args.generator, settings, output=args.output)
    except OntoschemaError as exc:
        logger.debug("Run failed", exc_info=True)
        print(f"ontoschema: error: {exc}", file=sys.stderr)
        return 1

    if output_path(args.generator, settings, args.output) is None:
        sys.stdout.write(text)
    return 0
