#!/usr/bin/env python3
"""psrules/main.py: CLI entry-point for the psrules analyzer.

Usage examples
--------------
    # Analyse scripts (directories are searched for *.ps1, *.psm1, *.psd1)
    psrules analyze deploy.ps1 modules/ --inventory commands.json

    # Same, with a settings file and JSON-lines output
    psrules analyze scripts/ --settings psrules.json --format json -o out.jsonl

    # List the registered rules
    psrules rules

    # Parse a script and dump its syntax tree (debugging aid)
    psrules parse deploy.ps1 --format json

Exit codes
----------
    0   Success (no findings).
    1   A script failed to parse, or an ERROR-severity diagnostic was emitted.
    2   Infrastructure failure (missing file, bad settings or inventory, etc.).
    3   Warnings were reported.

The module doubles as ``python -m psrules`` via the companion
``psrules/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from psrules import __version__, strings
from psrules.config import AnalyzerConfig, load_config
from psrules.errors import ConfigError, MetadataError, ParseError
from psrules.metadata import CommandInventory, load_inventory
from psrules.parser import parse_file
from psrules.rules import RuleRunner, RunResults, default_registry

_log = logging.getLogger("psrules.main")

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_VIOLATION: int = 3

SCRIPT_SUFFIXES = (".ps1", ".psm1", ".psd1")


# ===========================================================================
# Helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the root ``psrules`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    handler.set_name("psrules-cli")
    root = logging.getLogger("psrules")
    # Repeated main() calls (tests, embedding) replace the previous handler.
    for old in list(root.handlers):
        if old.get_name() == "psrules-cli":
            root.removeHandler(old)
    root.setLevel(level)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _collect_scripts(raw_paths: Sequence[str]) -> List[Path]:
    """Expand directories into the script files below them, keeping order."""
    scripts: List[Path] = []
    for raw in raw_paths:
        p = _resolve_path(raw, "script")
        if p.is_dir():
            found = sorted(
                f for f in p.rglob("*")
                if f.is_file() and f.suffix.lower() in SCRIPT_SUFFIXES
            )
            if not found:
                _log.warning("No scripts found under %s", p)
            scripts.extend(found)
        else:
            scripts.append(p)
    return scripts


def _emit_results(results: RunResults, fmt: str, stream: TextIO) -> None:
    """Write *results* to *stream* in the chosen format."""
    if fmt == "json":
        for diag in results.diagnostics:
            stream.write(diag.to_json_str() + "\n")
    else:
        for diag in results.diagnostics:
            stream.write(diag.to_gcc_format() + "\n")
    if fmt == "summary":
        stream.write("\n" + results.summary() + "\n")


def _exit_code(results: RunResults) -> int:
    if results.parse_error_count or results.error_count:
        return EXIT_ERROR
    if results.warning_count:
        return EXIT_VIOLATION
    return EXIT_OK


# ===========================================================================
# Subcommands
# ===========================================================================

# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------

def cmd_analyze(args: argparse.Namespace) -> int:
    """Run the rules over one or more scripts."""
    try:
        config = load_config(_resolve_path(args.settings, "settings file")) \
            if args.settings else AnalyzerConfig()
        config = config.merge(
            include_rules=args.rules,
            exclude_rules=args.exclude,
            severity=args.severity,
            inventory=args.inventory,
        )
        config.severity_levels()
    except ConfigError as exc:
        _log.error("Invalid settings: %s", exc)
        return EXIT_INFRA
    for warning in config.validate():
        _log.warning("%s", warning)

    strings.set_culture(config.culture)

    if config.inventory:
        try:
            inventory = load_inventory(_resolve_path(config.inventory, "inventory"))
        except MetadataError as exc:
            _log.error("Invalid inventory: %s", exc)
            return EXIT_INFRA
    else:
        _log.warning("No command inventory given; no command can be resolved.")
        inventory = CommandInventory()

    scripts = _collect_scripts(args.paths)
    runner = RuleRunner(default_registry(), commands=inventory, config=config)

    combined = RunResults()
    infra_failure = False
    for script in scripts:
        try:
            combined.extend(runner.analyze_file(script))
        except (OSError, UnicodeDecodeError) as exc:
            _log.error("Cannot read %s: %s", script, exc)
            infra_failure = True

    out = _open_output(args.output)
    try:
        _emit_results(combined, args.format, out)
    finally:
        if out is not sys.stdout:
            out.close()

    _log.info("%d file(s), %d diagnostic(s)", len(combined.files), combined.total_count)
    if infra_failure:
        return EXIT_INFRA
    return _exit_code(combined)


# ---------------------------------------------------------------------------
# rules
# ---------------------------------------------------------------------------

def cmd_rules(args: argparse.Namespace) -> int:
    """List the registered rules."""
    registry = default_registry()
    out = _open_output(args.output)
    try:
        for cls in sorted(registry.get_all(), key=lambda c: c.get_name()):
            out.write(f"{cls.get_name()}\n")
            out.write(f"  {cls.get_common_name()}: {cls.get_description()}\n")
        out.write(f"\n{len(registry)} rule(s) available.\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------

def cmd_parse(args: argparse.Namespace) -> int:
    """Parse a script and print its syntax tree.

    Useful for debugging the front-end without running any rule.
    """
    src_path = _resolve_path(args.source_file, "source file")
    try:
        ast = parse_file(src_path)
    except ParseError as exc:
        _log.error("Parse error: %s", exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_ERROR

    out = _open_output(args.output)
    try:
        if args.format == "json":
            out.write(json.dumps(ast.to_dict(), indent=2) + "\n")
        else:
            out.write(repr(ast) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="psrules",
        description="psrules: static-analysis rules for PowerShell scripts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              psrules analyze deploy.ps1 --inventory commands.json
              psrules analyze scripts/ --settings psrules.json -f json
              psrules parse deploy.ps1 -f json
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_output_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    # --- analyze -----------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        aliases=["analyse"],
        help="Run the rules over scripts.",
        description="Parse each script and report rule violations.",
    )
    p_analyze.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="Script files or directories to analyze.",
    )
    p_analyze.add_argument(
        "--inventory",
        default=None,
        metavar="FILE",
        help="JSON command inventory used to resolve commands and aliases.",
    )
    p_analyze.add_argument(
        "--settings",
        default=None,
        metavar="FILE",
        help="JSON settings file (rule selection, severity, inventory).",
    )
    p_analyze.add_argument(
        "--rules",
        nargs="+",
        default=None,
        metavar="NAME",
        help="Only run these rules (wildcards allowed).",
    )
    p_analyze.add_argument(
        "--exclude",
        nargs="+",
        default=None,
        metavar="NAME",
        help="Skip these rules (wildcards allowed).",
    )
    p_analyze.add_argument(
        "--severity",
        nargs="+",
        default=None,
        metavar="LEVEL",
        help="Only report these severities (Information, Warning, Error).",
    )
    p_analyze.add_argument(
        "-f", "--format",
        choices=["json", "gcc", "summary"],
        default="gcc",
        help="Output format (default: gcc).",
    )
    _add_output_arg(p_analyze)
    p_analyze.set_defaults(func=cmd_analyze)

    # --- rules -------------------------------------------------------------
    p_rules = subparsers.add_parser(
        "rules",
        help="List the available rules.",
    )
    _add_output_arg(p_rules)
    p_rules.set_defaults(func=cmd_rules)

    # --- parse -------------------------------------------------------------
    p_parse = subparsers.add_parser(
        "parse",
        help="Parse a script and dump its syntax tree.",
    )
    p_parse.add_argument("source_file", metavar="FILE", help="Script to parse.")
    p_parse.add_argument(
        "-f", "--format",
        choices=["json", "repr"],
        default="json",
        help="Output format (default: json).",
    )
    _add_output_arg(p_parse)
    p_parse.set_defaults(func=cmd_parse)

    return parser


# ===========================================================================
# Main
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the psrules CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
