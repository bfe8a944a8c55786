# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Command-line interface for msigen.

This module provides the main CLI entry point for the msigen tool, offering
commands for generating installer fragments and managing the prerequisite
cache.

Commands:

    generate: Generate WiX fragments from one or more setup descriptions
    cache list: Show cached prerequisite installers
    cache fetch: Download one prerequisite into the cache
    cache clear: Delete the prerequisite cache

Example:
    Generate fragments:
        ```bash
        $ msigen generate products/demo.yaml --output-dir build/wix
        ```

    Bundle with cached prerequisites:
        ```bash
        $ msigen generate products/demo-bundle.yaml --cache
        ```

    Pre-fetch a redistributable:
        ```bash
        $ msigen cache fetch vcredist 2022 --arch x64
        ```

Exit Codes:

- 0: Success
- 1: Error (configuration, download, or packaging failure)

Note:
    Each input file of 'generate' is processed independently; one failure
    does not stop the others but makes the exit code 1. Verbose mode shows
    full tracebacks on errors.

"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
import traceback

from msigen import __version__
from msigen.cache import PrerequisiteCache
from msigen.core import generate_setup
from msigen.exceptions import MsigenError
from msigen.logging import get_logger, set_global_logger


def _print_error(err: Exception, args: argparse.Namespace) -> None:
    print(f"Error: {err}")
    if getattr(args, "verbose", False) or getattr(args, "debug", False):
        traceback.print_exc()


def _print_progress(message: str) -> None:
    print(f"    {message}")


def cmd_generate(args: argparse.Namespace) -> int:
    """Handler for 'msigen generate' command.

    Generates the fragments of every given setup description into the
    output directory.

    Args:
        args: Parsed command-line arguments containing the setup files,
            output directory and flags.

    Returns:
        Exit code (0 if every file succeeded, 1 otherwise).

    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    output_dir = Path(args.output_dir).resolve()
    failures = 0

    for setup_file in args.setup:
        setup_path = Path(setup_file).resolve()
        print(f"Generating fragments for: {setup_path}")
        print(f"Output directory: {output_dir}")
        print()

        try:
            result = generate_setup(
                setup_path,
                output_dir,
                standalone=args.standalone,
                use_cache=args.cache,
                dry_run=args.dry_run,
                progress=_print_progress,
            )
        except MsigenError as err:
            _print_error(err, args)
            failures += 1
            print()
            continue

        print("=" * 70)
        print("GENERATE RESULTS")
        print("=" * 70)
        print(f"Setup:           {result.setup_path}")
        print(f"Kind:            {result.kind}")
        print(
            f"Fragments:       "
            f"{sum(1 for text in result.fragments.values() if text)} non-empty"
        )
        if args.dry_run:
            print("Written:         (dry run)")
        else:
            for path in result.written:
                print(f"Written:         {path}")
        print(f"Status:          {result.status}")
        print("=" * 70)

        if result.warnings:
            print()
            print(f"Warnings ({len(result.warnings)}):")
            for warning in result.warnings:
                print(f"  [WARNING] {warning}")
        print()

    if failures:
        print(f"[FAILED] {failures} of {len(args.setup)} setup file(s) failed.")
        return 1
    print("[SUCCESS] Fragments generated successfully!")
    return 0


def cmd_cache_list(args: argparse.Namespace) -> int:
    """Handler for 'msigen cache list' command."""
    cache = PrerequisiteCache.open_readonly(args.cache_dir)
    entries = cache.list_cached() if cache is not None else []

    print("=" * 70)
    print("PREREQUISITE CACHE")
    print("=" * 70)
    if cache is None:
        print("Cache directory does not exist.")
    elif not entries:
        print(f"Location: {cache.cache_dir}")
        print("No cached prerequisites.")
    else:
        print(f"Location: {cache.cache_dir}")
        for entry in entries:
            print(f"  {entry}")
    print("=" * 70)
    return 0


def cmd_cache_fetch(args: argparse.Namespace) -> int:
    """Handler for 'msigen cache fetch' command.

    Downloads one prerequisite installer into the cache, or reports the
    existing entry.

    Returns:
        Exit code (0 for success, 1 for failure).

    """
    set_global_logger(get_logger(verbose=args.verbose, debug=args.debug))

    print(f"Fetching {args.type} {args.version} ({args.arch or 'neutral'})")
    try:
        cache = PrerequisiteCache(args.cache_dir)
        path = cache.ensure_prerequisite(
            args.type, args.version, args.arch, progress=_print_progress
        )
    except MsigenError as err:
        _print_error(err, args)
        return 1

    print()
    print(f"[SUCCESS] Cached at: {path}")
    return 0


def cmd_cache_clear(args: argparse.Namespace) -> int:
    """Handler for 'msigen cache clear' command."""
    cache = PrerequisiteCache.open_readonly(args.cache_dir)
    if cache is None:
        print("Cache directory does not exist; nothing to clear.")
        return 0
    try:
        cache.clear()
    except OSError as err:
        _print_error(err, args)
        return 1
    print(f"[SUCCESS] Cleared cache: {cache.cache_dir}")
    return 0


def _add_output_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="msigen",
        description="msigen - installer fragment generator for MSI packages and bundles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"msigen {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'generate' command
    parser_generate = subparsers.add_parser(
        "generate",
        help="Generate WiX fragments from setup descriptions",
        description="Build the package graph or bundle chain of each setup description and write the fragments.",
    )
    parser_generate.add_argument(
        "setup",
        nargs="+",
        help="Path(s) to setup description YAML files",
    )
    parser_generate.add_argument(
        "--output-dir",
        default="./wix",
        help="Directory receiving the .wxi fragments (default: ./wix)",
    )
    parser_generate.add_argument(
        "--standalone",
        action="store_true",
        help="Check runtime requirements with launch conditions instead of a bundle",
    )
    parser_generate.add_argument(
        "--cache",
        action="store_true",
        help="Download prerequisites into the local cache and reference them",
    )
    parser_generate.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate without writing any files",
    )
    _add_output_flags(parser_generate)
    parser_generate.set_defaults(func=cmd_generate)

    # 'cache' command group
    parser_cache = subparsers.add_parser(
        "cache",
        help="Manage the prerequisite installer cache",
        description="List, fetch or clear cached prerequisite installers.",
    )
    parser_cache.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache location (default: %%LOCALAPPDATA%%/msis/prerequisites)",
    )
    cache_commands = parser_cache.add_subparsers(
        dest="cache_command",
        help="Cache operations",
        required=True,
    )

    parser_list = cache_commands.add_parser("list", help="List cached installers")
    parser_list.set_defaults(func=cmd_cache_list)

    parser_fetch = cache_commands.add_parser(
        "fetch", help="Download a prerequisite into the cache"
    )
    parser_fetch.add_argument("type", help="Prerequisite type (vcredist, netfx)")
    parser_fetch.add_argument("version", help="Prerequisite version (2022, 4.8...)")
    parser_fetch.add_argument(
        "--arch",
        default="",
        choices=["", "x64", "x86", "arm64"],
        help="Architecture (omit for architecture-neutral installers)",
    )
    _add_output_flags(parser_fetch)
    parser_fetch.set_defaults(func=cmd_cache_fetch)

    parser_clear = cache_commands.add_parser("clear", help="Delete the cache")
    parser_clear.set_defaults(func=cmd_cache_clear)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the msigen CLI.

    This function is registered as the 'msigen' console script in pyproject.toml.
    """
    args = build_parser().parse_args(argv)
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
