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

"""Core orchestration for msigen.

This module coordinates the complete workflow for one setup description:
loading, variable resolution, graph or chain building, and writing the
resulting fragments.

Two-Path Architecture:

- **Bundle Path** (description has a ``bundle`` section): prerequisites are
    optionally fetched into the local cache, then the bootstrapper chain is
    built from the prerequisites, custom exe packages and product MSIs.

- **Package Path** (everything else): the package graph is built into
    directory, feature, registry, shortcut and custom-action fragments. Runtime
    requirements are satisfied either by launch conditions inside the MSI
    (standalone mode) or by an auto-generated bundle chain that wraps the MSI.

Design Principles:

- Builders return frozen dataclasses; this module only sequences them
- Error handling uses exceptions; the CLI layer formats for user display
- Nothing is written when ``dry_run`` is set

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from msigen.core import generate_setup

        result = generate_setup(Path("products/demo.yaml"), Path("./out"))
        for path in result.written:
            print(path)
        ```

"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from msigen.bundle import AutoBundleBuilder, BundleChainBuilder
from msigen.cache import PrerequisiteCache
from msigen.config import load_setup
from msigen.exceptions import PackagingError
from msigen.generator import PackageGraphBuilder
from msigen.logging import get_global_logger
from msigen.requirements import (
    generate_launch_conditions,
    generate_launch_conditions_xml,
)
from msigen.results import GenerateResult
from msigen.variables import Variables

# File extension of written fragments (WiX include files).
FRAGMENT_SUFFIX = ".wxi"


def write_fragments(fragments: dict[str, str], output_dir: Path) -> list[Path]:
    """Write each non-empty fragment to ``<output_dir>/<name>.wxi``.

    Returns:
        Written files, in fragment order.

    Raises:
        PackagingError: If the output directory or a file cannot be written.
    """
    logger = get_global_logger()
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise PackagingError(f"cannot create output directory {output_dir}: {err}") from err

    written: list[Path] = []
    for name, text in fragments.items():
        if not text:
            continue
        path = output_dir / f"{name}{FRAGMENT_SUFFIX}"
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as err:
            raise PackagingError(f"cannot write {path}: {err}") from err
        logger.verbose("FILE", f"Wrote {path}")
        written.append(path)
    return written


def generate_setup(
    setup_path: Path,
    output_dir: Path,
    *,
    standalone: bool = False,
    use_cache: bool = False,
    dry_run: bool = False,
    progress: Callable[[str], None] | None = None,
    cache_dir: Path | None = None,
    defaults_path: Path | None = None,
) -> GenerateResult:
    """Generate the installer fragments for one setup description.

    This is the main entry point for the 'msigen generate' command.

    Steps:

    1. Load the description (merged over organization defaults) and resolve
       its variables
    2. Collect deprecation warnings
    3. Build the bundle chain, or the package graph plus requirement handling
    4. Write the non-empty fragments unless ``dry_run`` is set

    Args:
        setup_path: Setup description YAML file. Its directory is the working
            directory for every relative source path.
        output_dir: Directory receiving the ``.wxi`` fragment files.
        standalone: Express runtime requirements as launch conditions instead
            of wrapping the MSI in an auto-generated bundle.
        use_cache: Fetch prerequisites into the local cache and reference the
            cached installers from the chain.
        dry_run: Build everything but write nothing.
        progress: Optional callback receiving cache progress messages.
        cache_dir: Cache root; defaults to the per-user prerequisite cache.
        defaults_path: Explicit organization defaults file.

    Returns:
        GenerateResult with the fragments, written files and warnings.

    Raises:
        ConfigError: On an invalid description.
        NetworkError: On prerequisite download failure.
        PackagingError: On unavailable resources or unwritable output.
    """
    logger = get_global_logger()
    setup_path = Path(setup_path).resolve()
    work_dir = setup_path.parent
    warnings: list[str] = []

    def on_progress(message: str) -> None:
        if message.startswith("Warning:"):
            warnings.append(message)
        if progress is not None:
            progress(message)

    logger.step(1, 3, "Loading setup description...")
    setup = load_setup(setup_path, defaults_path=defaults_path)
    variables = Variables()
    variables.load_from_setup(setup)
    variables.resolve_all()
    warnings.extend(variables.check_deprecated())
    for warning in warnings:
        logger.verbose("CONFIG", f"Warning: {warning}")

    cache = PrerequisiteCache(cache_dir) if use_cache else None

    fragments: dict[str, str]
    if setup.is_bundle:
        logger.step(2, 3, "Building bundle chain...")
        builder = BundleChainBuilder(setup, variables, work_dir, cache=cache)
        builder.ensure_prerequisites(on_progress)
        fragments = {"chain_xml": builder.generate().chain_xml}
        kind = "bundle"
    else:
        logger.step(2, 3, "Building package graph...")
        output = PackageGraphBuilder(setup, variables, work_dir).build()
        fragments = output.fragments()
        logger.verbose(
            "GRAPH",
            f"{output.directory_count} directories, "
            f"{output.component_count} components",
        )
        if setup.requires and standalone:
            conditions = generate_launch_conditions(setup.requires, variables.platform)
            searches_xml, conditions_xml = generate_launch_conditions_xml(conditions)
            fragments["registry_searches_xml"] = searches_xml
            fragments["launch_conditions_xml"] = conditions_xml
        elif setup.requires:
            msi_name = f"{variables.build_target or setup_path.stem}.msi"
            logger.verbose("BUNDLE", f"Wrapping {msi_name} with its requirements")
            auto = AutoBundleBuilder(
                variables, work_dir, msi_name, setup.requires, cache=cache
            )
            auto.ensure_prerequisites(on_progress)
            fragments["bundle_chain_xml"] = auto.generate().chain_xml
        kind = "package"

    written: list[Path] = []
    if dry_run:
        logger.step(3, 3, "Dry run, nothing written")
    else:
        logger.step(3, 3, "Writing fragments...")
        written = write_fragments(fragments, Path(output_dir))

    return GenerateResult(
        setup_path=setup_path,
        kind=kind,
        fragments=fragments,
        written=written,
        warnings=warnings,
    )
