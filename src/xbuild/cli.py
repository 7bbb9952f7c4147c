"""
Command-line interface for xbuild.

Commands:
    build     Declare rules from the rules file and bring targets up to date
    list      Show the rules declared by the rules file
    identity  Print the crate identity cache key of a crate root
    deps      Print the transitive module dependencies of a source file
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from . import __version__
from .build.build_context import BuildContext, BuildSettings
from .build.crate_identity import CrateIdentityCache
from .build.dependency_resolver import DependencyResolver
from .build.rules_loader import DEFAULT_RULES_FILE, load_rules
from .build.summary import print_summary
from .build.task_builder import TaskGraphBuilder
from .build.tool_runner import ToolRunner
from .errors import XBuildError
from .output import (
    TimedLogger,
    init_timer,
    log,
    log_build_complete,
    log_detail,
    log_error,
    log_header,
    log_phase,
    set_verbose,
)


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    targets: List[str] = field(default_factory=list)
    platform: Optional[str] = None
    app: Optional[str] = None
    debug: Optional[bool] = None
    toolchain: Optional[str] = None
    rustc: Optional[str] = None
    native: Optional[bool] = None
    platforms: Optional[Path] = None
    rules: Optional[Path] = None
    strict: bool = False
    verbose: bool = False


@dataclass
class ListArgs:
    """Arguments for the list command."""

    project_dir: Path
    platform: Optional[str] = None
    app: Optional[str] = None
    platforms: Optional[Path] = None
    rules: Optional[Path] = None
    verbose: bool = False


@dataclass
class InspectArgs:
    """Arguments for the identity and deps commands."""

    file: Path
    verbose: bool = False


def _configure_logging(verbose: bool) -> None:
    set_verbose(verbose)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _rules_file(project_dir: Path, rules: Optional[Path]) -> Path:
    if rules is None:
        return project_dir / DEFAULT_RULES_FILE
    return rules if rules.is_absolute() else project_dir / rules


def _declare(
    project_dir: Path,
    settings: BuildSettings,
    rules: Optional[Path],
    verbose: bool = False,
) -> TaskGraphBuilder:
    """Prepare the context and evaluate the rules file.

    Every registry write happens here, before anything is executed.
    """
    log_phase(1, 3, f"Configuring platform={settings.platform} app={settings.app}")
    context = BuildContext.prepare(settings, project_dir)
    log_detail(f"Profile: {context.profile_name}")
    log_detail(f"Architecture: {context.arch.name} ({context.arch.target})", verbose_only=True)

    builder = TaskGraphBuilder(context, runner=ToolRunner(cwd=context.root_dir, verbose=verbose))
    rules_path = _rules_file(context.root_dir, rules)
    with TimedLogger(f"Declaring rules from {rules_path}", phase=(2, 3)) as timed:
        count = load_rules(rules_path, builder)
        timed.detail(f"{count} rule(s), {len(builder.graph)} node(s)")
    return builder


def build_command(args: BuildArgs) -> None:
    """Build the requested targets (or the default target)."""
    start_time = time.time()
    settings = BuildSettings.from_environment(
        platform=args.platform,
        app=args.app,
        debug=args.debug,
        toolchain=args.toolchain,
        rustc=args.rustc,
        native=args.native,
        platforms_file=args.platforms,
        strict_rules=args.strict or None,
    )
    builder = _declare(args.project_dir, settings, args.rules, args.verbose)

    log_phase(3, 3, f"Building {', '.join(args.targets) or builder.graph.default_target}")
    report = builder.graph.invoke(*args.targets)

    print_summary(report, builder.context.root_dir)
    log_build_complete(time.time() - start_time)


def list_command(args: ListArgs) -> None:
    """Print every declared rule with its kind and output."""
    settings = BuildSettings.from_environment(
        platform=args.platform,
        app=args.app,
        platforms_file=args.platforms,
    )
    builder = _declare(args.project_dir, settings, args.rules)
    root = builder.context.root_dir
    for rule in builder.registry:
        try:
            output = rule.produce.relative_to(root)
        except ValueError:
            output = rule.produce
        print(f"{rule.name:<20} {rule.kind:<14} {output}")
    if builder.graph.default_target:
        print(f"\ndefault: {builder.graph.default_target}")


def identity_command(args: InspectArgs) -> None:
    """Print the cache key derived from a crate root's crate_id attribute."""
    print(CrateIdentityCache().identity_for(args.file))


def deps_command(args: InspectArgs) -> None:
    """Print the module files reachable from a source file, one per line."""
    for path in sorted(DependencyResolver().resolve_transitive(args.file)):
        print(path)


def _add_project_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-C",
        "--project-dir",
        dest="project_dir",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "-p",
        "--platform",
        default=None,
        help="Target platform (default: $PLATFORM)",
    )
    parser.add_argument(
        "-a",
        "--app",
        default=None,
        help="Application to build from apps/ (default: $APP)",
    )
    parser.add_argument(
        "--platforms",
        type=Path,
        default=None,
        help="Platform table JSON file (default: packaged table)",
    )
    parser.add_argument(
        "--rules",
        type=Path,
        default=None,
        help=f"Rules file (default: {DEFAULT_RULES_FILE} in the project directory)",
    )


def _add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xbuild",
        description="Dependency-aware build orchestrator for embedded firmware",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"xbuild {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build = subparsers.add_parser("build", help="Build targets")
    _add_project_args(build)
    build.add_argument(
        "targets",
        nargs="*",
        help="Rule names or output paths to build (default: the default target)",
    )
    build.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Use the debug profile (default: $DEBUG)",
    )
    build.add_argument(
        "--toolchain",
        default=None,
        help="GNU toolchain prefix (default: $XBUILD_TOOLCHAIN or arm-none-eabi)",
    )
    build.add_argument(
        "--rustc",
        default=None,
        help="Compiler executable (default: $XBUILD_RUSTC or rustc)",
    )
    build.add_argument(
        "--native",
        action="store_true",
        default=None,
        help="Build for the host, without cross-compilation flags",
    )
    build.add_argument(
        "--strict",
        action="store_true",
        help="Reject duplicate rule names",
    )
    _add_verbose(build)

    list_parser = subparsers.add_parser("list", help="List declared rules")
    _add_project_args(list_parser)
    _add_verbose(list_parser)

    identity = subparsers.add_parser("identity", help="Print the crate identity key of a crate root")
    identity.add_argument("file", type=Path, help="Crate root source file")
    _add_verbose(identity)

    deps = subparsers.add_parser("deps", help="Print the module dependencies of a source file")
    deps.add_argument("file", type=Path, help="Source file")
    _add_verbose(deps)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    parsed_args = parser.parse_args(argv)

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    _configure_logging(parsed_args.verbose)
    init_timer()

    try:
        if parsed_args.command == "build":
            log_header("xbuild", __version__)
            build_command(
                BuildArgs(
                    project_dir=parsed_args.project_dir,
                    targets=parsed_args.targets,
                    platform=parsed_args.platform,
                    app=parsed_args.app,
                    debug=parsed_args.debug,
                    toolchain=parsed_args.toolchain,
                    rustc=parsed_args.rustc,
                    native=parsed_args.native,
                    platforms=parsed_args.platforms,
                    rules=parsed_args.rules,
                    strict=parsed_args.strict,
                    verbose=parsed_args.verbose,
                )
            )
        elif parsed_args.command == "list":
            list_command(
                ListArgs(
                    project_dir=parsed_args.project_dir,
                    platform=parsed_args.platform,
                    app=parsed_args.app,
                    platforms=parsed_args.platforms,
                    rules=parsed_args.rules,
                    verbose=parsed_args.verbose,
                )
            )
        elif parsed_args.command == "identity":
            identity_command(InspectArgs(file=parsed_args.file, verbose=parsed_args.verbose))
        elif parsed_args.command == "deps":
            deps_command(InspectArgs(file=parsed_args.file, verbose=parsed_args.verbose))

    except KeyboardInterrupt:
        log("")
        log_error("Interrupted by user")
        sys.exit(130)

    except XBuildError as e:
        log_error(str(e))
        if parsed_args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
