"""Command-line entry point for envscope."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any, NoReturn

logger = logging.getLogger(__name__)


def _build_monorepo(args: argparse.Namespace) -> Any:
    """Create an enabled ``Monorepo`` from process settings."""
    from envscope.config import get_settings
    from envscope.core.logging import configure_logging
    from envscope.monorepo import Monorepo

    settings = get_settings()
    level = "DEBUG" if args.verbose else settings.log_level
    configure_logging(level=level, json_format=settings.log_json)

    config = settings.monorepo.model_copy(update={"enabled": True, "auto_switch": False})
    return Monorepo(config)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def run_detect(args: argparse.Namespace) -> int:
    """Print the monorepo root containing a path.

    Returns:
        Exit code (0 if a monorepo was found, 1 otherwise).
    """
    monorepo = _build_monorepo(args)
    result = monorepo.detect_monorepo_root(args.path)

    if args.json:
        _print_json(result.to_dict())
    elif result.found:
        assert result.detection_info is not None
        print(f"Root:       {result.root_path}")
        print(f"Provider:   {result.provider_name}")
        print(f"Confidence: {result.detection_info.confidence}")
    else:
        print("No monorepo found.")
    return 0 if result.found else 1


def run_workspaces(args: argparse.Namespace) -> int:
    """List the workspaces of the monorepo containing a path.

    Returns:
        Exit code (0 for success, 1 if no monorepo was found).
    """
    monorepo = _build_monorepo(args)
    result = monorepo.detect_monorepo_root(args.path)
    if not result.found:
        if args.json:
            _print_json([])
        else:
            print("No monorepo found.")
        return 1

    metadata = result.detection_info.metadata if result.detection_info else None
    workspaces = monorepo.get_workspaces(result.root_path, result.provider, metadata)

    if args.json:
        _print_json([ws.to_dict() for ws in workspaces])
        return 0

    print(f"{result.provider_name} monorepo at {result.root_path}")
    if not workspaces:
        print("No workspaces found.")
    for workspace in workspaces:
        print(f"  {workspace.relative_path:<40} {workspace.type}")
    return 0


def run_resolve(args: argparse.Namespace) -> int:
    """Print the environment files that apply to a path, in precedence order.

    Returns:
        Exit code (0 for success, 1 if the path is outside any monorepo).
    """
    from envscope.core.models import ResolveOptions

    monorepo = _build_monorepo(args)
    opts = ResolveOptions(preferred_environment=args.env)
    resolution = monorepo.resolve_for_file(args.path, args.pattern or None, opts)

    if args.json:
        _print_json(
            {
                "file": str(resolution.file_path),
                "root": str(resolution.root_path) if resolution.root_path else None,
                "provider": resolution.provider.name if resolution.provider else None,
                "workspace": resolution.workspace.to_dict() if resolution.workspace else None,
                "env_files": [str(f) for f in resolution.env_files],
            }
        )
        return 0 if resolution.in_monorepo else 1

    if not resolution.in_monorepo:
        print("No monorepo found.")
        return 1

    label = resolution.workspace.relative_path if resolution.workspace else "(root)"
    print(f"Workspace: {label}")
    if not resolution.env_files:
        print("No environment files found.")
    for env_file in resolution.env_files:
        print(f"  {env_file}")
    return 0


def run_stats(args: argparse.Namespace) -> int:
    """Detect from a path and print engine statistics as JSON.

    Returns:
        Exit code (always 0).
    """
    monorepo = _build_monorepo(args)
    monorepo.resolve_for_file(args.path)
    _print_json(monorepo.get_stats())
    return 0


def run_version() -> None:
    from envscope import __version__

    print(f"envscope {__version__}")


def _add_common_arguments(parser: argparse.ArgumentParser, with_json: bool = True) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="File or directory to start from (default: current directory)",
    )
    if with_json:
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output JSON",
        )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point with subcommand support."""
    parser = argparse.ArgumentParser(
        prog="envscope",
        description="Monorepo detection and environment file resolution",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    detect_parser = subparsers.add_parser(
        "detect",
        help="Show the monorepo root containing a path",
    )
    _add_common_arguments(detect_parser)

    workspaces_parser = subparsers.add_parser(
        "workspaces",
        help="List the workspaces of the monorepo containing a path",
    )
    _add_common_arguments(workspaces_parser)

    resolve_parser = subparsers.add_parser(
        "resolve",
        help="List the environment files that apply to a path",
    )
    _add_common_arguments(resolve_parser)
    resolve_parser.add_argument(
        "--pattern",
        "-p",
        action="append",
        help="Environment file glob (repeatable; default: .env, .envrc, .env.*)",
    )
    resolve_parser.add_argument(
        "--env",
        default=None,
        help="Preferred environment; files ending in .<env> are listed first",
    )

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show cache, provider and plugin statistics",
    )
    _add_common_arguments(stats_parser, with_json=False)

    args = parser.parse_args(argv)

    if args.version:
        run_version()
        sys.exit(0)

    try:
        if args.command == "detect":
            sys.exit(run_detect(args))
        elif args.command == "workspaces":
            sys.exit(run_workspaces(args))
        elif args.command == "resolve":
            sys.exit(run_resolve(args))
        elif args.command == "stats":
            sys.exit(run_stats(args))
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=args.verbose)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
