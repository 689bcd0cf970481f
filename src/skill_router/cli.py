"""Command-line interface for skill-router."""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from skill_router.core.config import Config, configure_logging, load_environment
from skill_router.skills.router import SkillRouter
from skill_router.skills.taxonomy import TaxonomySource
from skill_router.utils.errors import (
    EXIT_INVALID_INPUT,
    EXIT_RESOLVED,
    SkillRouterError,
    exit_code_for,
)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="skill-router",
        description="Route requests to skills in a curated taxonomy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  skill-router route "this query is slow"
  skill-router route "" --skill-id sql.optimizer --max-chars 2000
  skill-router route "sum a column" --skills-dir ./skills --json
  skill-router list
  skill-router show sql.optimizer
  skill-router serve --port 8000

Exit codes:
  0 resolved, 1 ambiguous, 2 invalid input, 3 content failure, 4 registry failure
        """,
    )
    parser.add_argument(
        "--log-level",
        help="Log level (default: WARNING; serve uses LOG_LEVEL)",
    )

    # Taxonomy selection shared by route, list and show
    taxonomy_parser = argparse.ArgumentParser(add_help=False)
    taxonomy_group = taxonomy_parser.add_mutually_exclusive_group()
    taxonomy_group.add_argument(
        "--skills-dir",
        type=Path,
        help="Directory of SKILL.md trees (default: SKILLS_DIR or bundled library)",
    )
    taxonomy_group.add_argument(
        "--taxonomy",
        type=Path,
        help="YAML taxonomy file (default: SKILLS_TAXONOMY_FILE)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Command to run",
        required=True,
    )

    # Route command
    route_parser = subparsers.add_parser(
        "route",
        parents=[taxonomy_parser],
        help="Route a request to a skill and print its guidance",
    )
    route_parser.add_argument(
        "query",
        help="Free-text request",
    )
    route_parser.add_argument(
        "--skill-id",
        help="Use this skill directly instead of matching",
    )
    route_parser.add_argument(
        "--max-chars",
        type=int,
        help="Response size budget in characters",
    )
    route_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full response as JSON",
    )

    # List command
    subparsers.add_parser(
        "list",
        parents=[taxonomy_parser],
        help="Print the skill tree",
    )

    # Show command
    show_parser = subparsers.add_parser(
        "show",
        parents=[taxonomy_parser],
        help="Print one skill's metadata",
    )
    show_parser.add_argument(
        "skill_id",
        help="Skill id (e.g., sql.optimizer)",
    )

    # Serve API command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the FastAPI server",
    )
    serve_parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )

    return parser


def build_config(args: argparse.Namespace) -> Config:
    """Read configuration from the environment and apply CLI overrides.

    Args:
        args: Parsed command-line arguments

    Returns:
        Effective configuration
    """
    config = Config.from_env()
    if getattr(args, "skills_dir", None) is not None:
        config = replace(config, skills_dir=args.skills_dir, taxonomy_file=None)
    elif getattr(args, "taxonomy", None) is not None:
        config = replace(config, taxonomy_file=args.taxonomy)
    return config


def run_route_command(args: argparse.Namespace, config: Config) -> int:
    """Route a request and print the response.

    Args:
        args: Parsed command-line arguments
        config: Effective configuration

    Returns:
        Exit code for the response status
    """
    router = SkillRouter.from_source(TaxonomySource.from_config(config), config)
    response = router.route_sync(args.query, skill_id=args.skill_id, max_chars=args.max_chars)

    if args.json:
        print(json.dumps(response.to_dict(), indent=2))
    elif response.status == "error":
        print(f"Error: {response.error['message']}", file=sys.stderr)
    else:
        if response.status == "resolved":
            print(f"# {response.node['title']} ({response.node['id']})\n")
        print(response.content)

    return response.exit_code


def run_list_command(args: argparse.Namespace, config: Config) -> int:
    """Print the skill tree.

    Args:
        args: Parsed command-line arguments
        config: Effective configuration
    """
    registry = TaxonomySource.from_config(config).build_registry()
    print(registry.get_descriptions())
    return EXIT_RESOLVED


def run_show_command(args: argparse.Namespace, config: Config) -> int:
    """Print one skill's metadata as JSON.

    Args:
        args: Parsed command-line arguments
        config: Effective configuration
    """
    registry = TaxonomySource.from_config(config).build_registry()
    node = registry.get(args.skill_id)
    data = node.to_dict()
    data["path"] = registry.path(node.id)
    print(json.dumps(data, indent=2))
    return EXIT_RESOLVED


def run_serve_command(args: argparse.Namespace, config: Config) -> int:
    """Run the FastAPI server.

    Args:
        args: Parsed command-line arguments
        config: Effective configuration
    """
    import uvicorn

    print(f"\n{'='*60}")
    print("Starting Skill Router API")
    print(f"{'='*60}")
    print(f"Host: {args.host}")
    print(f"Port: {args.port}")
    print(f"Reload: {args.reload}")
    print(f"{'='*60}\n")
    print(f"API Documentation: http://{args.host}:{args.port}/docs")
    print(f"Health Check: http://{args.host}:{args.port}/health")
    print(f"{'='*60}\n")

    uvicorn.run(
        "skill_router.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )
    return EXIT_RESOLVED


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    command_map = {
        "route": run_route_command,
        "list": run_list_command,
        "show": run_show_command,
        "serve": run_serve_command,
    }

    load_environment()
    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)

    # Keep stdout clean for piping unless asked otherwise
    configure_logging(args.log_level or (config.log_level if args.command == "serve" else "WARNING"))

    try:
        command_func = command_map[args.command]
        sys.exit(command_func(args, config))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(0)
    except SkillRouterError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(exit_code_for(e))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)


if __name__ == "__main__":
    main()
