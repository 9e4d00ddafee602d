"""Command-line interface for Agent Foundry.

Serve the HTTP API, run a build from a JSON requirements file, preview a
plan, or print agent health.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .models.core import ProjectRequirements
from .orchestration.orchestrator import create_orchestrator
from .orchestration.plan import build_project_plan
from .utils.config import AggregationPolicy, SystemConfig, get_config, set_config
from .utils.logging import LOG_LEVELS, configure_logging


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Arguments to parse; sys.argv when omitted

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="agent-foundry",
        description="Multi-agent orchestration for application builds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the HTTP API
  agent-foundry serve --port 8000

  # Preview the plan for a project
  agent-foundry plan requirements.json

  # Run a full build, failing on any failed task
  agent-foundry build requirements.json --policy strict
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Override the configured log level"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    build = commands.add_parser("build", help="Run a full project build and print the result")
    build.add_argument("requirements_file", type=Path, help="JSON file with the project requirements")
    build.add_argument(
        "--policy",
        choices=[policy.value for policy in AggregationPolicy],
        help="Aggregation policy for partial failures"
    )

    plan = commands.add_parser("plan", help="Print the execution plan without running it")
    plan.add_argument("requirements_file", type=Path, help="JSON file with the project requirements")

    commands.add_parser("health", help="Print the health of every built-in agent")

    return parser.parse_args(argv)


def load_requirements(path: Path) -> Dict[str, Any]:
    """Read requirements from a file holding either the bare object or a {"requirements": ...} body."""
    data = json.loads(path.read_text(encoding="utf-8"))
    return data.get("requirements", data) if isinstance(data, dict) else data


def print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


async def run_build(args, config: SystemConfig) -> int:
    """Run a build.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    if args.policy:
        orchestration = config.orchestration.model_copy(
            update={"aggregation_policy": AggregationPolicy(args.policy)}
        )
        config = config.model_copy(update={"orchestration": orchestration})

    orchestrator = await create_orchestrator(config=config)
    try:
        result = await orchestrator.execute_project(load_requirements(args.requirements_file))
    finally:
        await orchestrator.shutdown()

    print_json(result.to_envelope())
    return 0 if result.success else 1


def run_plan(args) -> int:
    try:
        requirements = ProjectRequirements.model_validate(load_requirements(args.requirements_file))
    except PydanticValidationError as e:
        print(f"Error: invalid requirements: {e.error_count()} error(s)", file=sys.stderr)
        for error in e.errors(include_url=False):
            location = ".".join(str(part) for part in error["loc"]) or "requirements"
            print(f"  {location}: {error['msg']}", file=sys.stderr)
        return 2

    missing = requirements.missing_fields()
    if missing:
        print(f"Error: missing required fields: {', '.join(missing)}", file=sys.stderr)
        return 2

    execution_plan = build_project_plan(requirements)
    print_json({
        "run_id": execution_plan.run_id,
        "tasks": execution_plan.describe(),
        "levels": [
            [execution_plan.get(task_id).kind for task_id in level]
            for level in execution_plan.levels()
        ],
    })
    return 0


async def run_health(config: SystemConfig) -> int:
    orchestrator = await create_orchestrator(config=config)
    try:
        print_json([status.to_health_entry() for status in orchestrator.get_agent_statuses().values()])
    finally:
        await orchestrator.shutdown()
    return 0


def run_command(args) -> int:
    """Dispatch a parsed command.

    Returns:
        Exit code
    """
    config = get_config()
    if args.log_level:
        config = config.model_copy(update={"log_level": args.log_level})
        set_config(config)
    configure_logging(config.log_level, config.json_logging)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("agent_foundry.api.main:app", host=args.host, port=args.port)
        return 0

    if args.command in ("build", "plan") and not args.requirements_file.is_file():
        print(f"Error: file not found: {args.requirements_file}", file=sys.stderr)
        return 2

    try:
        if args.command == "build":
            return asyncio.run(run_build(args, config))
        if args.command == "plan":
            return run_plan(args)
        return asyncio.run(run_health(config))
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON in {args.requirements_file}: {e}", file=sys.stderr)
        return 2


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    args = parse_arguments(argv)
    sys.exit(run_command(args))


if __name__ == "__main__":
    main()
