"""Command-line interface for submitting commands to the orchestrator."""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .orchestration.bootstrap import create_default_orchestrator
from .orchestration.orchestrator import AgentOrchestrator
from .utils.config import get_config
from .utils.logging import configure_logging


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command-line arguments.

    Args:
        argv: Argument list (defaults to ``sys.argv[1:]``)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="agent-conductor",
        description="Route commands to specialized workers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Let the router pick the worker
  agent-conductor run "optimizar seo de la página de inicio"

  # Send the command to a specific worker
  agent-conductor run "write about our consulting offer" --target blog

  # Print the full structured result
  agent-conductor run "analizar servicio para crear blog" --json

  # List the registered workers
  agent-conductor agents
        """
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command_name", required=True)

    run_parser = subparsers.add_parser("run", help="Submit a command")
    run_parser.add_argument("text", help="Free-text command")
    run_parser.add_argument(
        "--target",
        help="Explicit worker id, name, type or category (disables auto-routing for this command)"
    )
    run_parser.add_argument("--session", help="Session id to continue")
    run_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full structured result as JSON"
    )

    subparsers.add_parser("agents", help="List registered workers and exit")

    return parser.parse_args(argv)


def print_agents(orchestrator: AgentOrchestrator):
    snapshot = orchestrator.get_registry_snapshot()
    print("\nRegistered Agents:")
    print("=" * 80)
    for worker in snapshot["workers"]:
        print(f"  {worker['name']:20} {worker['status']:12} {worker['description']}")
    print(f"\nActive: {snapshot['active_workers']}/{snapshot['total_workers']}")


async def run_cli(args) -> int:
    """Build the default orchestrator and execute the requested subcommand.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    orchestrator = await create_default_orchestrator(get_config())

    try:
        if args.command_name == "agents":
            print_agents(orchestrator)
            return 0

        caller_context = {"target_agent": args.target, "session_id": args.session}
        result = await orchestrator.submit_command(args.text, caller_context)

        if args.json:
            print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
        elif result.success:
            if result.agent:
                print(f"[{result.agent}]")
            print(result.message or json.dumps(result.data, indent=2, default=str, ensure_ascii=False))
        else:
            print(f"Error ({result.error_code}): {result.error}", file=sys.stderr)

        return 0 if result.success else 1

    finally:
        await orchestrator.shutdown()


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    args = parse_arguments(argv)
    config = get_config()
    configure_logging("DEBUG" if args.verbose else config.log_level, config.json_logging)

    exit_code = asyncio.run(run_cli(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
