"""Summary: Command-line interface for RelayPilot.

Importance: Provides a local-first entry point for commands, workflows, and chat.
Alternatives: Build a web UI or desktop client first.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from relaypilot.app import AppServices, build_services
from relaypilot.config import AppConfig
from relaypilot.services import SERVICES
from relaypilot.streaming import StreamingPipeline, StreamState


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="RelayPilot CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    command = subparsers.add_parser("command", help="Run an automation command")
    command.add_argument("text", type=str)

    chat = subparsers.add_parser("chat", help="Stream a model reply to a prompt")
    chat.add_argument("prompt", type=str)
    chat.add_argument("--image", type=str, default=None)

    subparsers.add_parser("list-workflows", help="List saved workflows")

    create = subparsers.add_parser("create-workflow", help="Save a workflow")
    create.add_argument("name", type=str)
    create.add_argument("source", choices=SERVICES)
    create.add_argument("destination", choices=SERVICES)
    create.add_argument("--filter", type=str, default="")
    create.add_argument("--recipient", type=str, default="")
    create.add_argument("--chat-id", type=str, default="")
    create.add_argument("--no-transform", action="store_true")
    create.add_argument("--inactive", action="store_true")

    toggle = subparsers.add_parser("toggle-workflow", help="Start or stop a workflow")
    toggle.add_argument("workflow_id", type=str)

    delete = subparsers.add_parser("delete-workflow", help="Delete a workflow")
    delete.add_argument("workflow_id", type=str)

    run = subparsers.add_parser("run-workflow", help="Run a saved workflow now")
    run.add_argument("workflow_id", type=str)

    subparsers.add_parser("logs", help="Show the workflow activity log")

    return parser


def run_cli() -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives the local user experience without a UI.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    config = AppConfig.from_env()
    services = build_services(config)

    if args.command == "command":
        if not services.commands.is_command(args.text):
            print("Not an automation command.")
        print(services.commands.handle(args.text).result)
        return

    if args.command == "chat":
        image = Path(args.image).read_bytes() if args.image else None
        asyncio.run(_stream_chat(services, args.prompt, image))
        return

    if args.command == "list-workflows":
        for workflow in services.registry.list_workflows():
            state = "active" if workflow.active else "stopped"
            print(
                f"{workflow.id}: {workflow.name} "
                f"({workflow.source_service} -> {workflow.destination_service}, {state})"
            )
        return

    if args.command == "create-workflow":
        workflow = services.registry.create(
            name=args.name,
            source_service=args.source,
            destination_service=args.destination,
            filter=args.filter,
            active=not args.inactive,
            transform_with_model=not args.no_transform,
            target_recipient=args.recipient,
            target_chat_id=args.chat_id,
        )
        print(f"Created workflow {workflow.id} ({workflow.name}).")
        return

    if args.command == "toggle-workflow":
        workflow = services.registry.toggle_active(args.workflow_id)
        if workflow is None:
            print(f"Workflow {args.workflow_id} not found.")
            return
        print(f"Workflow {workflow.name} is now {'active' if workflow.active else 'stopped'}.")
        return

    if args.command == "delete-workflow":
        deleted = services.registry.delete(args.workflow_id)
        print("Workflow deleted." if deleted else f"Workflow {args.workflow_id} not found.")
        return

    if args.command == "run-workflow":
        print(services.runner.run(args.workflow_id))
        return

    if args.command == "logs":
        for entry in services.registry.logs():
            print(entry.format())
        return


async def _stream_chat(services: AppServices, prompt: str, image: bytes | None) -> None:
    """Summary: Print each flush of a streamed reply on one rewritten line.

    Importance: Shows throttled streaming without a UI.
    Alternatives: Print only the final reply.
    """

    def publish(snapshot: str) -> None:
        print(f"\r{snapshot}", end="", flush=True)

    pipeline = StreamingPipeline(
        publish,
        flush_interval_ms=services.config.flush_interval_ms,
        idle_timeout_s=services.config.generation_timeout_s,
    )
    result = await pipeline.run(services.engine.create_session, prompt, image)
    print()
    if result.state is not StreamState.COMPLETED:
        print(f"Generation {result.state.value}.")


if __name__ == "__main__":
    run_cli()
