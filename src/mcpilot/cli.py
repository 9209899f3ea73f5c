import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace

from .config import get_config
from .errors import MCPilotError, RoleNotFoundError
from .models import ToolCallStatus
from .runtime import init_runtime
from .session.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="mcpilot", description="Chat with an LLM that can call MCP tool servers."
    )
    parser.add_argument("--role", help="Role to start the session with")
    parser.add_argument("--resume", metavar="PATH_OR_ID", help="Resume a session snapshot or log")
    parser.add_argument(
        "--log-level", help="Logging level (DEBUG, INFO, WARNING, ...); overrides MCPILOT_LOG_LEVEL"
    )
    parser.add_argument(
        "--auto-approve",
        action="store_true",
        help="Run tool calls without asking for confirmation",
    )
    return parser


async def _read_line(prompt):
    return await asyncio.to_thread(input, prompt)


async def confirm_tool_call(server_name, tool_name, arguments):
    """Interactive approval gate: ask before a tool runs."""
    print(f"\nTool request: {server_name}/{tool_name}")
    print(json.dumps(arguments, ensure_ascii=False, indent=2))
    answer = (await _read_line("Allow this tool call? [y/N]: ")).strip().lower()
    return answer in ("y", "yes")


def _print_tools(orchestrator):
    entries = list(orchestrator.hub.catalog)
    if not entries:
        print("No tools are currently available.")
        return
    print("Available tools:")
    for entry in entries:
        description = f": {entry.description}" if entry.description else ""
        print(f"- {entry.server_name}/{entry.name}{description}")


def _print_turn(result):
    for record in result.tool_calls:
        if record.result.status == ToolCallStatus.SUCCESS:
            print(f"[Tool: {record.server_name}/{record.tool_name}] ok")
        else:
            error = record.result.error or {}
            print(
                f"[Tool: {record.server_name}/{record.tool_name}] failed: "
                f"{error.get('message', record.result.output)}"
            )
    print(f"[Assistant]: {result.response.text}")
    if result.limit_reached:
        print("[System: tool call limit reached for this message]")


async def _handle_role_command(orchestrator, args):
    if not args:
        session = orchestrator.session
        role = session.metadata.role if session else None
        print(f"Current role: {role.name if role else '(none)'}")
        names = orchestrator.roles.names()
        if names:
            print(f"Available roles: {', '.join(names)}")
        return
    try:
        await orchestrator.set_role(args)
        print(f"Role set to: {args}")
    except RoleNotFoundError as e:
        print(f"Error: {e.message}")


async def _handle_restart_command(orchestrator, args):
    if not args:
        print("Usage: /restart <server>")
        return
    try:
        restarted = await orchestrator.restart_server(args)
    except MCPilotError as e:
        print(f"Error: {e.message}")
        return
    if restarted:
        print(f"Tool server '{args}' restarted")
    else:
        reason = orchestrator.hub.start_errors().get(args, "start failed")
        print(f"Tool server '{args}' is unavailable: {reason}")


async def run_session(orchestrator, role=None, resume=None):
    """Interactive loop over an orchestrator. Returns the ended session, if any."""
    ended = None
    try:
        if resume:
            session = await orchestrator.resume_session(resume)
            print(f"Resumed session {session.id} ({len(session.messages)} message(s))")
            if role:
                await orchestrator.set_role(role)
        else:
            session = await orchestrator.create_session(role)
            print(f"Started session {session.id}")

        for name, reason in orchestrator.hub.start_errors().items():
            print(f"[System: tool server '{name}' is unavailable: {reason}]")

        while True:
            try:
                prompt = (await _read_line("> ")).strip()
            except EOFError:
                break

            if not prompt:
                continue
            if prompt.lower() in EXIT_COMMANDS:
                break
            if prompt == "/tools":
                _print_tools(orchestrator)
                continue
            if prompt == "/role" or prompt.startswith("/role "):
                await _handle_role_command(orchestrator, prompt[len("/role"):].strip())
                continue
            if prompt == "/restart" or prompt.startswith("/restart "):
                await _handle_restart_command(orchestrator, prompt[len("/restart"):].strip())
                continue

            try:
                result = await orchestrator.execute_message(prompt)
            except MCPilotError as e:
                logger.warning(f"Message failed: {e}")
                print(f"Error: {e}")
                continue
            _print_turn(result)
    finally:
        if orchestrator.has_active_session:
            ended = await orchestrator.end_session()
        await orchestrator.close()

    return ended


async def _run(args):
    config = get_config()
    if args.auto_approve:
        config = replace(config, auto_approve_tools=True)
    orchestrator = SessionOrchestrator.from_config(config, approver=confirm_tool_call)
    return await run_session(orchestrator, role=args.role, resume=args.resume)


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        init_runtime(log_level=args.log_level)
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        print()
    except (MCPilotError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
