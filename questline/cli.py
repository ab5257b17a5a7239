"""
Questline CLI - Command-line interface for the engine.

Usage:
    questline serve                                 Run the HTTP API
    questline state <quest_id> --user U             Show the current scene
    questline preview <quest_id> --param k=v ...    Preview the unlocked stage
    questline choose <quest_id> <choice_id> --user U [--scene S]
    questline open <quest_id> <chest_instance_id> --user U

Every command except serve prints the JSON response. Settings come from the
QUESTLINE_* environment variables.

Progress must outlive a single invocation for choose and open to work
together, so without --database-url or QUESTLINE_DATABASE_URL the commands
keep it in ./questline.db. serve keeps the configured default (in-memory
when no URL is set).
"""

from dataclasses import replace
import argparse
import logging
import os
import sys

from .config import QuestlineConfig
from .errors import QuestlineError

CLI_DATABASE_URL = "sqlite:///questline.db"


def parse_param(value: str) -> tuple[str, int]:
    """Parse a KEY=INT parameter."""
    key, sep, raw = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected KEY=INT, got {value!r}")
    try:
        return key, int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Value of {key!r} is not an integer: {raw!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Questline - Quest Progression Engine",
        prog="questline",
    )
    parser.add_argument("--locale", help="Content locale")
    parser.add_argument(
        "--database-url",
        help=f"Progress database (default: QUESTLINE_DATABASE_URL, else {CLI_DATABASE_URL})",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # State command
    state_parser = subparsers.add_parser("state", help="Show the current scene")
    state_parser.add_argument("quest_id", help="Quest id")
    state_parser.add_argument("--user", default="demo-user", help="User id")

    # Preview command
    preview_parser = subparsers.add_parser("preview", help="Preview the stage a parameter map unlocks")
    preview_parser.add_argument("quest_id", help="Quest id")
    preview_parser.add_argument(
        "--param", type=parse_param, action="append", default=[],
        metavar="KEY=INT", help="Parameter value (repeatable)",
    )

    # Choose command
    choose_parser = subparsers.add_parser("choose", help="Apply a choice")
    choose_parser.add_argument("quest_id", help="Quest id")
    choose_parser.add_argument("choice_id", help="Choice id")
    choose_parser.add_argument("--user", default="demo-user", help="User id")
    choose_parser.add_argument("--scene", help="Acting scene id")

    # Open command
    open_parser = subparsers.add_parser("open", help="Open a chest")
    open_parser.add_argument("quest_id", help="Quest id")
    open_parser.add_argument("chest_instance_id", help="Chest instance id")
    open_parser.add_argument("--user", default="demo-user", help="User id")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = QuestlineConfig.from_env()
    if args.database_url:
        config = replace(config, database_url=args.database_url)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        cmd_serve(args, config)
        return

    commands = {
        "state": cmd_state,
        "preview": cmd_preview,
        "choose": cmd_choose,
        "open": cmd_open,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)

    if not config.database_url:
        config = replace(config, database_url=CLI_DATABASE_URL)

    from .api import APIService
    service = APIService.from_config(config)

    try:
        response = command(args, service)
    except QuestlineError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(response.model_dump_json(indent=2))


def cmd_serve(args, config):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    if config.database_url:
        # The app factory reads its settings from the environment
        os.environ["QUESTLINE_DATABASE_URL"] = config.database_url

    uvicorn.run(
        "questline.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=config.log_level.lower(),
    )


def cmd_state(args, service):
    """Show the current scene."""
    return service.get_state(args.user, args.quest_id, args.locale)


def cmd_preview(args, service):
    """Preview the stage a parameter map unlocks."""
    return service.preview_stage(args.quest_id, dict(args.param), args.locale)


def cmd_choose(args, service):
    """Apply a choice."""
    from .api import ChoiceRequestBody

    body = ChoiceRequestBody(choice_id=args.choice_id, current_scene_id=args.scene)
    return service.apply_choice(args.user, args.quest_id, body, args.locale)


def cmd_open(args, service):
    """Open a chest."""
    return service.open_chest(args.user, args.quest_id, args.chest_instance_id)


if __name__ == "__main__":
    main()
