#!/usr/bin/env python3
"""Main CLI entry point for seqchat."""

import argparse
import sys
from typing import Any, Dict, List, Optional

from seqchat.cli.arg_mapping import RUN_ARG_MAPPINGS
from seqchat.cli.commands import (
    cmd_config_show,
    cmd_run,
    cmd_validate,
    cmd_version,
    get_version,
)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="seqchat",
        description="seqchat - run scripted multi-step conversations against LLM providers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  seqchat run demo.yaml --env-file .env
  seqchat run demo.yaml --ai-provider ollama --auto-resume
  seqchat validate demo.yaml
  seqchat config show --env-file .env
  seqchat version
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
        metavar="COMMAND",
    )

    run_parser = subparsers.add_parser(
        "run",
        help="Run a sequence file",
        description="Execute the steps of a sequence file in order",
    )
    _add_run_arguments(run_parser)

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="View the effective configuration",
    )
    config_subparsers = config_parser.add_subparsers(
        dest="config_command",
        title="config commands",
        metavar="SUBCOMMAND",
    )
    config_show_parser = config_subparsers.add_parser(
        "show",
        help="Show current configuration",
        description="Display the effective configuration with API keys masked",
    )
    config_show_parser.add_argument(
        "--env-file",
        "-e",
        metavar="FILE",
        help="Load environment from a .env file",
    )

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the seqchat version",
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a sequence file and provider configuration",
        description="Perform pre-flight checks without contacting any provider",
    )
    validate_parser.add_argument("sequence_file", metavar="SEQUENCE_FILE")
    validate_parser.add_argument(
        "--env-file",
        "-e",
        metavar="FILE",
        help="Load environment from a .env file",
    )

    return parser


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments for the 'run' subcommand."""
    parser.add_argument(
        "sequence_file",
        metavar="SEQUENCE_FILE",
        help="YAML sequence file to execute",
    )
    parser.add_argument(
        "--env-file",
        "-e",
        metavar="FILE",
        help="Load environment from a .env file (lowest priority, CLI args override)",
    )

    for mapping in RUN_ARG_MAPPINGS:
        kwargs: Dict[str, Any] = {
            "help": mapping.help_text or f"Set {mapping.env_var}",
            "dest": mapping.dest,
            # Unset flags leave env/settings in charge
            "default": None,
        }
        if mapping.choices:
            kwargs["choices"] = mapping.choices
            kwargs["metavar"] = mapping.cli_arg.lstrip("-").upper().replace("-", "_")
        if mapping.arg_type in (int, float):
            kwargs["type"] = mapping.arg_type

        args = [mapping.cli_arg]
        if mapping.short_arg:
            args.insert(0, mapping.short_arg)

        parser.add_argument(*args, **kwargs)

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output (sets LOG_LEVEL=DEBUG)",
    )
    parser.add_argument(
        "--auto-resume",
        action="store_true",
        help="Continue past pause steps without waiting for Enter",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the steps and configuration without running",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "config":
        if args.config_command == "show":
            return cmd_config_show(args)
        parser.parse_args(["config", "--help"])
        return 0
    elif args.command == "version":
        return cmd_version(args)
    elif args.command == "validate":
        return cmd_validate(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
