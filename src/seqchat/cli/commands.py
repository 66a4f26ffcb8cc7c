"""CLI command implementations."""

import asyncio
import os
import sys
from argparse import Namespace
from typing import Any, List, Optional

from seqchat.cli.env_loader import apply_cli_args_to_env, load_env_file
from seqchat.errors import ErrorType, SequenceLoadError

# Exit codes for a run that halted in ERROR
EXIT_TRANSIENT_ERROR = 2  # worth retrying later
EXIT_CONFIG_ERROR = 3  # credentials, request content or provider setup
TRANSIENT_ERROR_TYPES = frozenset(
    {ErrorType.NETWORK, ErrorType.TIMEOUT, ErrorType.SERVER, ErrorType.RATE_LIMIT}
)


def get_version() -> str:
    """Get the package version."""
    try:
        from importlib.metadata import version

        return version("seqchat")
    except Exception:
        # Fallback to reading pyproject.toml
        try:
            import tomllib
            from pathlib import Path

            pyproject = Path(__file__).parent.parent.parent.parent / "pyproject.toml"
            if pyproject.exists():
                with open(pyproject, "rb") as f:
                    data = tomllib.load(f)
                return data.get("project", {}).get("version", "unknown")
        except Exception:  # nosec B110 - intentional fallback to "unknown"
            pass
    return "unknown"


def _load_env_file_arg(args: Namespace) -> bool:
    """Load ``--env-file`` if given; False (after printing) on failure."""
    env_file = getattr(args, "env_file", None)
    if not env_file:
        return True
    try:
        loaded = load_env_file(env_file)
        print(
            f"Read {len(loaded)} variables from {env_file} (existing env vars preserved)"
        )
        return True
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return False


def cmd_version(args: Namespace) -> int:
    """Handle the 'version' command."""
    print(f"seqchat version {get_version()}")
    return 0


def cmd_config_show(args: Namespace) -> int:
    """Handle the 'config show' command."""
    if not _load_env_file_arg(args):
        return 1

    from pydantic import ValidationError

    from seqchat.config.settings import load_settings

    try:
        settings = load_settings()
    except ValidationError as e:
        print(f"Error: invalid configuration:\n{e}", file=sys.stderr)
        return 1

    values = settings.masked_dict()

    print("Current Configuration:")
    print("=" * 50)

    sections = [
        ("Provider Selection", ["ai_provider", "ai_temperature", "provider_failover"]),
        ("OpenAI", ["openai_api_key", "openai_model", "openai_base_url"]),
        ("Claude", ["anthropic_api_key", "claude_model"]),
        ("Gemini", ["gemini_api_key", "gemini_model"]),
        (
            "Ollama",
            ["ollama_enabled", "ollama_base_url", "ollama_model", "ollama_api_key"],
        ),
        (
            "Dispatch",
            [
                "requests_per_minute",
                "concurrent_requests",
                "max_retries",
                "request_timeout",
                "probe_ttl",
                "probe_timeout",
            ],
        ),
        ("Logging", ["log_level", "json_logs"]),
    ]
    for title, fields in sections:
        print(f"\n[{title}]")
        for field in fields:
            value = values.get(field)
            if value is None or value == "":
                value = "(not set)"
            print(f"  {field.upper()}: {value}")

    print("\nNote: API keys are masked and shown by length only.")
    return 0


def cmd_validate(args: Namespace) -> int:
    """Handle the 'validate' command - pre-flight checks without network calls."""
    if not _load_env_file_arg(args):
        return 1

    print("Sequence Validation")
    print("=" * 50)

    errors: List[str] = []
    warnings: List[str] = []

    from seqchat.sequences.loader import SequenceLoader

    print("\n[Sequence]")
    try:
        sequence = SequenceLoader().load(args.sequence_file)
        steps = sequence.to_steps()
        counts = {}
        for step in steps:
            counts[step.kind.value] = counts.get(step.kind.value, 0) + 1
        summary = ", ".join(f"{n} {kind}" for kind, n in sorted(counts.items()))
        print(f"  {sequence.name}: {len(steps)} steps ({summary or 'empty'}) ✓")
        if not steps:
            warnings.append("Sequence has no steps")
    except SequenceLoadError as e:
        errors.append(str(e))
        print("  (invalid) ✗")

    print("\n[AI Providers]")
    from pydantic import ValidationError

    from seqchat.ai_providers.factory import build_providers
    from seqchat.config.settings import credential_env_var, load_settings, mask_secret

    try:
        settings = load_settings()
    except ValidationError as e:
        settings = None
        errors.append(f"Invalid configuration ({e.error_count()} field errors)")
        print("  (settings invalid) ✗")

    if settings is not None:
        raw_preferred = os.environ.get("AI_PROVIDER", "").strip()
        if raw_preferred and not settings.ai_provider:
            errors.append(f"Unknown AI_PROVIDER: {raw_preferred}")
        preferred = settings.ai_provider

        configured = []
        for provider in build_providers(settings):
            if provider.name == "ollama":
                if provider.is_configured():
                    configured.append(provider.name)
                    print(f"  ollama: local ({provider.base_url}) ~")
                else:
                    print("  ollama: disabled")
                continue
            key_var = credential_env_var(provider.name)
            if provider.is_configured():
                configured.append(provider.name)
                masked = mask_secret(provider.config.get("api_key"))
                print(f"  {provider.name}: {key_var}={masked} ✓")
            else:
                print(f"  {provider.name}: {key_var} (not set)")

        if preferred and preferred not in configured:
            errors.append(f"AI_PROVIDER={preferred} but its credentials are not set")
        if not configured:
            errors.append("No provider is configured")
        elif configured == ["ollama"]:
            warnings.append("Only the local Ollama fallback is configured")

    print("\n" + "=" * 50)
    if errors:
        print(f"\n✗ Validation FAILED with {len(errors)} error(s):")
        for err in errors:
            print(f"  - {err}")
        if warnings:
            print(f"\n~ {len(warnings)} warning(s):")
            for warn in warnings:
                print(f"  - {warn}")
        return 1
    elif warnings:
        print(f"\n✓ Validation PASSED with {len(warnings)} warning(s):")
        for warn in warnings:
            print(f"  - {warn}")
        return 0
    else:
        print("\n✓ Validation PASSED - sequence and configuration are valid")
        return 0


def cmd_run(args: Namespace) -> int:
    """Handle the 'run' command."""
    # Env file has the lowest priority
    if not _load_env_file_arg(args):
        return 1

    applied = apply_cli_args_to_env(vars(args))
    if applied:
        print(f"Applied {len(applied)} CLI arguments to environment")

    from seqchat.sequences.loader import SequenceLoader

    try:
        sequence = SequenceLoader().load(args.sequence_file)
    except SequenceLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        print(f"\n[DRY RUN] Would run sequence '{sequence.name}':")
        for index, step in enumerate(sequence.to_steps()):
            print(f"  {index}. {_describe_step(step)}")
        print()
        return cmd_config_show(Namespace(env_file=None))

    return _run_sequence(sequence, auto_resume=args.auto_resume)


def _describe_step(step: Any) -> str:
    kind = step.kind.value
    if kind == "message":
        text = step.text if len(step.text) <= 60 else step.text[:57] + "..."
        return f"message: {text}"
    if kind == "delay":
        return f"delay: {step.duration_seconds}s"
    return "pause" if step.is_paused else "pause (disabled)"


def _run_sequence(sequence: Any, auto_resume: bool = False) -> int:
    """Run a loaded sequence to completion or failure."""
    from seqchat.config.settings import load_settings
    from seqchat.utils.logger import get_logger, setup_logging

    try:
        settings = load_settings()
    except Exception as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(level=settings.log_level, json_logs=settings.json_logs)
    logger = get_logger(__name__)
    logger.info(f"Running sequence {sequence.name!r} via CLI")

    try:
        return asyncio.run(_run_sequence_async(sequence, settings, auto_resume))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


async def _run_sequence_async(sequence: Any, settings: Any, auto_resume: bool) -> int:
    from seqchat.ai_providers.factory import build_dispatcher
    from seqchat.execution.sequencer import StepSequencer
    from seqchat.execution.state import ExecutionStatus
    from seqchat.utils.logger import get_logger

    logger = get_logger(__name__)
    dispatcher = build_dispatcher(settings)
    sequencer = StepSequencer(dispatcher, on_step_complete=_print_step)

    try:
        state = await sequencer.run(
            sequence.to_steps(), system_context=sequence.system_context
        )
        while state.status is ExecutionStatus.PAUSED:
            if not auto_resume and not await _wait_for_enter(state.current_index):
                print("Run left paused")
                return 0
            state = await sequencer.resume()
    finally:
        await dispatcher.selector.shutdown()

    if state.status is ExecutionStatus.ERROR:
        error = state.last_error
        error_type: Optional[ErrorType] = getattr(error, "error_type", None)
        print(f"\n✗ Step {state.current_index} failed: {error}", file=sys.stderr)
        logger.error(
            f"Sequence failed at step {state.current_index}",
            error_type=error_type.value if error_type else None,
        )
        if error_type in TRANSIENT_ERROR_TYPES:
            return EXIT_TRANSIENT_ERROR
        if error_type is not None:
            return EXIT_CONFIG_ERROR
        return 1

    print(f"\n✓ Sequence '{sequence.name}' completed")
    logger.info(f"Dispatcher stats: {dispatcher.stats}")
    return 0


def _print_step(step: Any, history: Any) -> None:
    kind = step.kind.value
    if kind == "message":
        print(f"\n> {step.text}")
        print(f"< {step.response}")
    elif kind == "delay":
        print(f"  (waited {step.duration_seconds}s)")


async def _wait_for_enter(index: int) -> bool:
    """Block on stdin without blocking the loop; False on end of input."""
    try:
        await asyncio.to_thread(
            input, f"\n-- Paused at step {index}. Press Enter to resume --"
        )
    except EOFError:
        return False
    return True
