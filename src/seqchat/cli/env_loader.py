"""Environment sources for CoreSettings: .env files and run flags."""

import os
from pathlib import Path
from typing import Any, Dict

from dotenv import dotenv_values

from seqchat.cli.arg_mapping import RUN_ARG_MAPPINGS
from seqchat.config.settings import settings_env_vars
from seqchat.utils.logger import get_logger

logger = get_logger(__name__)


def load_env_file(env_file: str, override: bool = False) -> Dict[str, str]:
    """
    Export the variables of a .env file.

    Variables already in the environment win unless ``override`` is set.
    Keys that no seqchat setting reads are still exported, since sequence
    files may reference them as ``{{VAR}}`` placeholders.

    Returns:
        The variables defined in the file

    Raises:
        FileNotFoundError: If the env file doesn't exist
    """
    env_path = Path(env_file)
    if not env_path.is_file():
        raise FileNotFoundError(f"Environment file not found: {env_file}")

    values = {k: v for k, v in dotenv_values(env_path).items() if v is not None}

    for key, value in values.items():
        if override or key not in os.environ:
            os.environ[key] = value

    known = set(settings_env_vars().values())
    extra = sorted(key for key in values if key not in known)
    if extra:
        logger.debug(f"{env_path} defines non-setting variables: {', '.join(extra)}")
    return values


def apply_cli_args_to_env(args: Dict[str, Any]) -> Dict[str, str]:
    """
    Export explicitly given run flags for CoreSettings to read.

    Flags beat both the environment and the env file. Unset flags (None)
    leave the current value alone.

    Returns:
        The environment variables that were set
    """
    applied = {
        mapping.env_var: str(args[mapping.dest])
        for mapping in RUN_ARG_MAPPINGS
        if args.get(mapping.dest) is not None
    }
    if args.get("verbose"):
        applied["LOG_LEVEL"] = "DEBUG"

    os.environ.update(applied)
    return applied
