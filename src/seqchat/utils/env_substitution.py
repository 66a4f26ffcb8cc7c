"""Environment variable substitution for sequence files.

Supports ``{{VAR_NAME}}`` and ``{{VAR_NAME:default}}`` placeholders.
"""

import os
import re
from typing import List, Tuple

from seqchat.utils.logger import get_logger

logger = get_logger(__name__)

# {{VAR_NAME}} or {{VAR_NAME:default_value}}
ENV_VAR_PATTERN = re.compile(r"\{\{([A-Z_][A-Z0-9_]*?)(?::([^}]*))?\}\}")


def substitute_env_variables(content: str) -> str:
    """Replace placeholders with environment values.

    - ``{{VAR_NAME}}`` is replaced by the variable's value, or left as-is
      with a warning if the variable is not set.
    - ``{{VAR_NAME:default}}`` falls back to *default* when unset.

    Args:
        content: String content with potential variable placeholders.

    Returns:
        Content with environment variables substituted.
    """
    substituted: List[Tuple[str, bool]] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2)

        value = os.getenv(var_name)
        if value is not None:
            substituted.append((var_name, True))
            return value
        if default_value is not None:
            substituted.append((var_name, False))
            return default_value

        logger.warning(f"Environment variable {var_name} not set and no default")
        return match.group(0)

    result = ENV_VAR_PATTERN.sub(_replace, content)

    if substituted:
        # Names only; values may be credentials
        logger.debug(
            f"Substituted {len(substituted)} placeholder(s): "
            f"{', '.join(name for name, _ in substituted)}"
        )
    return result
