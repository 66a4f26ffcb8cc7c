"""YAML sequence file loader with validation."""

from pathlib import Path
from typing import Any, Optional, Union

import yaml

from seqchat.errors import SequenceLoadError
from seqchat.sequences.schema import SequenceDefinition
from seqchat.utils.env_substitution import substitute_env_variables
from seqchat.utils.logger import get_logger

logger = get_logger(__name__)


class SequenceLoader:
    """Loads and validates YAML sequence definitions."""

    def __init__(self, base_path: Optional[Union[str, Path]] = None):
        """Initialize the sequence loader.

        Args:
            base_path: Base directory for resolving relative file paths.
                       Defaults to current working directory.
        """
        self.base_path = Path(base_path) if base_path else Path.cwd()

    def load(self, sequence_file: Union[str, Path]) -> SequenceDefinition:
        """Load a sequence definition from a YAML file.

        Raises:
            SequenceLoadError: If the file cannot be read, parsed or validated
        """
        file_path = self._resolve_path(sequence_file)

        if not file_path.exists():
            raise SequenceLoadError(f"Sequence file not found: {file_path}")

        if file_path.suffix.lower() not in (".yaml", ".yml"):
            raise SequenceLoadError(
                f"Sequence file must be YAML (.yaml or .yml): {file_path}"
            )

        try:
            raw_content = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise SequenceLoadError(f"Failed to read sequence file {file_path}: {e}")

        sequence = self.loads(raw_content, source=str(file_path))
        logger.info(
            f"Loaded sequence {sequence.name!r} with {len(sequence.steps)} steps "
            f"from {file_path}"
        )
        return sequence

    def loads(self, content: str, source: str = "<string>") -> SequenceDefinition:
        """Parse and validate sequence YAML from a string."""
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise SequenceLoadError(f"Invalid YAML in {source}: {e}")

        if not isinstance(data, dict):
            raise SequenceLoadError(
                f"Sequence file must contain a YAML mapping, got {type(data).__name__}"
            )

        # Substitute after parsing so values with YAML-significant characters
        # cannot change the document structure
        data = self._substitute_in_data(data)

        try:
            return SequenceDefinition(**data)
        except Exception as e:
            raise SequenceLoadError(f"Invalid sequence definition in {source}: {e}")

    def _resolve_path(self, sequence_file: Union[str, Path]) -> Path:
        path = Path(sequence_file)
        if path.is_absolute():
            return path
        return self.base_path / path

    @staticmethod
    def _substitute_in_data(data: Any) -> Any:
        """Apply placeholder substitution to string leaves only."""
        if isinstance(data, dict):
            return {k: SequenceLoader._substitute_in_data(v) for k, v in data.items()}
        if isinstance(data, list):
            return [SequenceLoader._substitute_in_data(item) for item in data]
        if isinstance(data, str):
            return substitute_env_variables(data)
        return data
