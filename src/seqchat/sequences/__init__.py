"""YAML sequence files: an editor-independent way to define step lists."""

from seqchat.sequences.loader import SequenceLoader
from seqchat.sequences.schema import SequenceDefinition, SequenceStep

__all__ = ["SequenceDefinition", "SequenceStep", "SequenceLoader"]
