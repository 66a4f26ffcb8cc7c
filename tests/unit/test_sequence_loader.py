"""Tests for YAML sequence loading."""

import pytest

from seqchat.errors import SequenceLoadError
from seqchat.execution.steps import DelayStep, MessageStep, PauseStep
from seqchat.sequences.loader import SequenceLoader
from seqchat.utils.env_substitution import substitute_env_variables

VALID_SEQUENCE = """
name: onboarding
description: Three-step warmup
system_context: You are a helpful assistant for {{TEAM_NAME:the platform team}}.
steps:
  - text: Hello there
  - kind: delay
    duration_seconds: 2
  - kind: pause
    id: checkpoint
  - text: What did I say first?
"""


class TestLoad:
    def test_valid_file(self, sequence_file):
        sequence = SequenceLoader().load(sequence_file(VALID_SEQUENCE))

        assert sequence.name == "onboarding"
        assert sequence.system_context.endswith("the platform team.")
        assert len(sequence.steps) == 4

    def test_relative_path_uses_base_path(self, sequence_file, tmp_path):
        sequence_file(VALID_SEQUENCE, name="demo.yml")

        sequence = SequenceLoader(base_path=tmp_path).load("demo.yml")

        assert sequence.name == "onboarding"

    def test_env_substitution(self, sequence_file, monkeypatch):
        monkeypatch.setenv("TEAM_NAME", "SRE: on-call")

        sequence = SequenceLoader().load(sequence_file(VALID_SEQUENCE))

        assert "SRE: on-call" in sequence.system_context

    def test_missing_file(self, tmp_path):
        with pytest.raises(SequenceLoadError, match="not found"):
            SequenceLoader().load(tmp_path / "missing.yaml")

    def test_wrong_suffix(self, sequence_file):
        with pytest.raises(SequenceLoadError, match="must be YAML"):
            SequenceLoader().load(sequence_file(VALID_SEQUENCE, name="seq.json"))


class TestLoadsErrors:
    """Every malformed document becomes a SequenceLoadError."""

    def test_invalid_yaml(self):
        with pytest.raises(SequenceLoadError, match="Invalid YAML"):
            SequenceLoader().loads("name: [unclosed")

    def test_not_a_mapping(self):
        with pytest.raises(SequenceLoadError, match="mapping"):
            SequenceLoader().loads("- just\n- a list\n")

    @pytest.mark.parametrize(
        "body",
        [
            "name: x\nsteps:\n  - kind: message\n",
            "name: x\nsteps:\n  - kind: message\n    text: '   '\n",
            "name: x\nsteps:\n  - kind: pause\n    text: hi\n",
            "name: x\nsteps:\n  - kind: message\n    text: hi\n    duration_seconds: 3\n",
            "name: x\nsteps:\n  - kind: delay\n    duration_seconds: -1\n",
            "name: x\nsteps:\n  - kind: teleport\n",
            "name: x\nsteps:\n  - text: hi\n    colour: blue\n",
            "name: ''\nsteps: []\n",
            "steps: []\n",
        ],
    )
    def test_invalid_definitions(self, body):
        with pytest.raises(SequenceLoadError, match="Invalid sequence definition"):
            SequenceLoader().loads(body)

    def test_duplicate_ids(self):
        body = "name: x\nsteps:\n  - id: a\n    text: one\n  - id: a\n    text: two\n"

        with pytest.raises(SequenceLoadError, match="Duplicate step id"):
            SequenceLoader().loads(body)


class TestToSteps:
    def test_step_objects(self):
        steps = SequenceLoader().loads(VALID_SEQUENCE).to_steps()

        assert [type(step) for step in steps] == [
            MessageStep,
            DelayStep,
            PauseStep,
            MessageStep,
        ]
        assert [step.id for step in steps] == ["step-1", "step-2", "checkpoint", "step-4"]
        assert [step.position for step in steps] == [0, 1, 2, 3]
        assert steps[1].duration_seconds == 2
        assert steps[2].is_paused is True

    def test_defaults_and_explicit_positions(self):
        body = (
            "name: x\n"
            "steps:\n"
            "  - kind: delay\n"
            "  - kind: pause\n"
            "    is_paused: false\n"
            "    position: 7\n"
        )

        steps = SequenceLoader().loads(body).to_steps()

        assert steps[0].duration_seconds == 5
        assert steps[1].position == 7
        assert steps[1].is_paused is False


class TestSubstitution:
    def test_unset_without_default_is_left(self):
        assert substitute_env_variables("{{NOT_SET_ANYWHERE}}") == "{{NOT_SET_ANYWHERE}}"

    def test_default_and_value(self, monkeypatch):
        monkeypatch.setenv("SEQ_USER", "ada")

        result = substitute_env_variables("{{SEQ_USER}} / {{SEQ_MISSING:none}}")

        assert result == "ada / none"
