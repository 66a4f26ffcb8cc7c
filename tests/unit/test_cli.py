"""Tests for the seqchat CLI."""

import os
from argparse import Namespace

import pytest

from seqchat.cli import commands
from seqchat.cli.arg_mapping import (
    RUN_ARG_MAPPINGS,
    SENSITIVE_ENV_VARS,
    get_arg_mapping_by_cli_arg,
    get_arg_mapping_by_env_var,
)
from seqchat.cli.env_loader import apply_cli_args_to_env, load_env_file
from seqchat.cli.main import create_parser, main
from seqchat.config.settings import (
    credential_env_var,
    load_settings,
    mask_secret,
    settings_env_vars,
)
from seqchat.sequences.loader import SequenceLoader

SEQUENCE = """
name: cli-demo
steps:
  - text: first question
  - kind: pause
  - text: second question
"""


class TestArgMapping:
    """CLI flag to environment variable mappings."""

    def test_lookups(self):
        assert get_arg_mapping_by_env_var("MAX_RETRIES").cli_arg == "--max-retries"
        assert get_arg_mapping_by_cli_arg("ai_provider").env_var == "AI_PROVIDER"
        assert get_arg_mapping_by_env_var("NOPE") is None

    def test_no_credentials_on_command_line(self):
        mapped = {mapping.env_var for mapping in RUN_ARG_MAPPINGS}

        assert not mapped & SENSITIVE_ENV_VARS


class TestEnvLoader:
    """Test .env loading and CLI overrides."""

    def test_load_env_file_preserves_existing(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_MODEL", "from-env")
        env_file = tmp_path / ".env"
        env_file.write_text("OPENAI_MODEL=from-file\nGEMINI_MODEL=gemini-x\n")

        loaded = load_env_file(str(env_file))

        assert loaded == {"OPENAI_MODEL": "from-file", "GEMINI_MODEL": "gemini-x"}
        assert os.environ["OPENAI_MODEL"] == "from-env"
        assert os.environ["GEMINI_MODEL"] == "gemini-x"

    def test_missing_env_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env_file(str(tmp_path / "absent.env"))

    def test_apply_cli_args(self):
        applied = apply_cli_args_to_env(
            {"ai_provider": "ollama", "max_retries": 1, "temperature": None, "verbose": True}
        )

        assert applied == {"AI_PROVIDER": "ollama", "MAX_RETRIES": "1", "LOG_LEVEL": "DEBUG"}
        assert os.environ["AI_PROVIDER"] == "ollama"

    def test_load_env_file_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_MODEL", "from-env")
        env_file = tmp_path / ".env"
        env_file.write_text("OPENAI_MODEL=from-file\n")

        load_env_file(str(env_file), override=True)

        assert os.environ["OPENAI_MODEL"] == "from-file"

    def test_env_file_feeds_settings(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("REQUESTS_PER_MINUTE=12\nPROVIDER_FAILOVER=yes\n")

        load_env_file(str(env_file))
        settings = load_settings()

        assert settings.requests_per_minute == 12
        assert settings.provider_failover is True


class TestSettingsEnvVars:
    """Env var names come from the CoreSettings field declarations."""

    def test_every_run_flag_targets_a_setting(self):
        known = set(settings_env_vars().values())

        assert {mapping.env_var for mapping in RUN_ARG_MAPPINGS} <= known

    @pytest.mark.parametrize(
        "provider,env_var",
        [
            ("openai", "OPENAI_API_KEY"),
            ("claude", "ANTHROPIC_API_KEY"),
            ("gemini", "GEMINI_API_KEY"),
            ("ollama", "OLLAMA_API_KEY"),
        ],
    )
    def test_credential_env_var(self, provider, env_var):
        assert credential_env_var(provider) == env_var

    @pytest.mark.parametrize("value,expected", [(None, None), ("", None), ("abc", "<3 chars>")])
    def test_mask_secret(self, value, expected):
        assert mask_secret(value) == expected


class TestParser:
    def test_run_arguments(self):
        args = create_parser().parse_args(
            ["run", "demo.yaml", "-p", "gemini", "--max-retries", "2", "--auto-resume"]
        )

        assert args.sequence_file == "demo.yaml"
        assert args.ai_provider == "gemini"
        assert args.max_retries == 2
        assert args.auto_resume is True
        assert args.temperature is None

    def test_rejects_unknown_provider(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["run", "demo.yaml", "-p", "watson"])


class TestCommands:
    """Test command handlers through main()."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: seqchat" in capsys.readouterr().out

    def test_version(self, capsys):
        assert main(["version"]) == 0
        assert capsys.readouterr().out.startswith("seqchat version ")

    def test_config_show_masks_keys(self, capsys, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-very-secret")

        assert main(["config", "show"]) == 0

        out = capsys.readouterr().out
        assert "sk-very-secret" not in out
        assert "OPENAI_API_KEY: <14 chars>" in out
        assert "GEMINI_API_KEY: (not set)" in out

    def test_config_show_invalid(self, capsys, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "50")

        assert main(["config", "show"]) == 1

    def test_validate_with_only_ollama(self, capsys, sequence_file):
        assert main(["validate", str(sequence_file(SEQUENCE))]) == 0

        out = capsys.readouterr().out
        assert "cli-demo: 3 steps (2 message, 1 pause)" in out
        assert "PASSED with 1 warning" in out

    def test_validate_with_key(self, capsys, sequence_file, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-key-1234")

        assert main(["validate", str(sequence_file(SEQUENCE))]) == 0
        assert "sequence and configuration are valid" in capsys.readouterr().out

    def test_validate_preferred_without_key(self, capsys, sequence_file, monkeypatch):
        monkeypatch.setenv("AI_PROVIDER", "openai")

        assert main(["validate", str(sequence_file(SEQUENCE))]) == 1
        assert "credentials are not set" in capsys.readouterr().out

    def test_validate_nothing_configured(self, capsys, sequence_file, monkeypatch):
        monkeypatch.setenv("OLLAMA_ENABLED", "false")

        assert main(["validate", str(sequence_file(SEQUENCE))]) == 1
        assert "No provider is configured" in capsys.readouterr().out

    def test_validate_unknown_provider(self, capsys, sequence_file, monkeypatch):
        monkeypatch.setenv("AI_PROVIDER", "watson")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        assert main(["validate", str(sequence_file(SEQUENCE))]) == 1
        out = capsys.readouterr().out
        assert "Unknown AI_PROVIDER: watson" in out
        assert "OPENAI_API_KEY=<7 chars>" in out

    def test_validate_bad_sequence(self, capsys, sequence_file):
        path = sequence_file("name: broken\nsteps:\n  - kind: message\n")

        assert main(["validate", str(path)]) == 1

    def test_run_dry_run(self, capsys, sequence_file):
        assert main(["run", str(sequence_file(SEQUENCE)), "--dry-run"]) == 0

        out = capsys.readouterr().out
        assert "[DRY RUN] Would run sequence 'cli-demo'" in out
        assert "1. pause" in out
        assert "Current Configuration:" in out

    def test_run_missing_file(self, capsys, tmp_path):
        assert main(["run", str(tmp_path / "nope.yaml")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_run_missing_env_file(self, capsys, sequence_file, tmp_path):
        argv = ["run", str(sequence_file(SEQUENCE)), "-e", str(tmp_path / "x.env")]

        assert main(argv) == 1


class TestRunSequence:
    """Test the async run loop with stub providers."""

    @pytest.fixture
    def patch_dispatcher(self, monkeypatch, make_dispatcher):
        def _patch(provider):
            dispatcher = make_dispatcher(provider)
            monkeypatch.setattr(
                "seqchat.ai_providers.factory.build_dispatcher",
                lambda settings: dispatcher,
            )
            return dispatcher

        return _patch

    def _sequence(self, sequence_file):
        return SequenceLoader().load(sequence_file(SEQUENCE))

    @pytest.mark.asyncio
    async def test_auto_resume_completes(
        self, capsys, stub_provider, patch_dispatcher, sequence_file
    ):
        dispatcher = patch_dispatcher(stub_provider())

        code = await commands._run_sequence_async(
            self._sequence(sequence_file), load_settings(), auto_resume=True
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "< echo:second question" in out
        assert "completed" in out
        assert dispatcher.stats["succeeded"] == 2

    @pytest.mark.asyncio
    async def test_left_paused_on_end_of_input(
        self, capsys, monkeypatch, stub_provider, patch_dispatcher, sequence_file
    ):
        patch_dispatcher(stub_provider())

        async def no_input(index):
            return False

        monkeypatch.setattr(commands, "_wait_for_enter", no_input)

        code = await commands._run_sequence_async(
            self._sequence(sequence_file), load_settings(), auto_resume=False
        )

        assert code == 0
        assert "Run left paused" in capsys.readouterr().out

    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, commands.EXIT_CONFIG_ERROR),
            (503, commands.EXIT_TRANSIENT_ERROR),
        ],
    )
    @pytest.mark.asyncio
    async def test_error_exit_codes(
        self,
        capsys,
        stub_provider,
        status_error,
        patch_dispatcher,
        sequence_file,
        status,
        expected,
    ):
        def fail(messages):
            raise status_error(status)

        patch_dispatcher(stub_provider(reply=fail))

        code = await commands._run_sequence_async(
            self._sequence(sequence_file), load_settings(), auto_resume=True
        )

        assert code == expected
        assert "Step 0 failed" in capsys.readouterr().err

    def test_describe_step(self):
        steps = SequenceLoader().loads(
            "name: x\nsteps:\n  - text: " + "a" * 80 + "\n  - kind: delay\n"
            "    duration_seconds: 4\n  - kind: pause\n    is_paused: false\n"
        ).to_steps()

        assert commands._describe_step(steps[0]).endswith("...")
        assert commands._describe_step(steps[1]) == "delay: 4s"
        assert commands._describe_step(steps[2]) == "pause (disabled)"


def test_cmd_version_namespace(capsys):
    assert commands.cmd_version(Namespace()) == 0
