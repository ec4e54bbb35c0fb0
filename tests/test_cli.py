"""Tests for the open-relay command line."""

from __future__ import annotations

from unittest.mock import patch

from click.testing import CliRunner

from open_relay import cli
from open_relay.types import RunOutcome


class FakeHandle:
    def __init__(self, callbacks, outcome):
        self._callbacks = callbacks
        self._outcome = outcome

    def cancel(self):
        pass

    async def wait(self):
        self._callbacks.on_text("Hello from the model")
        return self._outcome


class FakeOrchestrator:
    instances: list = []
    outcome = RunOutcome(text="Hello from the model", steps=1)

    def __init__(self, profile, api_key="", callbacks=None, **kwargs):
        self.profile = profile
        self.api_key = api_key
        self.callbacks = callbacks
        self.started = None
        FakeOrchestrator.instances.append(self)

    def start(self, transcript, params):
        self.started = (transcript, params)
        return FakeHandle(self.callbacks, self.outcome)


class TestProfilesCommand:
    def test_lists_builtins(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli.main, ["--config", "missing.yaml", "profiles"])
        assert result.exit_code == 0
        assert "openrouter" in result.output
        assert "gemini" in result.output


class TestAskCommand:
    def test_streams_answer(self):
        FakeOrchestrator.instances = []
        runner = CliRunner()
        with runner.isolated_filesystem(), \
             patch.object(cli, "Orchestrator", FakeOrchestrator):
            result = runner.invoke(cli.main, [
                "--config", "missing.yaml",
                "ask", "What is 2+2?",
                "--profile", "openai", "--model", "gpt-4o", "--max-steps", "3",
                "--system", "Be terse.",
            ])

        assert result.exit_code == 0, result.output
        assert "Hello from the model" in result.output

        [orch] = FakeOrchestrator.instances
        assert orch.profile.id == "openai"
        transcript, params = orch.started
        assert transcript.to_messages() == [
            {"role": "system", "content": "Be terse."},
            {"role": "user", "content": "What is 2+2?"},
        ]
        assert params.model == "gpt-4o"
        assert params.max_steps == 3

    def test_unknown_profile_exits_with_error(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli.main, [
                "--config", "missing.yaml", "ask", "hi", "--profile", "ghost",
            ])
        assert result.exit_code == 2
        assert "Unknown provider profile" in result.output

    def test_bad_config_file(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            with open("bad.yaml", "w") as f:
                f.write("profiles:\n  x:\n    extends: ghost\n")
            result = runner.invoke(cli.main, ["--config", "bad.yaml", "profiles"])
        assert result.exit_code != 0
        assert "ghost" in result.output
