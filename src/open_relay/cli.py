"""Command-line entry point for Open Relay."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from open_relay.config import RelayConfig, load_config
from open_relay.core import ConversationTranscript, Orchestrator
from open_relay.errors import RelayError
from open_relay.events import RunCallbacks
from open_relay.providers import available_profiles
from open_relay.types import RunOutcome, TokenUsage

console = Console()


class StreamPrinter:
    """Writes streamed text as-is and reasoning dimmed."""

    def __init__(self, console: Console, show_reasoning: bool = True) -> None:
        self.console = console
        self.show_reasoning = show_reasoning
        self._in_reasoning = False

    def on_text(self, text: str) -> None:
        if self._in_reasoning:
            self.console.print()
            self._in_reasoning = False
        self.console.print(text, end="", markup=False, highlight=False)

    def on_reasoning(self, reasoning: str) -> None:
        if not self.show_reasoning:
            return
        self._in_reasoning = True
        self.console.print(reasoning, end="", style="dim", markup=False, highlight=False)

    def on_rate_limit_wait(self, attempt: int, wait_ms: int, reason: str) -> None:
        self.console.print(
            f"\n[yellow]{reason}: waiting {wait_ms / 1000:.1f}s (attempt {attempt})[/yellow]"
        )

    def on_token_usage(self, usage: TokenUsage) -> None:
        self.console.print(
            f"\n[dim]step {usage.step}: {usage.input_tokens} in / "
            f"{usage.output_tokens} out ({usage.cached_tokens} cached)[/dim]"
        )

    def on_error(self, error: str) -> None:
        self.console.print(f"\n[red]Error: {error}[/red]")


async def _ask(
    config: RelayConfig,
    profile_name: str | None,
    prompt: str,
    system: str,
    show_reasoning: bool,
    show_usage: bool,
    **overrides: object,
) -> RunOutcome:
    profile = config.provider_profile(profile_name)
    printer = StreamPrinter(console, show_reasoning=show_reasoning)
    callbacks = RunCallbacks(
        on_text=printer.on_text,
        on_reasoning=printer.on_reasoning,
        on_rate_limit_wait=printer.on_rate_limit_wait,
        on_token_usage=printer.on_token_usage if show_usage else None,
        on_error=printer.on_error,
    )
    orchestrator = Orchestrator(
        profile,
        api_key=config.api_key(profile_name),
        callbacks=callbacks,
    )
    transcript = ConversationTranscript(system=system)
    transcript.add_user(prompt)

    handle = orchestrator.start(transcript, config.run_params(**overrides))
    try:
        return await handle.wait()
    except asyncio.CancelledError:
        handle.cancel()
        return await handle.wait()


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to open_relay.yaml (auto-detected from CWD or ~/.config/open-relay/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """Open Relay - streaming tool-calling agent loop for OpenAI-compatible APIs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    try:
        ctx.obj = load_config(config_path)
    except RelayError as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.argument("prompt")
@click.option("--profile", "-p", "profile_name", default=None, help="Provider profile")
@click.option("--model", "-m", default=None, help="Model id")
@click.option("--system", "-s", default="", help="System instructions")
@click.option("--temperature", "-t", type=float, default=None)
@click.option("--max-steps", type=int, default=None)
@click.option("--think/--no-think", "include_thoughts", default=None,
              help="Request extended thinking where supported")
@click.option("--effort", "reasoning_effort",
              type=click.Choice(["low", "medium", "high"]), default=None)
@click.option("--no-reasoning", is_flag=True, help="Hide reasoning output")
@click.option("--usage", "show_usage", is_flag=True, help="Print token usage per step")
@click.pass_obj
def ask(config: RelayConfig, prompt: str, profile_name: str | None, model: str | None,
        system: str, temperature: float | None, max_steps: int | None,
        include_thoughts: bool | None, reasoning_effort: str | None,
        no_reasoning: bool, show_usage: bool):
    """Send PROMPT and stream the answer."""
    try:
        outcome = asyncio.run(_ask(
            config, profile_name, prompt, system,
            show_reasoning=not no_reasoning,
            show_usage=show_usage,
            model=model,
            temperature=temperature,
            max_steps=max_steps,
            include_thoughts=include_thoughts,
            reasoning_effort=reasoning_effort,
        ))
    except (RelayError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        sys.exit(130)

    console.print()
    if outcome.cancelled:
        console.print("[yellow]Cancelled[/yellow]")
    if outcome.error:
        sys.exit(1)


@main.command()
@click.pass_obj
def profiles(config: RelayConfig):
    """List available provider profiles."""
    table = Table(title="Provider profiles")
    table.add_column("Name", style="bold", no_wrap=True)
    table.add_column("Base URL")
    table.add_column("Tool results")
    table.add_column("Key env")

    names = list(available_profiles())
    names += [n for n in config.profiles if n not in names]
    for name in names:
        try:
            profile = config.provider_profile(name)
        except RelayError as e:
            table.add_row(name, f"[red]{e}[/red]", "", "")
            continue
        marker = " *" if name == config.profile else ""
        table.add_row(
            f"{name}{marker}",
            profile.base_url,
            profile.tool_result_role,
            profile.api_key_env or "-",
        )
    console.print(table)


if __name__ == "__main__":
    main()
