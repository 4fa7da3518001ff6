"""
CLI interface for TTS Player.

Exposes speech generation and usage queries on the command line.
"""

import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tts_player.config.loader import AppSettings, load_settings
from tts_player.core.errors import TTSError
from tts_player.core.pipeline import SpeechPipeline, build_pipeline
from tts_player.core.pricing import estimate_cost
from tts_player.storage.repository import UsageLedger, get_ledger, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _settings(ctx: typer.Context) -> AppSettings:
    return ctx.obj or AppSettings()


def _open_pipeline(ctx: typer.Context) -> SpeechPipeline:
    try:
        return build_pipeline(_settings(ctx))
    except TTSError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


def _open_ledger(ctx: typer.Context) -> UsageLedger:
    settings = _settings(ctx)
    try:
        return get_ledger(settings.database_path, settings.profile.default_voice)
    except TTSError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Show debug logging"
    )
):
    """TTS Player CLI."""
    _configure_logging(verbose)
    try:
        ctx.obj = load_settings(str(config) if config else None)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if ctx.invoked_subcommand is None:
        console.print("TTS Player - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the usage database."""
    settings = _settings(ctx)
    try:
        initialize_schema(settings.database_path)
        console.print(f"[green]✓[/] Database initialized at {settings.database_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def voices(ctx: typer.Context):
    """List voices supported by the configured provider."""
    profile = _settings(ctx).profile
    if profile.open_voice_catalog:
        console.print(f"Provider [bold]{profile.name}[/] accepts any voice id")
        return
    for voice in sorted(profile.voices):
        marker = " (default)" if voice == profile.default_voice else ""
        console.print(f"{voice}{marker}")


@app.command()
def speak(
    ctx: typer.Context,
    text: Optional[str] = typer.Argument(None, help="Text to convert to speech"),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="Read text from a file instead"
    ),
    voice: Optional[str] = typer.Option(
        None,
        "--voice",
        "-v",
        help="Voice id (defaults to the provider's default voice)"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Model id (defaults to the provider's default model)"
    ),
    output: Path = typer.Option(
        Path("speech.mp3"),
        "--output",
        "-o",
        help="Where to write the audio"
    )
):
    """Convert text to speech and save the audio."""
    if file is not None:
        try:
            text = file.read_text(encoding="utf-8")
        except OSError as e:
            console.print(f"[red]Error reading file:[/] {e}")
            sys.exit(EXIT_CODE_FAIL)
    if text is None:
        console.print("[red]Error:[/] provide TEXT or --file")
        sys.exit(EXIT_CODE_FAIL)

    pipeline = _open_pipeline(ctx)
    try:
        profile = pipeline.profile
        audio = pipeline.generate_with_model(
            text,
            voice or profile.default_voice,
            model or profile.default_model
        )
    except TTSError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        pipeline.close()

    output.write_bytes(audio)
    console.print(
        f"[green]✓[/] Wrote {len(audio):,} bytes to {output} "
        f"({len(text):,} characters, est. {_format_currency(pipeline.estimate_cost(text, model))})"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stats(
    ctx: typer.Context,
    days: int = typer.Option(30, "--days", "-d", help="Trailing window in days")
):
    """Show aggregate usage for the trailing window."""
    ledger = _open_ledger(ctx)
    try:
        result = ledger.stats(days)
    except TTSError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Usage over the last {days} days[/bold]")
    console.print("-" * 40)
    console.print(f"Requests: {result.total_requests:,} "
                  f"({result.successful_requests:,} ok, {result.failed_requests:,} failed)")
    console.print(f"Characters: {result.total_characters:,}")
    cost = estimate_cost(_settings(ctx).profile.default_model, result.total_characters)
    console.print(f"Estimated cost: {_format_currency(cost)}")
    console.print(f"Most used voice: {result.most_used_voice}")

    if result.daily_usage:
        table = Table(title="Daily usage")
        table.add_column("Date")
        table.add_column("Characters", justify="right")
        table.add_column("Requests", justify="right")
        for day in result.daily_usage:
            table.add_row(day.date, f"{day.character_count:,}", f"{day.request_count:,}")
        console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum records to show"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Only the last N days")
):
    """Show recent generation attempts, newest first."""
    ledger = _open_ledger(ctx)
    try:
        records = ledger.list(limit, days)
    except TTSError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if not records:
        console.print("[dim]No usage recorded yet.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Usage history")
    table.add_column("Time")
    table.add_column("Voice")
    table.add_column("Model")
    table.add_column("Chars", justify="right")
    table.add_column("Status")
    table.add_column("Text")
    for record in records:
        status = "[green]ok[/]" if record.success else f"[red]{escape(record.error_message or 'failed')}[/]"
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S") if record.timestamp else "",
            record.voice_id,
            record.model_id,
            f"{record.character_count:,}",
            status,
            escape(record.text),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def account(ctx: typer.Context):
    """Show account status for the configured provider."""
    pipeline = _open_pipeline(ctx)
    try:
        info = pipeline.get_account_info()
    except TTSError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    finally:
        pipeline.close()

    console.print(f"\n[bold]Tier:[/bold] {info.subscription_tier}")
    if info.unlimited:
        console.print(f"Characters used (last 30 days): {info.character_used:,}")
        console.print("Limit: unlimited")
    else:
        console.print(f"Characters used: {info.character_used:,} / {info.character_limit:,}")
        console.print(f"Remaining: {info.characters_remaining:,}")
        console.print(f"Resets: {info.reset_date:%Y-%m-%d %H:%M}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def purge(
    ctx: typer.Context,
    days: int = typer.Option(90, "--days", "-d", help="Delete records older than N days")
):
    """Delete usage records older than the retention window."""
    ledger = _open_ledger(ctx)
    try:
        removed = ledger.purge_older_than(days)
    except (TTSError, ValueError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Removed {removed:,} records older than {days} days")
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.4f}"


if __name__ == "__main__":
    app()
