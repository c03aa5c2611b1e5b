"""Setup command for writing the relay's config.toml."""

from __future__ import annotations

import typer
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt

from synthrelay.api.config.config_handler import ConfigHandler
from synthrelay.api.models.config_model import Config
from synthrelay.cli.common import console


def _prompt_store(config: Config) -> None:
    config.STORE_PROVIDER = Prompt.ask(
        "Queue store",
        choices=["memory", "redis"],
        default=config.STORE_PROVIDER,
    )
    if config.STORE_PROVIDER == "redis":
        config.REDIS_URL = Prompt.ask("Redis URL", default=config.REDIS_URL).strip()
    else:
        config.WORKERS = 1

    config.MESSAGE_TTL_SECONDS = IntPrompt.ask(
        "Seconds a queued handshake message is kept",
        default=config.MESSAGE_TTL_SECONDS,
    )


def _prompt_ice(config: Config) -> None:
    if not Confirm.ask("Use Twilio TURN servers?", default=bool(config.TWILIO_ACCOUNT_SID)):
        config.TWILIO_ACCOUNT_SID = ""
        config.TWILIO_AUTH_TOKEN = ""
        return

    config.TWILIO_ACCOUNT_SID = Prompt.ask("Twilio account SID", default=config.TWILIO_ACCOUNT_SID or None).strip()
    config.TWILIO_AUTH_TOKEN = Prompt.ask("Twilio auth token", password=True).strip()


def setup_command(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config.toml without asking."),
) -> None:
    """Write the relay config interactively."""
    config_handler = ConfigHandler()

    console.print(
        Panel.fit(
            "[bold cyan]synthrelay setup[/bold cyan]\n\n"
            f"[dim]Writes {config_handler.config_toml_path}[/dim]",
            border_style="cyan",
        )
    )

    if config_handler.check_config() and not force:
        if not Confirm.ask("A config.toml already exists, overwrite it?", default=False):
            raise typer.Exit(code=0)

    config = Config()
    config.API_HOST = Prompt.ask("Listen host", default=config.API_HOST).strip()
    config.API_PORT = IntPrompt.ask("Listen port", default=config.API_PORT)
    _prompt_store(config)
    if config.STORE_PROVIDER == "redis":
        config.WORKERS = IntPrompt.ask("Worker processes", default=config.WORKERS)
    _prompt_ice(config)
    config.DEV_MODE = Confirm.ask("Enable dev mode (accepts the dev user without a session)?", default=False)

    try:
        config.validate()
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {str(e)}")
        raise typer.Exit(code=1)

    config_handler.write_config_toml(config)
    console.print(f"[bold green]Config written[/bold green] to {config_handler.config_toml_path}")
