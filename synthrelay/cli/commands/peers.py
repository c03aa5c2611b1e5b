"""Commands running a controller or synth peer against a relay."""

from __future__ import annotations

import asyncio
import uuid

import typer
from loguru import logger

from synthrelay.cli.common import configure_logging, console, load_config_or_exit

DEFAULT_RELAY_URL = "ws://127.0.0.1:7676/api/signal"


def _load_rtc():
    try:
        from synthrelay.peer import rtc
    except ImportError as e:
        console.print(f"[bold red]aiortc is required for peers:[/bold red] pip install 'synthrelay[rtc]' ({str(e)})")
        raise typer.Exit(code=1)
    return rtc


def controller_command(
    peer_id: str = typer.Option(None, "--id", help="Controller id, must start with the controller prefix."),
    url: str = typer.Option(DEFAULT_RELAY_URL, "--url", help="Relay control socket URL."),
    session: str = typer.Option(None, "--session", envvar="SYNTHRELAY_SESSION", help="Session cookie value."),
    force: bool = typer.Option(False, "--force", help="Take over from the active controller."),
    log_level: int = typer.Option(0, "--log-level", help="Log level [0=INFO, 1=DEBUG, 2=ERROR, 3=CRITICAL]."),
) -> None:
    """Run a controller peer."""
    config = load_config_or_exit()
    configure_logging(config=None, log_level=log_level, debug=False)
    rtc = _load_rtc()

    controller_id = peer_id or f"{config.CONTROLLER_ID_PREFIX}{uuid.uuid4().hex[:8]}"
    if not controller_id.startswith(config.CONTROLLER_ID_PREFIX):
        logger.warning(f"Controller id without the '{config.CONTROLLER_ID_PREFIX}' prefix, the relay will not register it as controller")

    if force:
        logger.info(f"Taking over in {config.KICK_HOLD_SECONDS}s, press Ctrl+C to cancel")

    async def main() -> None:
        peer = rtc.ControllerPeer(controller_id=controller_id, relay_url=url, config=config, session_id=session)
        if force:
            # Hold-to-confirm, then take the lock by force before the peer starts
            await peer.lock_client.kick(hold_seconds=config.KICK_HOLD_SECONDS)
        await peer.run()

    console.print(f"[bold cyan]controller[/bold cyan] {controller_id}")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Controller stopped by user")


def synth_command(
    peer_id: str = typer.Option(None, "--id", help="Synth id."),
    url: str = typer.Option(DEFAULT_RELAY_URL, "--url", help="Relay control socket URL."),
    log_level: int = typer.Option(0, "--log-level", help="Log level [0=INFO, 1=DEBUG, 2=ERROR, 3=CRITICAL]."),
) -> None:
    """Run a headless synth peer that logs the parameters it receives."""
    config = load_config_or_exit()
    configure_logging(config=None, log_level=log_level, debug=False)
    rtc = _load_rtc()

    synth_id = peer_id or f"synth-{uuid.uuid4().hex[:8]}"

    def on_param(param: str, value: object) -> None:
        logger.info(f"Synth param | Param: {param} | Value: {value}")

    async def main() -> None:
        peer = rtc.SynthPeer(synth_id=synth_id, relay_url=url, config=config, on_param=on_param)
        peer.session.set_audio_enabled(True)
        await peer.run()

    console.print(f"[bold cyan]synth[/bold cyan] {synth_id}")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Synth stopped by user")
