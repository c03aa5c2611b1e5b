import typer
from rich import print

from synthrelay.cli.commands.peers import controller_command, synth_command
from synthrelay.cli.commands.serve import serve_command
from synthrelay.cli.commands.setup import setup_command
from synthrelay.core import constants

# Init cli
cli = typer.Typer(help="Signaling relay for one controller and many synths.")


@cli.command()
def version():
    """ synthrelay's current version """
    print(f"[bold cyan]synthrelay [reset]{constants.VERSION}")


cli.command(name="serve")(serve_command)
cli.command(name="setup")(setup_command)
cli.command(name="controller")(controller_command)
cli.command(name="synth")(synth_command)


def run() -> None:
    constants.banner()
    cli()
