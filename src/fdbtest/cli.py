import signal
import threading
from typing import Annotated, Optional

import typer

from fdbtest.common.constants import ENV_VERBOSE, ENV_VERSION
from fdbtest.common.errors import FdbTestError
from fdbtest.common.types import ServerConfig
from fdbtest.server import FdbServer

app = typer.Typer()


def wait_for_signal(signals=(signal.SIGINT, signal.SIGTERM)):
    stop_event = threading.Event()

    def handler(sig, frame):
        typer.echo(f"Received signal: {signal.Signals(sig).name}")
        stop_event.set()

    # Register signal handlers
    previous = {sig: signal.signal(sig, handler) for sig in signals}

    typer.echo("Running until a signal is received")
    stop_event.wait()
    typer.echo("Got a termination signal, cleaning up and exiting gracefully")

    # Cleanup handlers
    for sig, old_handler in previous.items():
        signal.signal(sig, old_handler)


@app.command()
def up(
    version: Annotated[Optional[str], typer.Option(envvar=ENV_VERSION)] = None,
    verbose: Annotated[bool, typer.Option(envvar=ENV_VERBOSE)] = False,
    cluster_dir: Annotated[Optional[str], typer.Option()] = None,
):
    """Start a throwaway foundationdb and keep it up until interrupted."""
    config = ServerConfig.from_env(version=version or "", verbose=verbose)
    server = FdbServer(config, cluster_dir=cluster_dir)
    try:
        server.start()
    except FdbTestError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)

    try:
        typer.echo(f"container: {server.short_id}")
        typer.echo(f"cluster file: {server.cluster_file}")
        wait_for_signal()
    finally:
        server.destroy_quietly()


@app.command()
def version():
    """Print the pinned foundationdb version."""
    typer.echo(ServerConfig().version)


if __name__ == "__main__":
    app(prog_name="fdbtest")
