import logging
import sys

import typer

from kubecheck.commands import check, serve
from kubecheck.logging import setup_logging

app = typer.Typer()

debug_mode = False

app.command("check")(check.check)
app.command("serve")(serve.serve)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """kubecheck - installation health checks for Kubernetes."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.debug("Debug mode enabled")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
