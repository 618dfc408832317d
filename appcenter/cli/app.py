"""
Main CLI application for the App Center uploader.

Defines the Typer application structure and command routing,
keeping the CLI layer thin.
"""
import logging

import typer

from appcenter.cli.commands.upload import upload_command


# Initialize Typer app
app = typer.Typer(help="Upload build artifacts to App Center and distribute them")

# Register commands
app.command("upload", help="Upload a build artifact and assign it to distribution groups.")(upload_command)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable debug logging")
):
    """App Center release uploader.

    Run 'appcenter upload --help' for the upload options.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )
