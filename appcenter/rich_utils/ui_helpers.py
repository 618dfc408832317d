import os
import sys

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.text import Text

from appcenter.upload.models import OutcomeStatus, UploadOutcome, UploadStage


def is_ci_environment():
    return (
        os.getenv('CI') is not None or
        os.getenv('JENKINS_URL') is not None or
        os.getenv('GITHUB_ACTIONS') is not None or
        not sys.stdout.isatty()
    )


def get_console() -> Console:
    """Plain console in CI, full Rich capabilities in a terminal."""
    if is_ci_environment():
        return Console(force_terminal=False, no_color=True)
    return Console()


def build_upload_progress(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=is_ci_environment()
    )


def render_outcome(console: Console, outcome: UploadOutcome) -> None:
    """Print a panel describing how the upload ended"""
    message = Text()
    if outcome.success:
        message.append("Release published successfully!\n", style="bold green")
        message.append("Release id: ", style="green")
        message.append(str(outcome.release_id), style="bold green")
        border_style, title = "green", "App Center upload"
    elif outcome.status is OutcomeStatus.ABORTED:
        message.append(outcome.describe(), style="yellow")
        border_style, title = "yellow", "App Center upload aborted"
    else:
        message.append(outcome.describe(), style="red")
        if outcome.stage is UploadStage.DISTRIBUTE:
            message.append(
                "\n\nThe release exists on App Center but was not distributed; "
                "assign it to its groups manually.",
                style="dim"
            )
        border_style, title = "red", "App Center upload failed"

    if outcome.total_time_seconds is not None:
        message.append(f"\n\nTotal time: {outcome.total_time_seconds:.1f}s", style="dim")

    console.print(Panel(message, title=title, border_style=border_style, padding=(1, 2)))
