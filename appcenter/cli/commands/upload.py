"""
Upload command implementation.

Thin wrapper around UploadService that handles CLI argument parsing
and delegates business logic to the service layer.
"""
import sys
from typing import Optional

import typer

from appcenter.core.uploader import UploadService


def upload_command(
    owner_name: str = typer.Option(..., "--owner", help="App Center owner (user or organization) name"),
    app_name: str = typer.Option(..., "--app", help="App Center app name"),
    distribution_groups: str = typer.Option(..., "--groups", help="Distribution groups, comma or newline separated"),
    path_to_app: str = typer.Option(..., "--path", help="Path to the build artifact (.ipa, .apk, ...)"),
    api_token: Optional[str] = typer.Option(None, "--api-token", help="API token (overrides APPCENTER_API_TOKEN)"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API base URL (overrides APPCENTER_BASE_URL)"),
    release_notes: Optional[str] = typer.Option(None, "--release-notes", help="Release notes for the new release"),
    notify_testers: bool = typer.Option(True, "--notify-testers/--no-notify-testers", help="Email testers about the release"),
    mandatory_update: bool = typer.Option(False, "--mandatory-update", help="Mark the release as a mandatory update"),
    config_path: Optional[str] = typer.Option(None, "-c", "--config", help="Path to config YAML")
):
    """Upload a build artifact to App Center and distribute it."""

    # Delegate to service layer
    upload_service = UploadService()
    exit_code = upload_service.execute_upload(
        owner_name=owner_name,
        app_name=app_name,
        distribution_groups=distribution_groups,
        path_to_app=path_to_app,
        api_token=api_token,
        base_url=base_url,
        release_notes=release_notes,
        notify_testers=notify_testers,
        mandatory_update=mandatory_update,
        config_path=config_path
    )

    # Exit with appropriate code
    if exit_code != 0:
        sys.exit(exit_code)
