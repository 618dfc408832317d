"""
Upload service for the App Center uploader.

Build-step adapter around the upload workflow: validates the step's fields,
builds the UploadRequest, shows progress and maps the outcome to an exit
code.
"""
import logging
import signal
import threading
from contextlib import contextmanager
from typing import Optional

from appcenter.core.config_manager import ConfigManager
from appcenter.rich_utils.ui_helpers import build_upload_progress, get_console, render_outcome
from appcenter.upload import AppCenterUploadManager
from appcenter.upload.exceptions import ConfigurationError, EnvironmentValidationError
from appcenter.upload.models import UploadRequest
from appcenter.validators import validate_fields

logger = logging.getLogger(__name__)


class UploadService:
    """Service for uploading a build artifact to App Center."""

    def __init__(self, console=None):
        self.config_manager = ConfigManager()
        self.console = console or get_console()

    def build_request(
        self,
        owner_name: str,
        app_name: str,
        distribution_groups: str,
        path_to_app: str,
        release_notes: Optional[str] = None,
        notify_testers: bool = True,
        mandatory_update: bool = False,
    ) -> UploadRequest:
        return UploadRequest(
            owner_name=owner_name.strip(),
            app_name=app_name.strip(),
            distribution_groups=distribution_groups,
            path_to_app=path_to_app,
            release_notes=release_notes,
            notify_testers=notify_testers,
            mandatory_update=mandatory_update
        )

    def execute_upload(
        self,
        owner_name: str,
        app_name: str,
        distribution_groups: str,
        path_to_app: str,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        release_notes: Optional[str] = None,
        notify_testers: bool = True,
        mandatory_update: bool = False,
        config_path: Optional[str] = None,
    ) -> int:
        """Execute upload workflow and return exit code."""
        field_errors = validate_fields({
            "owner_name": owner_name,
            "app_name": app_name,
            "distribution_groups": distribution_groups,
            "path_to_app": path_to_app,
            **({"api_token": api_token} if api_token is not None else {}),
        })
        if field_errors:
            self.console.print("❌ Invalid upload settings:", style="bold red")
            for error in field_errors.values():
                self.console.print(f"   {error}", style="dim")
            return 1

        try:
            settings = self.config_manager.load_settings(config_path)
        except FileNotFoundError as e:
            self.console.print(f"❌ {e}", style="bold red")
            return 1
        except ConfigurationError as e:
            self.console.print(f"❌ {e.message}", style="bold red")
            for error in e.errors:
                self.console.print(f"   {error}", style="dim")
            return 1

        if base_url:
            settings.setdefault("appcenter", {})["base_url"] = base_url

        manager = AppCenterUploadManager(settings=settings, api_token=api_token)
        if not manager.is_upload_enabled():
            self.console.print("❌ Upload not configured. Missing API token:", style="bold red")
            self.console.print("   Set APPCENTER_API_TOKEN or pass --api-token", style="dim")
            return 1

        request = self.build_request(
            owner_name, app_name, distribution_groups, path_to_app,
            release_notes=release_notes,
            notify_testers=notify_testers,
            mandatory_update=mandatory_update
        )

        self.console.print(
            f"🚀 Uploading {path_to_app} to {request.owner_name}/{request.app_name}...",
            style="bold blue"
        )

        try:
            with self._cancel_on_signals(manager), build_upload_progress(self.console) as progress:
                task = progress.add_task("Uploading chunks...", total=None)

                def on_session_opened(session):
                    progress.update(task, total=session.chunk_count)

                def on_chunk_uploaded(chunk):
                    progress.update(task, advance=1, description=f"Chunk {chunk.number} uploaded")

                outcome = manager.execute_upload_workflow(
                    request,
                    on_chunk_uploaded=on_chunk_uploaded,
                    on_session_opened=on_session_opened
                )
        except EnvironmentValidationError as e:
            self.console.print(f"❌ Configuration error: {e.message}", style="bold red")
            return 1

        render_outcome(self.console, outcome)
        if not outcome.success:
            logger.error(outcome.describe())
            return 1
        return 0

    @contextmanager
    def _cancel_on_signals(self, manager: AppCenterUploadManager):
        """Cancel the upload on SIGINT/SIGTERM while the workflow runs"""
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def _handler(signum, frame):
            manager.cancel(f"Received {signal.Signals(signum).name}")

        previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
