"""
App Center Release Upload Module

Uploads a build artifact to App Center and drives it through the release
pipeline:

Phase 1: Resolve distribution groups
Phase 2: Open a release upload session and transfer the file in chunks
Phase 3: Commit the upload and wait for server-side processing
Phase 4: Assign the processed release to the distribution groups
"""

from typing import BinaryIO, Optional

from .cancellation import CancellationToken
from .environment_detector import AppCenterEnvironmentDetector
from .upload_orchestrator import UploadOrchestrator
from .models import AppCenterConfig, UploadOutcome, UploadRequest
from .exceptions import (
    AppCenterException,
    TransportError,
    AuthError,
    SessionError,
    UploadError,
    ProcessingError,
    ProcessingFailedError,
    ProcessingTimeoutError,
    DistributionError,
    UnknownGroupError,
    ServerRejectedError,
    UploadCancelledError,
    EnvironmentValidationError,
    ConfigurationError,
)


class AppCenterUploadManager:
    """Main interface for App Center upload functionality"""

    def __init__(self, settings: Optional[dict] = None, api_token: Optional[str] = None):
        self.detector = AppCenterEnvironmentDetector()
        self.settings = settings
        self.api_token = api_token
        self.cancel_token = CancellationToken()

    def is_upload_enabled(self) -> bool:
        """Check if an API token is available"""
        return bool(self.api_token) or self.detector.is_upload_enabled()

    def execute_upload_workflow(self, request: UploadRequest, artifact: Optional[BinaryIO] = None,
                                on_chunk_uploaded=None, on_session_opened=None) -> UploadOutcome:
        """Execute the complete upload workflow"""
        if not self.is_upload_enabled():
            raise EnvironmentValidationError(
                "Upload not enabled - missing environment variables",
                missing_vars=self.detector.get_missing_variables()
            )

        config = self.detector.get_upload_config(self.settings, api_token=self.api_token)
        orchestrator = UploadOrchestrator(
            config,
            cancel_token=self.cancel_token,
            on_chunk_uploaded=on_chunk_uploaded,
            on_session_opened=on_session_opened
        )
        with orchestrator:
            return orchestrator.run(request, artifact)

    def cancel(self, reason: str = "Upload cancelled") -> None:
        self.cancel_token.cancel(reason)


__all__ = [
    'AppCenterUploadManager',
    'AppCenterEnvironmentDetector',
    'AppCenterConfig',
    'CancellationToken',
    'UploadOrchestrator',
    'UploadOutcome',
    'UploadRequest',
    'AppCenterException',
    'TransportError',
    'AuthError',
    'SessionError',
    'UploadError',
    'ProcessingError',
    'ProcessingFailedError',
    'ProcessingTimeoutError',
    'DistributionError',
    'UnknownGroupError',
    'ServerRejectedError',
    'UploadCancelledError',
    'EnvironmentValidationError',
    'ConfigurationError',
]
