"""
Data Models for the App Center Upload Workflow

Dataclass-based models for configuration, the release upload session and
the final outcome of an upload.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import quote

from .exceptions import SessionStateError


class SessionState(Enum):
    """Lifecycle of a release upload session"""
    CREATED = "created"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    PROCESSING = "processing"
    READY = "ready"
    PUBLISHED = "published"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({SessionState.PUBLISHED, SessionState.FAILED, SessionState.ABORTED})

ALLOWED_TRANSITIONS = {
    SessionState.CREATED: {SessionState.UPLOADING},
    SessionState.UPLOADING: {SessionState.COMMITTING},
    SessionState.COMMITTING: {SessionState.PROCESSING},
    SessionState.PROCESSING: {SessionState.READY, SessionState.FAILED},
    SessionState.READY: {SessionState.PUBLISHED, SessionState.FAILED},
}


class UploadStage(Enum):
    """Stage of the orchestrated upload, used to tag failures"""
    RESOLVE_GROUPS = "resolve_groups"
    OPEN_SESSION = "open_session"
    UPLOAD = "upload"
    COMMIT = "commit"
    PROCESSING = "processing"
    DISTRIBUTE = "distribute"


class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"


@dataclass
class ProxyConfig:
    """Forward proxy settings"""
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    def to_url(self) -> str:
        credentials = ""
        if self.username:
            credentials = quote(self.username, safe="")
            if self.password:
                credentials += ":" + quote(self.password, safe="")
            credentials += "@"
        return f"http://{credentials}{self.host}:{self.port}"

    def to_requests_proxies(self) -> Dict[str, str]:
        url = self.to_url()
        return {"http": url, "https": url}


@dataclass
class RetryPolicy:
    """Exponential backoff for retryable transport failures"""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0


@dataclass
class PollingPolicy:
    """How long and how often to poll upload processing status"""
    interval: float = 5.0
    max_wait: float = 300.0
    max_attempts_per_poll: int = 3


@dataclass
class AppCenterConfig:
    """Configuration for App Center upload operations"""
    api_token: str
    base_url: str = "https://api.appcenter.ms/"
    request_timeout: int = 60
    max_concurrent_chunks: int = 4
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    polling: PollingPolicy = field(default_factory=PollingPolicy)
    proxy: Optional[ProxyConfig] = None

    def get_headers(self) -> Dict[str, str]:
        """Get authentication headers for API requests"""
        return {
            "X-API-Token": self.api_token,
            "Accept": "application/json"
        }


@dataclass(frozen=True)
class UploadRequest:
    """What to upload and where to distribute it"""
    owner_name: str
    app_name: str
    distribution_groups: str
    path_to_app: str
    release_notes: Optional[str] = None
    notify_testers: bool = True
    mandatory_update: bool = False


@dataclass(frozen=True)
class DestinationId:
    """A resolved distribution group"""
    name: str
    id: str

    def to_payload(self) -> Dict[str, str]:
        return {"name": self.name, "id": self.id}


@dataclass(frozen=True)
class Chunk:
    """One byte range of the artifact and where to send it"""
    number: int
    offset: int
    length: int
    url: str
    is_last: bool = False

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass
class ReleaseUploadSession:
    """Server-side upload bookkeeping, owned by one orchestrator run"""
    upload_id: str
    file_size: int
    chunk_size: int
    chunk_urls: List[str]
    state: SessionState = SessionState.CREATED
    release_id: Optional[str] = None
    error_details: Optional[str] = None

    @property
    def chunk_count(self) -> int:
        return expected_chunk_count(self.file_size, self.chunk_size)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: SessionState) -> None:
        """Move to new_state, rejecting transitions the lifecycle forbids.

        ABORTED is reachable from every non-terminal state.
        """
        if self.is_terminal:
            raise SessionStateError(
                f"Session {self.upload_id} is already {self.state.value}"
            )
        if new_state is not SessionState.ABORTED and new_state not in ALLOWED_TRANSITIONS.get(self.state, ()):
            raise SessionStateError(
                f"Invalid session transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state


def expected_chunk_count(file_size: int, chunk_size: int) -> int:
    if file_size <= 0:
        return 0
    return math.ceil(file_size / chunk_size)


@dataclass
class UploadOutcome:
    """Terminal result of an orchestrated upload"""
    status: OutcomeStatus
    release_id: Optional[str] = None
    stage: Optional[UploadStage] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    total_time_seconds: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def succeeded(cls, release_id: str, total_time_seconds: Optional[float] = None) -> "UploadOutcome":
        return cls(
            status=OutcomeStatus.SUCCESS,
            release_id=release_id,
            total_time_seconds=total_time_seconds
        )

    @classmethod
    def failed(cls, stage: UploadStage, error: BaseException,
               total_time_seconds: Optional[float] = None) -> "UploadOutcome":
        return cls(
            status=OutcomeStatus.FAILURE,
            stage=stage,
            error=str(error),
            error_type=type(error).__name__,
            total_time_seconds=total_time_seconds
        )

    @classmethod
    def aborted(cls, stage: UploadStage, reason: str,
                total_time_seconds: Optional[float] = None) -> "UploadOutcome":
        return cls(
            status=OutcomeStatus.ABORTED,
            stage=stage,
            error=reason,
            error_type="UploadCancelledError",
            total_time_seconds=total_time_seconds
        )

    def describe(self) -> str:
        """Human-readable summary of the outcome"""
        if self.success:
            return f"Release {self.release_id} uploaded and distributed"
        stage = self.stage.value if self.stage else "unknown"
        if self.status is OutcomeStatus.ABORTED:
            return f"Upload aborted during {stage}: {self.error}"
        return f"Upload failed during {stage} ({self.error_type}): {self.error}"
