"""
Release Session Manager

Owns the lifecycle of one release upload session on the service:

    CREATED -> UPLOADING -> COMMITTING -> PROCESSING -> READY -> PUBLISHED
                                                  \\-> FAILED
    ABORTED is reachable from any non-terminal state.

Opening and committing are single, non-retried calls. Processing status is
polled at a fixed interval until the server reports a terminal status or
the polling ceiling is reached.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from .cancellation import CancellationToken
from .exceptions import (
    ProcessingFailedError,
    ProcessingTimeoutError,
    SessionError,
    TransportError,
)
from .models import (
    PollingPolicy,
    ReleaseUploadSession,
    RetryPolicy,
    SessionState,
    UploadRequest,
    expected_chunk_count,
)
from .retry import call_with_retry
from .transport import AppCenterTransport

PROCESSING_STATUSES = frozenset({"uploadStarted", "uploadFinished", "processing"})
READY_STATUSES = frozenset({"readyToBePublished"})
FAILED_STATUSES = frozenset({"error", "malwareDetected", "failed", "aborted"})


class ReleaseSessionManager:
    """Creates, commits and polls release upload sessions"""

    def __init__(
        self,
        transport: AppCenterTransport,
        owner_name: str,
        app_name: str,
        retry_policy: RetryPolicy,
        polling_policy: PollingPolicy,
        cancel_token: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.owner_name = owner_name
        self.app_name = app_name
        self.retry_policy = retry_policy
        self.polling_policy = polling_policy
        self.cancel_token = cancel_token or CancellationToken()
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def uploads_path(self) -> str:
        return f"v0.1/apps/{self.owner_name}/{self.app_name}/uploads/releases"

    def open(self, request: UploadRequest, file_size: int, file_name: str) -> ReleaseUploadSession:
        """POST .../uploads/releases - allocate a release slot"""
        endpoint = self.uploads_path
        payload = {"file_name": file_name, "file_size": file_size}

        try:
            _, data = self.transport.send("POST", endpoint, json=payload)
        except TransportError as e:
            if e.status_code == 404:
                raise SessionError(
                    f"App {request.owner_name}/{request.app_name} not found",
                    status_code=e.status_code,
                    endpoint=endpoint
                ) from e
            raise

        session = self._parse_session(data, file_size, endpoint)
        self.logger.info(
            f"Opened upload session {session.upload_id}: "
            f"{session.chunk_count} chunk(s) of {session.chunk_size} bytes"
        )
        return session

    def mark_uploading(self, session: ReleaseUploadSession) -> None:
        session.transition(SessionState.UPLOADING)

    def commit(self, session: ReleaseUploadSession) -> None:
        """PATCH .../uploads/releases/{id} - tell the server all bytes are sent"""
        session.transition(SessionState.COMMITTING)
        endpoint = f"{self.uploads_path}/{session.upload_id}"
        self.transport.send("PATCH", endpoint, json={"upload_status": "uploadFinished"})
        session.transition(SessionState.PROCESSING)
        self.logger.info(f"Committed upload session {session.upload_id}")

    def wait_until_ready(self, session: ReleaseUploadSession) -> str:
        """Poll until the release is ready; returns the release id"""
        policy = self.polling_policy
        start = self.clock()
        deadline = start + policy.max_wait

        while True:
            data = self.poll_status(session)
            status = data.get("upload_status")

            if status in READY_STATUSES:
                release_id = data.get("release_distinct_id") or data.get("release_id")
                if release_id is None:
                    session.transition(SessionState.FAILED)
                    raise SessionError(
                        f"Upload {session.upload_id} is ready but no release id was returned"
                    )
                session.release_id = str(release_id)
                session.transition(SessionState.READY)
                self.logger.info(f"Release {session.release_id} is ready")
                return session.release_id

            if status in FAILED_STATUSES:
                session.error_details = data.get("error_details") or status
                session.transition(SessionState.FAILED)
                raise ProcessingFailedError(
                    f"Server failed to process upload {session.upload_id}: {session.error_details}"
                )

            if status not in PROCESSING_STATUSES:
                self.logger.warning(f"Unknown upload status '{status}', still waiting")

            remaining = deadline - self.clock()
            if remaining <= 0:
                self._timeout(session, start)
            self.cancel_token.wait(min(policy.interval, remaining))
            if self.clock() >= deadline:
                self._timeout(session, start)

    def poll_status(self, session: ReleaseUploadSession) -> Dict[str, Any]:
        """GET .../uploads/releases/{id}, retried on transient failures"""
        endpoint = f"{self.uploads_path}/{session.upload_id}"
        _, data = call_with_retry(
            lambda: self.transport.send("GET", endpoint),
            self.retry_policy,
            f"Status poll for {session.upload_id}",
            cancel_token=self.cancel_token,
            max_attempts=self.polling_policy.max_attempts_per_poll
        )
        if not isinstance(data, dict):
            raise SessionError(f"Malformed status response for upload {session.upload_id}", endpoint=endpoint)
        self.logger.debug(f"Upload {session.upload_id} status: {data.get('upload_status')}")
        return data

    def mark_published(self, session: ReleaseUploadSession) -> None:
        session.transition(SessionState.PUBLISHED)

    def abort(self, session: ReleaseUploadSession) -> None:
        """Abandon the session locally; the server expires it on its own"""
        if not session.is_terminal:
            session.transition(SessionState.ABORTED)
            self.logger.info(f"Abandoned upload session {session.upload_id}")

    def _timeout(self, session: ReleaseUploadSession, start: float):
        waited = self.clock() - start
        session.transition(SessionState.FAILED)
        raise ProcessingTimeoutError(
            f"Upload {session.upload_id} still processing after {waited:.0f}s "
            f"(limit {self.polling_policy.max_wait:.0f}s)",
            waited_seconds=waited
        )

    def _parse_session(self, data: Any, file_size: int, endpoint: str) -> ReleaseUploadSession:
        if not isinstance(data, dict):
            raise SessionError("Malformed upload session response", endpoint=endpoint)
        try:
            upload_id = str(data["id"])
            chunk_size = int(data["chunk_size"])
            chunk_urls = list(data["chunk_urls"])
        except (KeyError, TypeError, ValueError) as e:
            raise SessionError(f"Malformed upload session response: missing {e}", endpoint=endpoint) from e

        if chunk_size <= 0:
            raise SessionError(f"Invalid chunk size {chunk_size} in upload session", endpoint=endpoint)

        expected = expected_chunk_count(file_size, chunk_size)
        if len(chunk_urls) != expected:
            raise SessionError(
                f"Upload session returned {len(chunk_urls)} chunk URLs, expected {expected}",
                endpoint=endpoint
            )

        return ReleaseUploadSession(
            upload_id=upload_id,
            file_size=file_size,
            chunk_size=chunk_size,
            chunk_urls=chunk_urls
        )
