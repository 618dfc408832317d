"""
Upload Orchestrator for App Center

Sequences the release workflow for one artifact:

    resolve groups -> open session -> upload chunks -> commit -> poll -> distribute

The first failing stage short-circuits the run. Failures are reported as an
UploadOutcome tagged with the stage; the orchestrator itself never retries.
"""

import logging
import os
import time
from contextlib import contextmanager
from typing import BinaryIO, Callable, Iterator, Optional

from .cancellation import CancellationToken
from .chunk_uploader import ChunkUploader, artifact_size
from .distribution import DistributionManager, parse_distribution_groups
from .exceptions import AppCenterException, UploadCancelledError
from .models import AppCenterConfig, Chunk, ReleaseUploadSession, UploadOutcome, UploadRequest, UploadStage
from .release_session import ReleaseSessionManager
from .transport import AppCenterTransport


class UploadOrchestrator:
    """Coordinates the complete release upload workflow"""

    def __init__(
        self,
        config: AppCenterConfig,
        cancel_token: Optional[CancellationToken] = None,
        transport: Optional[AppCenterTransport] = None,
        on_chunk_uploaded: Optional[Callable[[Chunk], None]] = None,
        on_session_opened: Optional[Callable[[ReleaseUploadSession], None]] = None,
    ):
        self.config = config
        self.cancel_token = cancel_token or CancellationToken()
        self.transport = transport or AppCenterTransport(config, self.cancel_token)
        self.on_chunk_uploaded = on_chunk_uploaded
        self.on_session_opened = on_session_opened
        self.logger = logging.getLogger(self.__class__.__name__)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.transport.close()

    def run(self, request: UploadRequest, artifact: Optional[BinaryIO] = None) -> UploadOutcome:
        """Execute the workflow; artifact defaults to request.path_to_app"""
        start_time = time.time()
        stage = UploadStage.RESOLVE_GROUPS
        session = None

        sessions = ReleaseSessionManager(
            self.transport,
            request.owner_name,
            request.app_name,
            self.config.retry,
            self.config.polling,
            cancel_token=self.cancel_token
        )
        distribution = DistributionManager(
            self.transport,
            request.owner_name,
            request.app_name,
            self.config.retry,
            cancel_token=self.cancel_token
        )
        uploader = ChunkUploader(
            self.transport,
            self.config.retry,
            max_concurrency=self.config.max_concurrent_chunks,
            cancel_token=self.cancel_token,
            on_chunk_uploaded=self.on_chunk_uploaded
        )

        try:
            self.cancel_token.raise_if_cancelled()

            # Destinations are resolved before anything is uploaded so a
            # release never exists without its target groups.
            group_names = parse_distribution_groups(request.distribution_groups)
            destinations = distribution.resolve_destinations(group_names)

            stage = UploadStage.OPEN_SESSION
            with self._open_artifact(request, artifact) as file:
                file_size = artifact_size(file)
                session = sessions.open(request, file_size, os.path.basename(request.path_to_app))
                if self.on_session_opened:
                    self.on_session_opened(session)

                stage = UploadStage.UPLOAD
                sessions.mark_uploading(session)
                uploader.upload(file, session)

            stage = UploadStage.COMMIT
            sessions.commit(session)

            stage = UploadStage.PROCESSING
            release_id = sessions.wait_until_ready(session)

            stage = UploadStage.DISTRIBUTE
            distribution.distribute(
                release_id,
                destinations,
                release_notes=request.release_notes,
                notify_testers=request.notify_testers,
                mandatory_update=request.mandatory_update
            )
            self.cancel_token.raise_if_cancelled()
            sessions.mark_published(session)

            self.logger.info(f"Release {release_id} published for {request.owner_name}/{request.app_name}")
            return UploadOutcome.succeeded(release_id, time.time() - start_time)

        except UploadCancelledError as e:
            return self._aborted(stage, str(e), session, sessions, start_time)

        except (AppCenterException, OSError) as e:
            if self.cancel_token.cancelled:
                return self._aborted(stage, self.cancel_token.reason, session, sessions, start_time)
            self.logger.error(f"Upload failed during {stage.value}: {e}")
            if session is not None:
                sessions.abort(session)
            return UploadOutcome.failed(stage, e, time.time() - start_time)

        except Exception as e:
            self.logger.exception(f"Unexpected error during {stage.value}")
            if session is not None:
                sessions.abort(session)
            return UploadOutcome.failed(stage, e, time.time() - start_time)

    def _aborted(self, stage: UploadStage, reason: str, session: Optional[ReleaseUploadSession],
                 sessions: ReleaseSessionManager, start_time: float) -> UploadOutcome:
        self.logger.warning(f"Upload aborted during {stage.value}: {reason}")
        if session is not None:
            sessions.abort(session)
        return UploadOutcome.aborted(stage, reason, time.time() - start_time)

    @contextmanager
    def _open_artifact(self, request: UploadRequest, artifact: Optional[BinaryIO]) -> Iterator[BinaryIO]:
        if artifact is not None:
            yield artifact
            return
        with open(request.path_to_app, "rb") as file:
            yield file

