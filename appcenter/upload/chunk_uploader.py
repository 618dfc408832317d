"""
Chunk Uploader

Splits the artifact into the session's fixed-size byte ranges and PUTs each
range to its server-supplied URL. Chunks are transferred with bounded
parallelism and retried independently; the first chunk that fails for good
fails the whole upload.
"""

import logging
import os
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import BinaryIO, Callable, List, Optional

from .cancellation import CancellationToken
from .exceptions import AuthError, TransportError, UploadCancelledError, UploadError
from .models import Chunk, ReleaseUploadSession, RetryPolicy, expected_chunk_count
from .retry import call_with_retry
from .transport import AppCenterTransport


def artifact_size(file: BinaryIO) -> int:
    try:
        return os.fstat(file.fileno()).st_size
    except (AttributeError, OSError, ValueError):
        position = file.tell()
        size = file.seek(0, os.SEEK_END)
        file.seek(position)
        return size


def plan_chunks(file_size: int, session: ReleaseUploadSession) -> List[Chunk]:
    """Byte ranges covering exactly file_size bytes, one per chunk URL"""
    if file_size != session.file_size:
        raise UploadError(
            f"Session {session.upload_id} was created for {session.file_size} bytes, file has {file_size}"
        )
    if session.chunk_size <= 0:
        raise UploadError(f"Invalid chunk size {session.chunk_size}")

    count = expected_chunk_count(file_size, session.chunk_size)
    if len(session.chunk_urls) < count:
        raise UploadError(
            f"Session {session.upload_id} has {len(session.chunk_urls)} chunk URLs, {count} required"
        )

    chunks = []
    for index in range(count):
        offset = index * session.chunk_size
        length = min(session.chunk_size, file_size - offset)
        chunks.append(Chunk(
            number=index + 1,
            offset=offset,
            length=length,
            url=session.chunk_urls[index],
            is_last=index == count - 1
        ))
    return chunks


class ChunkUploader:
    """Transfers the artifact chunk by chunk"""

    def __init__(
        self,
        transport: AppCenterTransport,
        retry_policy: RetryPolicy,
        max_concurrency: int = 4,
        cancel_token: Optional[CancellationToken] = None,
        on_chunk_uploaded: Optional[Callable[[Chunk], None]] = None,
    ):
        self.transport = transport
        self.retry_policy = retry_policy
        self.max_concurrency = max(1, max_concurrency)
        self.cancel_token = cancel_token or CancellationToken()
        self.on_chunk_uploaded = on_chunk_uploaded
        self.logger = logging.getLogger(self.__class__.__name__)
        self._read_lock = threading.Lock()

    def upload(self, file: BinaryIO, session: ReleaseUploadSession) -> None:
        """Upload every chunk of file; raises UploadError on failure"""
        with self._read_lock:
            file_size = artifact_size(file)
        chunks = plan_chunks(file_size, session)
        self.logger.info(
            f"Uploading {file_size} bytes in {len(chunks)} chunk(s) of {session.chunk_size} bytes"
        )

        # Stops queued chunks once one chunk has failed for good.
        stop = threading.Event()

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            futures = [
                executor.submit(self._upload_chunk, file, chunk, file_size, stop)
                for chunk in chunks
            ]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            failure = next((f.exception() for f in done if f.exception() is not None), None)
            if failure is not None:
                stop.set()
                for future in pending:
                    future.cancel()
                raise failure

        self.logger.info(f"All {len(chunks)} chunk(s) uploaded for session {session.upload_id}")

    def _upload_chunk(self, file: BinaryIO, chunk: Chunk, file_size: int, stop: threading.Event) -> Chunk:
        if stop.is_set():
            raise UploadCancelledError("Upload stopped after another chunk failed")
        self.cancel_token.raise_if_cancelled()

        data = self._read_chunk(file, chunk)
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Range": f"bytes {chunk.offset}-{chunk.end - 1}/{file_size}",
            "X-Chunk-Number": str(chunk.number),
        }
        if chunk.is_last:
            headers["X-Last-Chunk"] = "true"

        def _send():
            if stop.is_set():
                raise UploadCancelledError("Upload stopped after another chunk failed")
            return self.transport.send("PUT", chunk.url, headers=headers, data=data)

        description = f"Chunk {chunk.number}"
        try:
            call_with_retry(
                _send,
                self.retry_policy,
                description,
                cancel_token=self.cancel_token
            )
        except (AuthError, UploadCancelledError):
            raise
        except TransportError as e:
            if e.retryable:
                message = f"Chunk {chunk.number} failed after {self.retry_policy.max_attempts} attempt(s): {e.message}"
            else:
                message = f"Chunk {chunk.number} rejected by server: {e.message}"
            raise UploadError(
                message,
                chunk_number=chunk.number,
                status_code=e.status_code,
                endpoint=chunk.url
            ) from e

        self.logger.debug(f"Chunk {chunk.number} uploaded ({chunk.length} bytes)")
        if self.on_chunk_uploaded:
            self.on_chunk_uploaded(chunk)
        return chunk

    def _read_chunk(self, file: BinaryIO, chunk: Chunk) -> bytes:
        with self._read_lock:
            file.seek(chunk.offset)
            data = file.read(chunk.length)
        if len(data) != chunk.length:
            raise UploadError(
                f"Short read for chunk {chunk.number}: expected {chunk.length} bytes, got {len(data)}",
                chunk_number=chunk.number
            )
        return data

