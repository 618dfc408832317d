"""
Tests for the Release Session Manager

Covers session creation, commit, the processing poll loop and the session
state machine.
"""

import pytest

from appcenter.upload.exceptions import (
    AuthError,
    ProcessingFailedError,
    ProcessingTimeoutError,
    SessionError,
    SessionStateError,
    TransportError,
    UploadCancelledError,
)
from appcenter.upload.models import (
    PollingPolicy,
    ReleaseUploadSession,
    RetryPolicy,
    SessionState,
    UploadRequest,
)
from appcenter.upload.release_session import ReleaseSessionManager

from helpers import API_PREFIX, ClockedToken, FakeClock, FakeTransport, session_response

UPLOADS = f"{API_PREFIX}/uploads/releases"
NO_WAIT = RetryPolicy(max_attempts=3, initial_delay=0, max_delay=0)


class TestReleaseSessionManager:
    """Test cases for the release session lifecycle"""

    def setup_method(self):
        """Setup for each test"""
        self.transport = FakeTransport()
        self.clock = FakeClock()
        self.token = ClockedToken(self.clock)
        self.request = UploadRequest(
            owner_name="owner",
            app_name="app",
            distribution_groups="beta",
            path_to_app="build/app.apk"
        )
        self.manager = self.make_manager(PollingPolicy(interval=1, max_wait=3))

    def make_manager(self, polling):
        return ReleaseSessionManager(
            self.transport, "owner", "app", NO_WAIT, polling,
            cancel_token=self.token,
            clock=self.clock
        )

    def open_session(self):
        self.transport.add("POST", UPLOADS, session_response(file_size=10, chunk_size=4))
        return self.manager.open(self.request, 10, "app.apk")

    def processing_session(self):
        session = self.open_session()
        self.transport.add("PATCH", f"{UPLOADS}/upl-1", (200, {"upload_status": "uploadFinished"}))
        self.manager.mark_uploading(session)
        self.manager.commit(session)
        return session

    def test_open_creates_session(self):
        session = self.open_session()

        assert session.upload_id == "upl-1"
        assert session.chunk_size == 4
        assert session.chunk_count == 3
        assert len(session.chunk_urls) == 3
        assert session.state is SessionState.CREATED
        assert self.transport.calls[0]["json"] == {"file_name": "app.apk", "file_size": 10}

    def test_open_unknown_app_is_session_error(self):
        self.transport.add("POST", UPLOADS, TransportError("HTTP 404: not found", retryable=False, status_code=404))

        with pytest.raises(SessionError, match="owner/app not found"):
            self.manager.open(self.request, 10, "app.apk")

    def test_open_is_not_retried(self):
        self.transport.add("POST", UPLOADS, TransportError("HTTP 503", status_code=503))

        with pytest.raises(TransportError):
            self.manager.open(self.request, 10, "app.apk")
        assert len(self.transport.calls) == 1

    def test_open_auth_error_propagates(self):
        self.transport.add("POST", UPLOADS, AuthError("bad token", status_code=401))

        with pytest.raises(AuthError):
            self.manager.open(self.request, 10, "app.apk")

    @pytest.mark.parametrize("body", [
        None,
        {"chunk_size": 4, "chunk_urls": []},
        {"id": "u", "chunk_urls": ["a", "b", "c"]},
        {"id": "u", "chunk_size": "four", "chunk_urls": ["a", "b", "c"]},
        {"id": "u", "chunk_size": 0, "chunk_urls": []},
    ])
    def test_open_malformed_response(self, body):
        self.transport.add("POST", UPLOADS, (201, body))

        with pytest.raises(SessionError):
            self.manager.open(self.request, 10, "app.apk")

    def test_open_chunk_count_mismatch(self):
        self.transport.add("POST", UPLOADS, (201, {"id": "u", "chunk_size": 4, "chunk_urls": ["a", "b"]}))

        with pytest.raises(SessionError, match="expected 3"):
            self.manager.open(self.request, 10, "app.apk")

    def test_commit_moves_session_to_processing(self):
        session = self.processing_session()

        assert session.state is SessionState.PROCESSING
        commit = self.transport.calls_to("PATCH", f"{UPLOADS}/upl-1")[0]
        assert commit["json"] == {"upload_status": "uploadFinished"}

    def test_commit_before_upload_is_rejected(self):
        session = self.open_session()

        with pytest.raises(SessionStateError):
            self.manager.commit(session)
        assert self.transport.calls_to("PATCH", f"{UPLOADS}/upl-1") == []

    def test_ready_after_two_polls(self):
        session = self.processing_session()
        self.transport.add(
            "GET", f"{UPLOADS}/upl-1",
            (200, {"upload_status": "uploadFinished"}),
            (200, {"upload_status": "readyToBePublished", "release_distinct_id": "rel-42"})
        )

        release_id = self.manager.wait_until_ready(session)

        assert release_id == "rel-42"
        assert session.state is SessionState.READY
        assert len(self.transport.calls_to("GET", f"{UPLOADS}/upl-1")) == 2
        assert self.token.waits == [1]

    def test_numeric_release_id_is_stringified(self):
        session = self.processing_session()
        self.transport.add("GET", f"{UPLOADS}/upl-1", (200, {"upload_status": "readyToBePublished", "release_distinct_id": 42}))

        assert self.manager.wait_until_ready(session) == "42"

    def test_server_failure_ends_immediately(self):
        session = self.processing_session()
        self.transport.add(
            "GET", f"{UPLOADS}/upl-1",
            (200, {"upload_status": "error", "error_details": "Invalid binary"})
        )

        with pytest.raises(ProcessingFailedError, match="Invalid binary"):
            self.manager.wait_until_ready(session)

        assert session.state is SessionState.FAILED
        assert len(self.transport.calls_to("GET", f"{UPLOADS}/upl-1")) == 1

    def test_processing_forever_times_out_at_ceiling(self):
        session = self.processing_session()
        self.transport.add("GET", f"{UPLOADS}/upl-1", (200, {"upload_status": "uploadFinished"}))

        with pytest.raises(ProcessingTimeoutError):
            self.manager.wait_until_ready(session)

        assert len(self.transport.calls_to("GET", f"{UPLOADS}/upl-1")) == 3
        assert self.clock.now == 3
        assert session.state is SessionState.FAILED

    def test_no_timeout_before_ceiling(self):
        session = self.processing_session()
        self.transport.add(
            "GET", f"{UPLOADS}/upl-1",
            (200, {"upload_status": "uploadFinished"}),
            (200, {"upload_status": "uploadFinished"}),
            (200, {"upload_status": "readyToBePublished", "release_distinct_id": "rel-1"})
        )

        assert self.manager.wait_until_ready(session) == "rel-1"
        assert self.clock.now == 2

    def test_transient_poll_failure_is_retried(self):
        session = self.processing_session()
        self.transport.add(
            "GET", f"{UPLOADS}/upl-1",
            TransportError("connection reset"),
            TransportError("connection reset"),
            (200, {"upload_status": "readyToBePublished", "release_distinct_id": "rel-7"})
        )

        assert self.manager.wait_until_ready(session) == "rel-7"
        assert len(self.transport.calls_to("GET", f"{UPLOADS}/upl-1")) == 3

    def test_poll_gives_up_after_attempt_budget(self):
        manager = self.make_manager(PollingPolicy(interval=1, max_wait=3, max_attempts_per_poll=2))
        session = self.processing_session()
        self.transport.add("GET", f"{UPLOADS}/upl-1", TransportError("connection reset"))

        with pytest.raises(TransportError):
            manager.wait_until_ready(session)
        assert len(self.transport.calls_to("GET", f"{UPLOADS}/upl-1")) == 2

    def test_cancel_mid_poll_aborts_within_one_interval(self):
        session = self.processing_session()

        def processing_then_cancel(call):
            self.token.cancel("job aborted")
            return 200, {"upload_status": "uploadFinished"}

        self.transport.add("GET", f"{UPLOADS}/upl-1", processing_then_cancel)

        with pytest.raises(UploadCancelledError, match="job aborted"):
            self.manager.wait_until_ready(session)
        assert self.clock.now == 0
        assert len(self.transport.calls_to("GET", f"{UPLOADS}/upl-1")) == 1

    def test_abort_and_publish_transitions(self):
        session = self.open_session()
        self.manager.abort(session)
        assert session.state is SessionState.ABORTED

        # Aborting a terminal session is a no-op
        self.manager.abort(session)
        assert session.state is SessionState.ABORTED


class TestReleaseUploadSessionStates:
    """The session state machine itself"""

    def make_session(self):
        return ReleaseUploadSession(upload_id="u", file_size=10, chunk_size=4, chunk_urls=["a", "b", "c"])

    def test_full_happy_path(self):
        session = self.make_session()
        for state in (SessionState.UPLOADING, SessionState.COMMITTING, SessionState.PROCESSING,
                      SessionState.READY, SessionState.PUBLISHED):
            session.transition(state)
        assert session.is_terminal

    def test_skipping_states_is_rejected(self):
        session = self.make_session()
        with pytest.raises(SessionStateError):
            session.transition(SessionState.PROCESSING)

    @pytest.mark.parametrize("steps", [
        [],
        [SessionState.UPLOADING],
        [SessionState.UPLOADING, SessionState.COMMITTING],
        [SessionState.UPLOADING, SessionState.COMMITTING, SessionState.PROCESSING],
    ])
    def test_abort_from_any_non_terminal_state(self, steps):
        session = self.make_session()
        for state in steps:
            session.transition(state)
        session.transition(SessionState.ABORTED)
        assert session.state is SessionState.ABORTED

    def test_no_transition_out_of_terminal_state(self):
        session = self.make_session()
        session.transition(SessionState.ABORTED)
        with pytest.raises(SessionStateError):
            session.transition(SessionState.UPLOADING)
