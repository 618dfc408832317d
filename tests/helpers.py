"""
Shared test doubles for the upload workflow tests.
"""

import threading
from collections import defaultdict

from appcenter.upload.cancellation import CancellationToken

API_PREFIX = "v0.1/apps/owner/app"


class FakeTransport:
    """Scripted stand-in for AppCenterTransport.

    Responses are queued per (method, url); the last queued response repeats.
    A response is a (status, body) tuple, an exception instance to raise, or
    a callable taking the call dict and returning either of those.
    """

    def __init__(self):
        self.routes = defaultdict(list)
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def add(self, method, url, *responses):
        self.routes[(method, url)].extend(responses)
        return self

    def send(self, method, path, headers=None, json=None, data=None, accept_status=(), authenticated=None):
        call = {"method": method, "path": path, "headers": headers or {}, "json": json, "data": data}
        with self._lock:
            self.calls.append(call)
            queue = self.routes.get((method, path))
            if not queue:
                raise AssertionError(f"Unexpected request {method} {path}")
            response = queue.pop(0) if len(queue) > 1 else queue[0]

        if callable(response) and not isinstance(response, tuple):
            response = response(call)
        if isinstance(response, BaseException):
            raise response
        return response

    def calls_to(self, method, path):
        return [c for c in self.calls if c["method"] == method and c["path"] == path]

    def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock advanced only by ClockedToken.wait"""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ClockedToken(CancellationToken):
    """Cancellation token whose waits advance a FakeClock instead of sleeping"""

    def __init__(self, clock):
        super().__init__()
        self.clock = clock
        self.waits = []

    def wait(self, seconds):
        self.raise_if_cancelled()
        self.waits.append(seconds)
        self.clock.now += seconds
        self.raise_if_cancelled()


def session_response(upload_id="upl-1", chunk_size=4, file_size=10, host="https://upload.test"):
    count = -(-file_size // chunk_size)
    return 201, {
        "id": upload_id,
        "chunk_size": chunk_size,
        "chunk_urls": [f"{host}/{upload_id}/chunk/{n}" for n in range(1, count + 1)],
    }
