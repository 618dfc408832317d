"""
App Center Transport Client

Thin wrapper around requests.Session: authentication header, optional
forward proxy, pluggable base URL, JSON (de)serialization and mapping of
HTTP failures onto the upload exception taxonomy. Retry policy belongs to
the callers.
"""

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urljoin

import requests

from .cancellation import CancellationToken
from .exceptions import AuthError, TransportError, UploadCancelledError
from .models import AppCenterConfig

RETRYABLE_STATUS_CODES = frozenset({408, 429})

# How often a caller blocked on an in-flight request checks for cancellation
CANCEL_CHECK_INTERVAL = 0.05


class AppCenterTransport:
    """Handles all HTTP interactions with the App Center service"""

    def __init__(self, config: AppCenterConfig, cancel_token: Optional[CancellationToken] = None):
        self.config = config
        self.base_url = config.base_url if config.base_url.endswith("/") else config.base_url + "/"
        self.cancel_token = cancel_token
        self.logger = logging.getLogger(self.__class__.__name__)

        self.session = requests.Session()
        if config.proxy:
            self.session.proxies.update(config.proxy.to_requests_proxies())

        if cancel_token is not None:
            cancel_token.add_callback(self.close)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.session.close()

    def resolve_url(self, path: str) -> str:
        return urljoin(self.base_url, path)

    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        data: Optional[bytes] = None,
        accept_status: Iterable[int] = (),
        authenticated: Optional[bool] = None,
    ) -> Tuple[int, Any]:
        """Issue one request and return (status_code, decoded body).

        Absolute URLs outside the base URL (e.g. server-supplied chunk URLs)
        are sent without the API token unless authenticated=True.
        """
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()

        url = self.resolve_url(path)
        if authenticated is None:
            authenticated = url.startswith(self.base_url)

        request_headers = {}
        if authenticated:
            request_headers.update(self.config.get_headers())
        if headers:
            request_headers.update(headers)

        self.logger.debug(f"{method} {url}")
        try:
            response = self._request(
                method,
                url,
                headers=request_headers,
                json=json,
                data=data,
                timeout=self.config.request_timeout
            )
        except requests.exceptions.Timeout as e:
            self._raise_if_cancelled(e)
            raise TransportError(f"Request timed out: {method} {path}", endpoint=path) from e
        except requests.exceptions.ConnectionError as e:
            self._raise_if_cancelled(e)
            raise TransportError(f"Connection failed: {method} {path}: {e}", endpoint=path) from e
        except requests.exceptions.RequestException as e:
            self._raise_if_cancelled(e)
            raise TransportError(f"Request failed: {method} {path}: {e}", retryable=False, endpoint=path) from e

        # A response that lands after cancellation is discarded.
        self._raise_if_cancelled()
        self._handle_response_errors(response, path, set(accept_status))
        return response.status_code, self._decode_body(response)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Run session.request, returning early with UploadCancelledError on cancel.

        Closing the session does not interrupt a connection that is already
        checked out of the pool, so the request runs on a daemon thread while
        the caller waits on the cancellation token. An abandoned request is
        left to finish or time out on its own.
        """
        if self.cancel_token is None:
            return self.session.request(method, url, **kwargs)

        finished = threading.Event()
        outcome = {}

        def _run():
            try:
                outcome["response"] = self.session.request(method, url, **kwargs)
            except BaseException as e:
                outcome["error"] = e
            finally:
                finished.set()

        worker = threading.Thread(target=_run, name=f"appcenter-{method.lower()}", daemon=True)
        worker.start()
        while not finished.wait(CANCEL_CHECK_INTERVAL):
            if self.cancel_token.cancelled:
                self.logger.debug(f"Abandoning in-flight {method} {url}")
                raise UploadCancelledError(self.cancel_token.reason)

        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _raise_if_cancelled(self, cause: Optional[Exception] = None):
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise UploadCancelledError(self.cancel_token.reason) from cause

    def _decode_body(self, response: requests.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    def _handle_response_errors(self, response: requests.Response, endpoint: str, accept_status: set):
        """Map HTTP status codes onto upload exceptions"""
        status = response.status_code
        if status in accept_status or status < 400:
            return

        if status == 401:
            raise AuthError(
                "Invalid App Center API token. Please check APPCENTER_API_TOKEN",
                status_code=status,
                endpoint=endpoint
            )
        if status == 403:
            raise AuthError(
                "Access forbidden. The API token may not have permission for this app",
                status_code=status,
                endpoint=endpoint
            )

        error_msg = self._extract_error_message(response)
        retryable = status >= 500 or status in RETRYABLE_STATUS_CODES
        raise TransportError(
            error_msg,
            retryable=retryable,
            status_code=status,
            endpoint=endpoint
        )

    def _extract_error_message(self, response: requests.Response) -> str:
        status = response.status_code
        try:
            error_data = response.json()
        except ValueError:
            return f"HTTP {status}: {response.text[:200]}"

        if isinstance(error_data, dict):
            message = error_data.get("message")
            if message is None and isinstance(error_data.get("error"), dict):
                message = error_data["error"].get("message")
            if message:
                return f"HTTP {status}: {message}"
        return f"HTTP {status}: {str(error_data)[:200]}"
