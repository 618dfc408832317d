"""
Tests for distribution group parsing, resolution and release assignment.
"""

import pytest

from appcenter.upload.distribution import DistributionManager, parse_distribution_groups
from appcenter.upload.exceptions import (
    AuthError,
    ServerRejectedError,
    TransportError,
    UnknownGroupError,
)
from appcenter.upload.models import DestinationId, RetryPolicy

from helpers import API_PREFIX, FakeTransport

NO_WAIT = RetryPolicy(max_attempts=3, initial_delay=0, max_delay=0)


class TestParseDistributionGroups:
    """Group text parsing"""

    def test_comma_and_newline_separators(self):
        assert set(parse_distribution_groups("beta, qa\npublic")) == {"beta", "qa", "public"}

    def test_whitespace_and_empty_entries_dropped(self):
        assert parse_distribution_groups(" beta ,, \n\n qa ,\r\n") == ["beta", "qa"]

    def test_duplicates_removed_keeping_order(self):
        assert parse_distribution_groups("qa, beta, qa") == ["qa", "beta"]

    def test_names_with_spaces_are_kept_whole(self):
        assert parse_distribution_groups("Internal Testers, QA Team") == ["Internal Testers", "QA Team"]

    @pytest.mark.parametrize("text", ["", None, " , \n "])
    def test_empty_text(self, text):
        assert parse_distribution_groups(text) == []


class TestDistributionManager:
    """Resolution and assignment against a scripted transport"""

    def setup_method(self):
        """Setup for each test"""
        self.transport = FakeTransport()
        self.manager = DistributionManager(self.transport, "owner", "app", NO_WAIT)

    def test_resolve_all_groups(self):
        self.transport.add("GET", f"{API_PREFIX}/distribution_groups/beta", (200, {"id": "g-1", "name": "beta"}))
        self.transport.add("GET", f"{API_PREFIX}/distribution_groups/qa", (200, {"id": "g-2", "name": "qa"}))

        destinations = self.manager.resolve_destinations(["beta", "qa"])

        assert destinations == [DestinationId("beta", "g-1"), DestinationId("qa", "g-2")]

    def test_group_name_is_url_quoted(self):
        self.transport.add(
            "GET", f"{API_PREFIX}/distribution_groups/QA%20Team",
            (200, {"id": "g-9", "name": "QA Team"})
        )

        assert self.manager.resolve_destinations(["QA Team"]) == [DestinationId("QA Team", "g-9")]

    def test_unknown_group_fails_whole_resolution(self):
        self.transport.add("GET", f"{API_PREFIX}/distribution_groups/beta", (200, {"id": "g-1", "name": "beta"}))
        self.transport.add(
            "GET", f"{API_PREFIX}/distribution_groups/ghost",
            TransportError("HTTP 404: not found", retryable=False, status_code=404)
        )

        with pytest.raises(UnknownGroupError) as exc_info:
            self.manager.resolve_destinations(["beta", "ghost"])

        assert exc_info.value.group_name == "ghost"
        assert len(self.transport.calls_to("GET", f"{API_PREFIX}/distribution_groups/ghost")) == 1

    def test_response_without_id_is_unknown_group(self):
        self.transport.add("GET", f"{API_PREFIX}/distribution_groups/beta", (200, {"name": "beta"}))

        with pytest.raises(UnknownGroupError):
            self.manager.resolve_destinations(["beta"])

    def test_empty_group_list_is_rejected(self):
        with pytest.raises(UnknownGroupError):
            self.manager.resolve_destinations([])

    def test_resolution_retries_transient_failures(self):
        self.transport.add(
            "GET", f"{API_PREFIX}/distribution_groups/beta",
            TransportError("HTTP 502", status_code=502),
            (200, {"id": "g-1", "name": "beta"})
        )

        assert self.manager.resolve_destinations(["beta"]) == [DestinationId("beta", "g-1")]

    def test_distribute_sends_single_request_with_all_destinations(self):
        self.transport.add("PATCH", f"{API_PREFIX}/releases/rel-42", (200, {}))
        destinations = [DestinationId("beta", "g-1"), DestinationId("qa", "g-2")]

        self.manager.distribute("rel-42", destinations, release_notes="Fixes crash")

        calls = self.transport.calls_to("PATCH", f"{API_PREFIX}/releases/rel-42")
        assert len(calls) == 1
        assert calls[0]["json"] == {
            "destinations": [{"name": "beta", "id": "g-1"}, {"name": "qa", "id": "g-2"}],
            "notify_testers": True,
            "mandatory_update": False,
            "release_notes": "Fixes crash",
        }

    def test_distribute_without_notes_omits_them(self):
        self.transport.add("PATCH", f"{API_PREFIX}/releases/rel-1", (200, {}))

        self.manager.distribute("rel-1", [DestinationId("beta", "g-1")])

        assert "release_notes" not in self.transport.calls[0]["json"]

    def test_distribute_retries_transient_failure(self):
        self.transport.add(
            "PATCH", f"{API_PREFIX}/releases/rel-1",
            TransportError("connection reset"),
            (200, {})
        )

        self.manager.distribute("rel-1", [DestinationId("beta", "g-1")])

        assert len(self.transport.calls) == 2

    def test_validation_rejection_is_not_retried(self):
        self.transport.add(
            "PATCH", f"{API_PREFIX}/releases/rel-1",
            TransportError("HTTP 400: invalid destination", retryable=False, status_code=400)
        )

        with pytest.raises(ServerRejectedError, match="invalid destination"):
            self.manager.distribute("rel-1", [DestinationId("beta", "g-1")])
        assert len(self.transport.calls) == 1

    def test_auth_error_is_not_retried(self):
        self.transport.add("PATCH", f"{API_PREFIX}/releases/rel-1", AuthError("forbidden", status_code=403))

        with pytest.raises(AuthError):
            self.manager.distribute("rel-1", [DestinationId("beta", "g-1")])
        assert len(self.transport.calls) == 1
