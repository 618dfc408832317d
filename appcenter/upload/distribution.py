"""
Distribution Manager

Resolves distribution group names to destination ids and assigns a
processed release to all of them in a single request.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import quote

from .cancellation import CancellationToken
from .exceptions import ServerRejectedError, TransportError, UnknownGroupError
from .models import DestinationId, RetryPolicy
from .retry import call_with_retry
from .transport import AppCenterTransport

GROUP_SEPARATORS = re.compile(r"[,\r\n]+")


def parse_distribution_groups(text: Optional[str]) -> List[str]:
    """Split comma/newline separated group names, trimmed and de-duplicated"""
    names = []
    for part in GROUP_SEPARATORS.split(text or ""):
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return names


class DistributionManager:
    """Handles destination lookup and release assignment for one app"""

    def __init__(
        self,
        transport: AppCenterTransport,
        owner_name: str,
        app_name: str,
        retry_policy: RetryPolicy,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.transport = transport
        self.owner_name = owner_name
        self.app_name = app_name
        self.retry_policy = retry_policy
        self.cancel_token = cancel_token or CancellationToken()
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def app_path(self) -> str:
        return f"v0.1/apps/{self.owner_name}/{self.app_name}"

    def resolve_destinations(self, group_names: List[str]) -> List[DestinationId]:
        """Resolve every name or fail; never returns a partial set"""
        if not group_names:
            raise UnknownGroupError("No distribution groups given")

        destinations = [self._resolve_group(name) for name in group_names]
        self.logger.info(
            f"Resolved {len(destinations)} distribution group(s): "
            f"{', '.join(d.name for d in destinations)}"
        )
        return destinations

    def _resolve_group(self, name: str) -> DestinationId:
        """GET .../distribution_groups/{name}"""
        endpoint = f"{self.app_path}/distribution_groups/{quote(name, safe='')}"
        try:
            _, data = call_with_retry(
                lambda: self.transport.send("GET", endpoint),
                self.retry_policy,
                f"Lookup of distribution group '{name}'",
                cancel_token=self.cancel_token
            )
        except TransportError as e:
            if e.status_code == 404:
                raise UnknownGroupError(
                    f"Distribution group '{name}' not found for {self.owner_name}/{self.app_name}",
                    group_name=name,
                    status_code=e.status_code,
                    endpoint=endpoint
                ) from e
            raise

        if not isinstance(data, dict) or not data.get("id"):
            raise UnknownGroupError(
                f"Distribution group '{name}' did not resolve to an id",
                group_name=name,
                endpoint=endpoint
            )
        return DestinationId(name=data.get("name") or name, id=str(data["id"]))

    def distribute(
        self,
        release_id: str,
        destinations: List[DestinationId],
        release_notes: Optional[str] = None,
        notify_testers: bool = True,
        mandatory_update: bool = False,
    ) -> None:
        """PATCH .../releases/{release_id} with the full destination set"""
        endpoint = f"{self.app_path}/releases/{release_id}"
        payload = {
            "destinations": [d.to_payload() for d in destinations],
            "notify_testers": notify_testers,
            "mandatory_update": mandatory_update,
        }
        if release_notes:
            payload["release_notes"] = release_notes

        try:
            call_with_retry(
                lambda: self.transport.send("PATCH", endpoint, json=payload),
                self.retry_policy,
                f"Distribution of release {release_id}",
                cancel_token=self.cancel_token
            )
        except TransportError as e:
            if not e.retryable:
                raise ServerRejectedError(
                    f"Server rejected distribution of release {release_id}: {e.message}",
                    status_code=e.status_code,
                    endpoint=endpoint
                ) from e
            raise

        self.logger.info(f"Release {release_id} distributed to {len(destinations)} group(s)")
