"""HTTP client for the FinSync server API.

This module provides:
- RemoteStore: partition-scoped record storage reached over HTTP
- Partition resolution (groups the current user belongs to)
- Group, membership and invite operations
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from finsync.core.config import ServerConfig
from finsync.core.records import Record
from finsync.core.types import RecordKind

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class PermissionDeniedError(APIError):
    """Caller may not access this partition or perform this action."""


class NotFoundError(APIError):
    """Resource not found."""


class ConnectivityError(APIError):
    """Server could not be reached."""


@dataclass
class RemoteGroup:
    """Group (partition) info from server."""

    id: str
    name: str
    type: str
    admin: str
    members: list[str]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteGroup:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            type=data["type"],
            admin=data["admin"],
            members=list(data.get("members", [])),
        )


@dataclass
class RemoteInvite:
    """Pending invite from server."""

    id: int
    group_id: str
    group_name: str
    inviter_name: str
    email: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteInvite:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            group_name=data["group_name"],
            inviter_name=data["inviter_name"],
            email=data["email"],
        )


class RemoteStore:
    """HTTP client for the FinSync server API."""

    def __init__(
        self,
        config: ServerConfig,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the remote store client.

        Args:
            config: Server connection settings.
            http_client: Optional pre-built client (e.g. an in-process test
                client). The bearer token from ``config`` is applied to it.
        """
        self._config = config
        if http_client is None:
            http_client = httpx.Client(
                base_url=config.server_url,
                timeout=config.timeout,
                verify=config.verify_ssl,
            )
        http_client.headers["Authorization"] = f"Bearer {config.token}"
        self._client = http_client

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> RemoteStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and map failures to API exceptions."""
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise ConnectivityError(f"Could not reach {self._config.server_url}: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response
        try:
            detail = response.json().get("detail", response.reason_phrase)
        except ValueError:
            detail = response.reason_phrase
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 403:
            raise PermissionDeniedError(detail, 403)
        if response.status_code == 404:
            raise NotFoundError(detail, 404)
        raise APIError(detail, response.status_code)

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the server is healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Partition resolution ===

    def list_groups(self) -> list[RemoteGroup]:
        """List the groups the current user is a member of."""
        response = self._request("GET", "/api/groups")
        return [RemoteGroup.from_dict(g) for g in response.json()]

    def list_partitions(self) -> list[str]:
        """List the partition ids the current user may synchronize.

        Returns:
            Group ids, in server order.
        """
        return [group.id for group in self.list_groups()]

    # === Record operations ===

    def list_records(self, partition: str, kind: RecordKind) -> list[Record]:
        """Read a full snapshot of one collection of a partition.

        Documents missing ``lastModified`` or ``deleted`` get defaults.

        Raises:
            PermissionDeniedError: If the user is not a member.
            NotFoundError: If the partition does not exist.
            ConnectivityError: If the server is unreachable.
        """
        response = self._request("GET", f"/api/groups/{partition}/{kind.value}")
        return [
            Record.from_dict(doc, group_id=partition).with_defaults()
            for doc in response.json()
        ]

    def upsert_record(self, partition: str, kind: RecordKind, record: Record) -> Record:
        """Write a record, keyed by the string form of its id.

        Returns:
            The record as stored by the server.
        """
        response = self._request(
            "PUT",
            f"/api/groups/{partition}/{kind.value}/{record.key}",
            json=record.to_dict(),
        )
        return Record.from_dict(response.json(), group_id=partition)

    # === Group operations ===

    def create_group(self, name: str) -> RemoteGroup:
        """Create a shared group owned by the current user."""
        response = self._request("POST", "/api/groups", json={"name": name})
        return RemoteGroup.from_dict(response.json())

    def delete_group(self, group_id: str) -> None:
        """Delete a group (admin only)."""
        self._request("DELETE", f"/api/groups/{group_id}")

    def leave_group(self, group_id: str) -> None:
        """Leave a group."""
        self._request("POST", f"/api/groups/{group_id}/leave")

    def remove_member(self, group_id: str, user_id: str) -> None:
        """Remove a member from a group (admin only)."""
        self._request("DELETE", f"/api/groups/{group_id}/members/{user_id}")

    # === Invite operations ===

    def send_invite(self, group_id: str, email: str) -> int:
        """Invite a user to a group by email.

        Returns:
            The invite id.
        """
        response = self._request(
            "POST", f"/api/groups/{group_id}/invites", json={"email": email}
        )
        invite_id: int = response.json()["invite_id"]
        return invite_id

    def list_invites(self) -> list[RemoteInvite]:
        """List invites pending for the current user."""
        response = self._request("GET", "/api/invites")
        return [RemoteInvite.from_dict(i) for i in response.json()]

    def accept_invite(self, group_id: str, invite_id: int) -> None:
        """Accept an invite."""
        self._request("POST", f"/api/groups/{group_id}/invites/{invite_id}/accept")

    def decline_invite(self, group_id: str, invite_id: int) -> None:
        """Decline an invite."""
        self._request("POST", f"/api/groups/{group_id}/invites/{invite_id}/decline")
