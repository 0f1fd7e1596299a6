"""Journey content API client."""

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import httpx

from inspection_journey.errors import (
    MalformedResponseError,
    NotFoundError,
    TransientError,
)


class JourneyApiClient(Protocol):
    """Interface for the remote journey-content API."""

    async def fetch_session(self, session_id: str) -> dict[str, object]:
        """Fetch a session record and return raw API data."""

    async def fetch_journey(
        self, journey_id: str, flow_kind_hint: str | None = None
    ) -> dict[str, object]:
        """Fetch a journey definition and return raw API data."""


@dataclass
class HttpxJourneyApiClient(JourneyApiClient):
    """HTTPX-backed journey API client."""

    base_url: str
    http_client: httpx.AsyncClient
    api_token: str | None = None
    timeout_seconds: float = 15

    @classmethod
    def create(
        cls,
        base_url: str,
        api_token: str | None = None,
        timeout_seconds: float = 15,
    ) -> "HttpxJourneyApiClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            api_token=api_token,
            timeout_seconds=timeout_seconds,
        )

    async def fetch_session(self, session_id: str) -> dict[str, object]:
        """Fetch a session by check id."""
        path = quote(session_id, safe="")
        return await self._get_json(
            f"{self.base_url}/sessions/{path}",
            kind="session",
            resource_id=session_id,
        )

    async def fetch_journey(
        self, journey_id: str, flow_kind_hint: str | None = None
    ) -> dict[str, object]:
        """Fetch a journey, optionally forcing the flow it is played as."""
        params = {"flowKind": flow_kind_hint} if flow_kind_hint else None
        path = quote(journey_id, safe="")
        return await self._get_json(
            f"{self.base_url}/journeys/{path}",
            kind="journey",
            resource_id=journey_id,
            params=params,
        )

    async def _get_json(
        self,
        url: str,
        *,
        kind: str,
        resource_id: str,
        params: dict[str, str] | None = None,
    ) -> dict[str, object]:
        headers = None
        if self.api_token:
            headers = {"Authorization": f"Bearer {self.api_token}"}
        try:
            response = await self.http_client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.TransportError as exc:
            raise TransientError(f"{kind} {resource_id}: {exc}") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(kind, resource_id)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransientError(
                f"{kind} {resource_id}: HTTP {response.status_code}"
            ) from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{kind} {resource_id}: not JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"{kind} {resource_id}: expected an object")
        return payload

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
