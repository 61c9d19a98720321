"""
FHIR server client service.

Looks up canonical resources (ValueSets, Libraries) on a remote FHIR server
when they are not available in the local IG.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from cqf_tooling.settings import settings

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


class SearchBundle(BaseModel):
    """Searchset bundle returned by a FHIR search."""

    resourceType: str
    type: str | None = None
    total: int | None = None
    entry: list[dict[str, Any]] = []


class FhirServerService:
    """HTTP client for a FHIR R4 server."""

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.fhir_server_timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": FHIR_JSON},
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "FhirServerService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def search_by_canonical(
        self, resource_type: str, canonical: str
    ) -> dict[str, Any] | None:
        """
        Find a canonical resource by url (and version, if the canonical has one).

        Args:
            resource_type: e.g. ``ValueSet``
            canonical: ``url`` or ``url|version``

        Returns:
            The first matching resource, or None if the server has none

        Raises:
            httpx.HTTPStatusError: If the server returns an error response
        """
        client = self._get_client()

        url, _, version = canonical.partition("|")
        params = {"url": url}
        if version:
            params["version"] = version

        response = client.get(f"/{resource_type}", params=params)
        response.raise_for_status()

        bundle = SearchBundle.model_validate(response.json())
        for entry in bundle.entry:
            resource = entry.get("resource")
            if resource and resource.get("resourceType") == resource_type:
                return dict(resource)

        logger.debug("%s %s not found on %s", resource_type, canonical, self.base_url)
        return None
