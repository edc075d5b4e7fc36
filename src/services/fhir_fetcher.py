"""
FHIR Resource Fetcher - async FHIR R4 REST client for clinical resources.

Searches the launch context's FHIR server for a patient's resources and
reads single resources by id. Every call returns a result object instead
of raising: a ResourceCollection / resource on success, a FetchFailure on
any HTTP, transport or payload error.

Usage (async context manager - preferred):
    async with FHIRFetcher(base_url, access_token=token) as fetcher:
        result = await fetcher.fetch("Condition", "123")
"""
import logging
from typing import Any, Dict, List, Optional, Union

import httpx
from fhir.resources.R4B.resource import Resource

from src.config import settings
from src.fhir.references import RESOURCE_MODELS, parse_resource
from .results import FetchFailure, FetchResult, ResourceCollection

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


class FHIRFetcher:
    """
    Fetches clinical resources from a FHIR R4 server.

    Features:
    - Patient-scoped searches (e.g. Condition?patient=123)
    - Follows searchset 'next' links up to a page limit
    - Keeps only entries of the requested type (drops OperationOutcome rows)
    - Parses each resource into its typed R4B model
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        page_limit: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the fetcher.

        Args:
            base_url: FHIR server base URL (settings.fhir_base_url if None)
            access_token: Bearer token for the FHIR server, if any
            timeout: HTTP request timeout in seconds
            page_limit: Maximum searchset pages followed per search
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.fhir_base_url).rstrip("/")
        self.access_token = access_token
        self.timeout = timeout or settings.http_timeout
        self.page_limit = page_limit or settings.fetch_page_limit
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": FHIR_JSON}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "FHIRFetcher":
        await self._get_client()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def fetch(
        self,
        resource_type: str,
        patient_id: str,
        search_param: str = "patient"
    ) -> FetchResult:
        """
        Search for a patient's resources of one type.

        Args:
            resource_type: FHIR resource type, e.g. "Condition"
            patient_id: Patient id the search is scoped to
            search_param: Search parameter naming the patient

        Returns:
            ResourceCollection, or FetchFailure on any error
        """
        if resource_type not in RESOURCE_MODELS:
            return FetchFailure(resource_type, f"Unsupported resource type: {resource_type}")

        url: Optional[str] = f"{self.base_url}/{resource_type}"
        params: Optional[Dict[str, str]] = {search_param: patient_id}
        resources: List[Resource] = []
        seen = set()
        pages = 0

        try:
            client = await self._get_client()
            while url and pages < self.page_limit:
                response = await client.get(url, params=params)
                response.raise_for_status()
                bundle = response.json()
                pages += 1

                if not isinstance(bundle, dict) or bundle.get("resourceType") != "Bundle":
                    return FetchFailure(
                        resource_type,
                        "Search did not return a Bundle",
                        status_code=response.status_code
                    )

                for entry in bundle.get("entry") or []:
                    data = entry.get("resource") or {}
                    if data.get("resourceType") != resource_type:
                        continue
                    if not data.get("id"):
                        return FetchFailure(resource_type, f"{resource_type} without an id in search results")
                    # Pages can overlap when the server's result set shifts
                    if data["id"] in seen:
                        continue
                    seen.add(data["id"])
                    resources.append(parse_resource(data))

                # The next link already carries the query
                url = self._next_link(bundle)
                params = None

            if url:
                logger.warning(
                    "%s search for patient %s stopped after %d page(s)",
                    resource_type, patient_id, self.page_limit
                )

        except httpx.TimeoutException:
            return FetchFailure(resource_type, f"Timeout searching {resource_type}")
        except httpx.HTTPStatusError as e:
            return FetchFailure(
                resource_type,
                f"FHIR server error ({e.response.status_code})",
                status_code=e.response.status_code
            )
        except httpx.HTTPError as e:
            return FetchFailure(resource_type, f"Transport error: {e}")
        except ValueError as e:
            # Malformed JSON or a resource failing model validation
            return FetchFailure(resource_type, f"Invalid {resource_type} payload: {e}")

        logger.debug("Fetched %d %s for patient %s", len(resources), resource_type, patient_id)
        return ResourceCollection(resource_type, tuple(resources))

    async def read(self, resource_type: str, resource_id: str) -> Union[Resource, FetchFailure]:
        """
        Read a single resource by id.

        Returns:
            The typed resource, or FetchFailure on any error
        """
        if resource_type not in RESOURCE_MODELS:
            return FetchFailure(resource_type, f"Unsupported resource type: {resource_type}")

        try:
            client = await self._get_client()
            response = await client.get(f"{self.base_url}/{resource_type}/{resource_id}")
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict) or data.get("resourceType") != resource_type:
                return FetchFailure(
                    resource_type,
                    f"{resource_type}/{resource_id} returned a different resource",
                    status_code=response.status_code
                )
            return parse_resource(data)

        except httpx.TimeoutException:
            return FetchFailure(resource_type, f"Timeout reading {resource_type}/{resource_id}")
        except httpx.HTTPStatusError as e:
            return FetchFailure(
                resource_type,
                f"FHIR server error ({e.response.status_code}) reading {resource_type}/{resource_id}",
                status_code=e.response.status_code
            )
        except httpx.HTTPError as e:
            return FetchFailure(resource_type, f"Transport error: {e}")
        except ValueError as e:
            return FetchFailure(resource_type, f"Invalid {resource_type} payload: {e}")

    @staticmethod
    def _next_link(bundle: Dict[str, Any]) -> Optional[str]:
        for link in bundle.get("link") or []:
            if link.get("relation") == "next" and link.get("url"):
                return link["url"]
        return None
