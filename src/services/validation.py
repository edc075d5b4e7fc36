"""
Validation Submitter - POSTs a finished IPS document to a FHIR $validate endpoint.

The document goes out as canonical JSON with no credentials: no
Authorization header and no cookies. A non-2xx answer or a transport error
is logged and returned as a ValidationTransportFailure; nothing is retried.
"""
import logging
from typing import Optional

import httpx

from src.config import settings
from src.fhir.assembler import AssembledDocument
from .results import SubmitResult, ValidationResponse, ValidationTransportFailure

logger = logging.getLogger(__name__)

VALIDATION_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/fhir+json, application/json",
}


class ValidationSubmitter:
    """Submits assembled documents to an external FHIR validator."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            url: Validation endpoint (settings.validation_url if None)
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = url or settings.validation_url
        self.timeout = timeout or settings.http_timeout
        self._transport = transport

    async def submit(self, document: AssembledDocument) -> SubmitResult:
        """
        Validate a document.

        Args:
            document: Finished IPS document (read only)

        Returns:
            ValidationResponse on 2xx, ValidationTransportFailure otherwise
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    content=document.to_json(),
                    headers=VALIDATION_HEADERS
                )
        except httpx.HTTPError as e:
            logger.error("Validation request to %s failed: %s", self.url, e)
            return ValidationTransportFailure(error=f"Transport error: {e}")

        if not response.is_success:
            logger.error("Validation error %s from %s", response.status_code, self.url)
            return ValidationTransportFailure(
                error=f"Validator returned {response.status_code}",
                status_code=response.status_code
            )

        try:
            body = response.json()
        except ValueError:
            body = response.text

        logger.info("Validation returned %s from %s", response.status_code, self.url)
        return ValidationResponse(status_code=response.status_code, body=body)
