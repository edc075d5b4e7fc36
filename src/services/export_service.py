"""
IPS Export Service

End-to-end flow for one request:
1. Resolve the current patient and practitioner from the launch context
2. Assemble the IPS document Bundle
3. Submit it to the validator

Identity problems propagate as MissingIdentityContext. A failed validation
is logged and returned as an unsuccessful ExportResult that carries no
document.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from src.fhir.assembler import AssembledDocument, IPSAssembler
from src.fhir.references import IdentifierStrategy
from .fhir_fetcher import FHIRFetcher
from .identity import IdentityProvider, LaunchContext
from .results import ValidationTransportFailure
from .validation import ValidationSubmitter

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Result of an IPS export."""
    success: bool
    resource: Optional[Dict[str, Any]] = None
    validation_result: Optional[Any] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    def to_response(self) -> Dict[str, Any]:
        """Caller-facing JSON body for a successful export."""
        return {"resource": self.resource, "validationResult": self.validation_result}


def default_fetcher_factory(context: LaunchContext) -> FHIRFetcher:
    """Fetcher bound to the launch context's FHIR server and token."""
    return FHIRFetcher(
        base_url=context.fhir_base_url,
        access_token=context.access_token
    )


class IPSExportService:
    """
    Exports and validates International Patient Summaries.

    Usage:
        service = IPSExportService()
        result = await service.export(LaunchContext(patient_id="123", fhir_user="Practitioner/456"))

        if result.success:
            body = result.to_response()
    """

    def __init__(
        self,
        fetcher_factory: Callable[[LaunchContext], FHIRFetcher] = default_fetcher_factory,
        submitter: Optional[ValidationSubmitter] = None,
        identifier_strategy: Optional[IdentifierStrategy] = None
    ):
        self.fetcher_factory = fetcher_factory
        self.submitter = submitter or ValidationSubmitter()
        self.identifier_strategy = identifier_strategy

    async def assemble(self, context: LaunchContext) -> AssembledDocument:
        """
        Assemble the IPS document for the launch context.

        Raises:
            MissingIdentityContext: If patient or practitioner cannot be resolved
        """
        async with self.fetcher_factory(context) as fetcher:
            patient, practitioner = await IdentityProvider(fetcher).resolve(context)
            assembler = IPSAssembler(fetcher, identifier_strategy=self.identifier_strategy)
            return await assembler.assemble(patient, practitioner)

    async def export(self, context: LaunchContext) -> ExportResult:
        """
        Assemble and validate the IPS document.

        Returns:
            ExportResult; on validation failure success is False and no
            resource is returned

        Raises:
            MissingIdentityContext: If patient or practitioner cannot be resolved
        """
        document = await self.assemble(context)
        outcome = await self.submitter.submit(document)

        if isinstance(outcome, ValidationTransportFailure):
            logger.error(
                "IPS export for Patient/%s not validated: %s",
                context.patient_id, outcome.error
            )
            return ExportResult(
                success=False,
                error=outcome.error,
                status_code=outcome.status_code
            )

        return ExportResult(
            success=True,
            resource=document.to_dict(),
            validation_result=outcome.body,
            status_code=outcome.status_code
        )
