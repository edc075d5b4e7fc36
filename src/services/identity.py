"""
Identity resolution for the current launch.

The SMART launch (OAuth handshake, session) happens elsewhere; its outcome
arrives here as an explicit LaunchContext. The IdentityProvider reads the
current Patient and Practitioner it names. Nothing is synthesized: if either
cannot be resolved, assembly cannot proceed.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional, Tuple

from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner

from src.exceptions import MissingIdentityContext
from src.fhir.references import Reference
from .fhir_fetcher import FHIRFetcher
from .results import FetchFailure


@dataclass(frozen=True)
class LaunchContext:
    """
    Per-request launch context.

    Attributes:
        patient_id: Id of the patient in context
        fhir_user: fhirUser claim, e.g. "Practitioner/456" or an absolute URL
        practitioner_id: Explicit practitioner id (takes precedence over fhir_user)
        fhir_base_url: FHIR server for this launch (settings default if None)
        access_token: Bearer token for the FHIR server, never forwarded elsewhere
    """
    patient_id: Optional[str] = None
    fhir_user: Optional[str] = None
    practitioner_id: Optional[str] = None
    fhir_base_url: Optional[str] = None
    access_token: Optional[str] = None

    @property
    def practitioner_reference(self) -> Optional[Reference]:
        if self.practitioner_id:
            return Reference("Practitioner", self.practitioner_id)
        if self.fhir_user:
            ref = Reference.parse(self.fhir_user)
            if ref is not None and ref.resource_type == "Practitioner":
                return ref
        return None

    def __repr__(self) -> str:
        # Keep the token out of logs
        return (
            f"LaunchContext(patient_id={self.patient_id!r}, "
            f"practitioner={self.practitioner_reference}, fhir_base_url={self.fhir_base_url!r})"
        )


class IdentityProvider:
    """Resolves the current patient and practitioner for a launch."""

    def __init__(self, fetcher: FHIRFetcher):
        self.fetcher = fetcher

    async def resolve(self, context: LaunchContext) -> Tuple[Patient, Practitioner]:
        """
        Read the patient and practitioner named by the launch context.

        Raises:
            MissingIdentityContext: If either is absent from the context or
                cannot be read from the FHIR server
        """
        if not context.patient_id:
            raise MissingIdentityContext("Launch context has no patient")

        practitioner_ref = context.practitioner_reference
        if practitioner_ref is None:
            raise MissingIdentityContext(
                f"Launch context has no practitioner (fhirUser={context.fhir_user!r})"
            )

        patient, practitioner = await asyncio.gather(
            self.fetcher.read("Patient", context.patient_id),
            self.fetcher.read("Practitioner", practitioner_ref.id)
        )

        if isinstance(patient, FetchFailure):
            raise MissingIdentityContext(
                f"Cannot read Patient/{context.patient_id}: {patient.error}"
            )
        if isinstance(practitioner, FetchFailure):
            raise MissingIdentityContext(
                f"Cannot read {practitioner_ref}: {practitioner.error}"
            )
        return patient, practitioner
