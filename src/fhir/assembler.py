"""
IPS Document Assembler

Main service for turning a patient's clinical resources into a single
IPS document Bundle.

Orchestrates:
1. Section building for Medications, Allergies and Problems (concurrently)
2. Composition of the document root
3. Document Bundle packaging

One timestamp is taken per assembly and shared by the Composition date,
the Bundle timestamp and every placeholder.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner

from src.config import settings
from src.exceptions import MissingIdentityContext
from .bundler import package
from .composer import DocumentComposer
from .references import IdentifierStrategy, Reference
from .sections import ResourceFetcher, SectionResult, build_section, section_definitions

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AssembledDocument:
    """
    A finished IPS document.

    The canonical JSON is captured when the document is created; later
    reads never see a different document.
    """
    bundle: Bundle
    composition: Composition
    generated_at: str
    sections: Tuple[SectionResult, ...]
    _json: str = field(default="", repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_json", self.bundle.json(exclude_none=True))

    @property
    def placeholder_count(self) -> int:
        """Number of sections filled with a 'no known information' placeholder."""
        return sum(1 for result in self.sections if result.placeholder)

    @property
    def resource_counts(self) -> Dict[str, int]:
        """Count of resources per section key."""
        return {result.key: len(result.resources) for result in self.sections}

    def to_json(self) -> str:
        """Bundle as canonical JSON text."""
        return self._json

    def to_dict(self) -> Dict[str, Any]:
        """Bundle as a JSON-serializable dictionary."""
        return json.loads(self._json)


class IPSAssembler:
    """
    Assembles an IPS document Bundle for a patient.

    Usage:
        assembler = IPSAssembler(fetcher)
        document = await assembler.assemble(patient, practitioner)

        bundle_json = document.to_json()
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        identifier_strategy: Optional[IdentifierStrategy] = None,
        medication_resource_type: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Args:
            fetcher: Resource fetcher adapter for the clinical data source
            identifier_strategy: Placeholder id policy (settings default if None)
            medication_resource_type: Resource type for the medications section
            clock: Source of the assembly timestamp
        """
        self.fetcher = fetcher
        self.identifier_strategy = identifier_strategy or IdentifierStrategy(
            settings.placeholder_identifiers
        )
        self.definitions = section_definitions(
            medication_resource_type or settings.medication_resource_type
        )
        self.clock = clock

    async def assemble(self, patient: Patient, practitioner: Practitioner) -> AssembledDocument:
        """
        Build the IPS document for a patient.

        Args:
            patient: Current patient resource
            practitioner: Current practitioner (author) resource

        Returns:
            AssembledDocument wrapping the document Bundle

        Raises:
            MissingIdentityContext: If patient or practitioner has no id
            BundleIntegrityError: If the packaged Bundle is not reference-closed
        """
        if patient is None or not patient.id:
            raise MissingIdentityContext("Cannot assemble an IPS without a patient id")
        if practitioner is None or not practitioner.id:
            raise MissingIdentityContext("Cannot assemble an IPS without a practitioner id")

        now = self.clock().isoformat(timespec="milliseconds")
        patient_ref = Reference.of(patient)

        results = await asyncio.gather(*[
            build_section(definition, patient_ref, self.fetcher, now, self.identifier_strategy)
            for definition in self.definitions
        ])

        composition = DocumentComposer.compose(
            patient,
            practitioner,
            [result.section for result in results],
            now
        )
        bundle = package(
            composition,
            patient,
            practitioner,
            [result.resources for result in results],
            now
        )

        document = AssembledDocument(
            bundle=bundle,
            composition=composition,
            generated_at=now,
            sections=tuple(results)
        )
        logger.info(
            "Assembled IPS for %s: %d entries %s, %d placeholder section(s)",
            patient_ref,
            len(bundle.entry),
            document.resource_counts,
            document.placeholder_count
        )
        return document
