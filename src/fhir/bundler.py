"""
FHIR Document Bundle Assembler

Creates a FHIR Bundle (document type) with the Composition as the first
entry, followed by every resource the Composition references. Each entry
gets a fresh urn:uuid fullUrl, independent of the resource's own id.
"""
from collections import Counter
from typing import Any, Dict, Iterator, List, Optional, Sequence
import json
import logging

from fhir.resources.R4B.bundle import Bundle, BundleEntry
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.resource import Resource

from src.exceptions import BundleIntegrityError
from .references import Reference, generate_urn

logger = logging.getLogger(__name__)

DOCUMENT_IDENTIFIER_SYSTEM = "urn:ietf:rfc:3986"


def to_json_dict(resource: Resource) -> Dict[str, Any]:
    """Canonical JSON form of a resource as a plain dictionary."""
    return json.loads(resource.json(exclude_none=True))


def iter_references(node: Any) -> Iterator[str]:
    """Yield every Reference.reference string in a FHIR JSON tree."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "reference" and isinstance(value, str):
                yield value
            else:
                yield from iter_references(value)
    elif isinstance(node, list):
        for item in node:
            yield from iter_references(item)


def composition_references(composition: Composition) -> List[Reference]:
    """References held directly by the Composition: subject, authors, section entries."""
    refs = [composition.subject] + list(composition.author or [])
    for section in composition.section or []:
        refs.extend(section.entry or [])
    parsed = [Reference.parse(ref.reference) for ref in refs if ref is not None]
    return [ref for ref in parsed if ref is not None]


def unresolved_references(bundle: Bundle) -> List[str]:
    """
    Find references in the bundle that do not resolve to exactly one entry.

    Literal references resolve by (resourceType, id); urn references resolve
    by fullUrl. Contained ("#x") references are ignored.
    """
    bundle_dict = to_json_dict(bundle)
    entries = bundle_dict.get("entry", [])
    index = Counter(
        (entry["resource"]["resourceType"], entry["resource"].get("id"))
        for entry in entries
    )
    full_urls = Counter(entry.get("fullUrl") for entry in entries)

    unresolved = []
    for raw in iter_references(entries):
        if raw.startswith("#"):
            continue
        if raw.startswith("urn:"):
            if full_urls[raw] != 1:
                unresolved.append(raw)
            continue
        ref = Reference.parse(raw)
        if ref is None or index[(ref.resource_type, ref.id)] != 1:
            unresolved.append(raw)
    return unresolved


class DocumentBundler:
    """
    Assembles FHIR resources into an IPS document Bundle.

    The Composition must be added first; the bundle is checked for
    reference closure when built.
    """

    def __init__(self):
        """Initialize the bundler."""
        self.entries: List[BundleEntry] = []

    def add_resource(self, resource: Resource) -> None:
        """
        Add a resource to the bundle.

        Args:
            resource: FHIR resource to add
        """
        if not self.entries and resource.resource_type != "Composition":
            raise ValueError(
                f"A document Bundle must start with a Composition, not {resource.resource_type}"
            )
        entry = BundleEntry(
            fullUrl=generate_urn(),
            resource=resource
        )
        self.entries.append(entry)

    def add_resources(self, resources: Sequence[Resource]) -> None:
        """
        Add multiple resources to the bundle.

        Args:
            resources: List of FHIR resources to add
        """
        for resource in resources:
            self.add_resource(resource)

    def build(self, timestamp: str, identifier: Optional[str] = None) -> Bundle:
        """
        Build the document Bundle.

        Args:
            timestamp: Assembly timestamp, shared with the Composition date
            identifier: Optional document identifier value (generated if not provided)

        Returns:
            FHIR Bundle of type "document"

        Raises:
            ValueError: If no Composition was added
            BundleIntegrityError: If a Composition reference does not resolve
                to exactly one entry
        """
        if not self.entries:
            raise ValueError("A document Bundle needs at least a Composition")

        bundle = Bundle(
            type="document",
            identifier={
                "system": DOCUMENT_IDENTIFIER_SYSTEM,
                "value": identifier or generate_urn()
            },
            timestamp=timestamp,
            entry=list(self.entries)
        )
        self._verify_closed(bundle)
        return bundle

    def _verify_closed(self, bundle: Bundle) -> None:
        """Every Composition reference must match exactly one entry."""
        index = Counter(
            (entry.resource.resource_type, entry.resource.id) for entry in bundle.entry
        )
        composition = bundle.entry[0].resource
        missing = [
            str(ref) for ref in composition_references(composition)
            if index[(ref.resource_type, ref.id)] != 1
        ]
        if missing:
            raise BundleIntegrityError(missing)

        dangling = [
            ref for ref in unresolved_references(bundle)
            if ref not in {str(r) for r in composition_references(composition)}
        ]
        if dangling:
            # References made by fetched resources to things outside the IPS set
            logger.warning(
                "Document Bundle has %d references outside the document: %s",
                len(dangling), ", ".join(sorted(set(dangling)))
            )

    @property
    def resource_count(self) -> int:
        """Number of resources in the bundle."""
        return len(self.entries)

    def get_resource_types(self) -> List[str]:
        """Get list of resource types in the bundle."""
        return [entry.resource.resource_type for entry in self.entries]


def package(
    composition: Composition,
    patient: Resource,
    practitioner: Resource,
    section_resources: Sequence[Sequence[Resource]],
    timestamp: str
) -> Bundle:
    """
    Package a Composition and everything it references into a document Bundle.

    Entry order: Composition, Patient, Practitioner, then each section's
    resources in section order.
    """
    bundler = DocumentBundler()
    bundler.add_resources([composition, patient, practitioner])
    for resources in section_resources:
        bundler.add_resources(resources)
    return bundler.build(timestamp)
