"""
FHIR resource registry, references and identifiers.

The IPS exporter works with a closed set of FHIR R4 resource types, backed
by the fhir.resources R4B models:

- Patient, Practitioner (identity)
- MedicationStatement, MedicationRequest, AllergyIntolerance, Condition (sections)
- Composition, Bundle (document)

A Reference is the (resourceType, id) pair rendered as "Type/id".
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type
import uuid

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.medicationrequest import MedicationRequest
from fhir.resources.R4B.medicationstatement import MedicationStatement
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.resource import Resource


RESOURCE_MODELS: Dict[str, Type[Resource]] = {
    "Patient": Patient,
    "Practitioner": Practitioner,
    "MedicationStatement": MedicationStatement,
    "MedicationRequest": MedicationRequest,
    "AllergyIntolerance": AllergyIntolerance,
    "Condition": Condition,
    "Composition": Composition,
    "Bundle": Bundle,
}

# Namespace for 'stable' placeholder identifiers
IPS_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "http://hl7.org/fhir/uv/ips")


def generate_id() -> str:
    """Generate a unique resource ID."""
    return str(uuid.uuid4())


def generate_urn() -> str:
    """Generate a bundle-local urn:uuid address."""
    return f"urn:uuid:{uuid.uuid4()}"


def parse_resource(data: Dict[str, Any]) -> Resource:
    """
    Parse a raw FHIR JSON object into its typed R4B model.

    Args:
        data: FHIR resource as a JSON dictionary

    Returns:
        The typed resource

    Raises:
        ValueError: If the resourceType is outside the supported set or
            the payload fails model validation
    """
    resource_type = data.get("resourceType") if isinstance(data, dict) else None
    model = RESOURCE_MODELS.get(resource_type)
    if model is None:
        raise ValueError(f"Unsupported resourceType: {resource_type!r}")
    return model.parse_obj(data)


@dataclass(frozen=True)
class Reference:
    """A literal FHIR reference to a resource by type and id."""
    resource_type: str
    id: str

    def __str__(self) -> str:
        return f"{self.resource_type}/{self.id}"

    @classmethod
    def of(cls, resource: Resource) -> "Reference":
        """Reference an existing resource (which must carry an id)."""
        if not resource.id:
            raise ValueError(f"{resource.resource_type} has no id to reference")
        return cls(resource.resource_type, resource.id)

    @classmethod
    def parse(cls, reference: str) -> Optional["Reference"]:
        """
        Parse "Type/id", an absolute URL ending in "Type/id", or a versioned
        "Type/id/_history/n" reference.

        Returns None for contained ("#x"), urn or otherwise unparseable values.
        """
        if not reference or reference.startswith(("#", "urn:")):
            return None
        parts = [p for p in reference.split("/") if p]
        if "_history" in parts:
            parts = parts[:parts.index("_history")]
        if len(parts) < 2:
            return None
        resource_type, resource_id = parts[-2], parts[-1]
        if not resource_type[:1].isupper():
            return None
        return cls(resource_type, resource_id)

    def to_fhir(self) -> Dict[str, str]:
        """Render as a FHIR Reference element."""
        return {"reference": str(self)}


class IdentifierStrategy:
    """
    Issues ids for synthesized placeholder resources.

    - "random": a fresh uuid4 on every call
    - "stable": uuid5 derived from the patient id and section key, so repeated
      exports for the same patient yield the same placeholder ids
    """

    MODES = ("random", "stable")

    def __init__(self, mode: str = "random"):
        if mode not in self.MODES:
            raise ValueError(f"Unknown identifier strategy: {mode}")
        self.mode = mode

    def __call__(self, patient_id: str, section_key: str) -> str:
        if self.mode == "stable":
            return str(uuid.uuid5(IPS_NAMESPACE, f"{patient_id}/{section_key}"))
        return generate_id()

    def __repr__(self) -> str:
        return f"<IdentifierStrategy: {self.mode}>"
