"""
IPS Document Composer

Builds the Composition at the root of the IPS document: subject, author,
fixed document type and the three sections in canonical order
(Medications, Allergies, Problems).
"""
from typing import Optional, Sequence

from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner

from src.exceptions import MissingIdentityContext
from .references import Reference, generate_id
from .sections import LOINC_SYSTEM, SECTION_ORDER, Section


IPS_COMPOSITION_PROFILE = "http://hl7.org/fhir/uv/ips/StructureDefinition/Composition-uv-ips"

IPS_DOCUMENT_TYPE = {
    "coding": [{
        "system": LOINC_SYSTEM,
        "code": "60591-5",
        "display": "Patient summary Document"
    }]
}


class DocumentComposer:
    """Composes the IPS Composition from identity and sections."""

    @staticmethod
    def compose(
        patient: Patient,
        practitioner: Practitioner,
        sections: Sequence[Section],
        now: str,
        composition_id: Optional[str] = None
    ) -> Composition:
        """
        Args:
            patient: Current patient (document subject)
            practitioner: Current practitioner (document author)
            sections: Medications, Allergies and Problems sections, in that order
            now: Assembly timestamp (ISO-8601)
            composition_id: Optional id (generated if not provided)

        Returns:
            FHIR Composition

        Raises:
            MissingIdentityContext: If patient or practitioner has no id
            ValueError: If sections are not in canonical IPS order
        """
        if patient is None or not patient.id:
            raise MissingIdentityContext("Cannot compose an IPS without a patient id")
        if practitioner is None or not practitioner.id:
            raise MissingIdentityContext("Cannot compose an IPS without a practitioner id")

        expected = [definition.loinc_code for definition in SECTION_ORDER]
        actual = [section.code["coding"][0]["code"] for section in sections]
        if actual != expected:
            raise ValueError(f"IPS sections must be ordered {expected}, got {actual}")

        return Composition(**{
            "resourceType": "Composition",
            "id": composition_id or generate_id(),
            "meta": {"profile": [IPS_COMPOSITION_PROFILE]},
            "status": "preliminary",
            "type": IPS_DOCUMENT_TYPE,
            "subject": Reference.of(patient).to_fhir(),
            "date": now,
            "author": [Reference.of(practitioner).to_fhir()],
            "title": f"IPS summary for {patient.id}",
            "section": [section.to_fhir() for section in sections],
        })
