"""
"No known information" placeholder resources.

When a section has no real entries, the IPS profile asks for a single
resource asserting that nothing is known, coded from the IPS absent/unknown
code system:

- MedicationStatement → no-medication-info
- AllergyIntolerance → no-allergy-info
- Condition → no-problem-info
"""
from typing import Dict

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.medicationstatement import MedicationStatement

from .references import Reference


ABSENT_UNKNOWN_SYSTEM = "http://hl7.org/fhir/uv/ips/CodeSystem/absent-unknown-uv-ips"

NO_MEDICATION_INFO = "no-medication-info"
NO_ALLERGY_INFO = "no-allergy-info"
NO_PROBLEM_INFO = "no-problem-info"

ABSENT_CODES = {
    NO_MEDICATION_INFO: "No information about medications",
    NO_ALLERGY_INFO: "No information about allergies",
    NO_PROBLEM_INFO: "No information about problems",
}


def absent_concept(code: str) -> Dict:
    """CodeableConcept for an IPS absent/unknown code."""
    return {
        "coding": [{
            "system": ABSENT_UNKNOWN_SYSTEM,
            "code": code,
            "display": ABSENT_CODES[code]
        }],
        "text": ABSENT_CODES[code]
    }


def is_placeholder(resource) -> bool:
    """True if the resource carries an IPS absent/unknown code."""
    concept = getattr(resource, "code", None) or getattr(resource, "medicationCodeableConcept", None)
    if concept is None or not concept.coding:
        return False
    return any(c.system == ABSENT_UNKNOWN_SYSTEM for c in concept.coding)


class MedicationPlaceholder:
    """Builds the 'no medication information' MedicationStatement."""

    @staticmethod
    def build(patient: Reference, now: str, resource_id: str) -> MedicationStatement:
        """
        Args:
            patient: Reference to the subject Patient
            now: Assembly timestamp (ISO-8601), used as effectiveDateTime
            resource_id: Id for the synthesized resource

        Returns:
            FHIR MedicationStatement placeholder
        """
        return MedicationStatement(**{
            "resourceType": "MedicationStatement",
            "id": resource_id,
            "status": "unknown",
            "medicationCodeableConcept": absent_concept(NO_MEDICATION_INFO),
            "subject": patient.to_fhir(),
            "effectiveDateTime": now,
        })


class AllergyPlaceholder:
    """Builds the 'no allergy information' AllergyIntolerance."""

    @staticmethod
    def build(patient: Reference, now: str, resource_id: str) -> AllergyIntolerance:
        return AllergyIntolerance(**{
            "resourceType": "AllergyIntolerance",
            "id": resource_id,
            "clinicalStatus": {
                "coding": [{
                    "system": "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical",
                    "code": "active"
                }]
            },
            "code": absent_concept(NO_ALLERGY_INFO),
            "patient": patient.to_fhir(),
            "recordedDate": now,
        })


class ProblemPlaceholder:
    """Builds the 'no problem information' Condition."""

    @staticmethod
    def build(patient: Reference, now: str, resource_id: str) -> Condition:
        return Condition(**{
            "resourceType": "Condition",
            "id": resource_id,
            "clinicalStatus": {
                "coding": [{
                    "system": "http://terminology.hl7.org/CodeSystem/condition-clinical",
                    "code": "active"
                }]
            },
            "code": absent_concept(NO_PROBLEM_INFO),
            "subject": patient.to_fhir(),
            "recordedDate": now,
        })
