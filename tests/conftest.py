"""
Shared fixtures: sample FHIR R4B resources and a fake resource fetcher.
"""
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List

import pytest

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.medicationrequest import MedicationRequest
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner

from src.services.results import FetchFailure, ResourceCollection


FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

URN_UUID = re.compile(
    r"^urn:uuid:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)
UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def parse_instant(value: str) -> datetime:
    """Parse a FHIR dateTime/instant string for comparison."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def make_patient(patient_id: str = "123") -> Patient:
    return Patient(**{
        "resourceType": "Patient",
        "id": patient_id,
        "name": [{"family": "Doe", "given": ["Jane"]}],
        "gender": "female"
    })


def make_practitioner(practitioner_id: str = "456") -> Practitioner:
    return Practitioner(**{
        "resourceType": "Practitioner",
        "id": practitioner_id,
        "name": [{"family": "Reynolds", "given": ["Mark"]}]
    })


def make_medication_request(
    resource_id: str,
    display: str,
    patient_id: str = "123",
    **extra
) -> MedicationRequest:
    return MedicationRequest(**extra, **{
        "resourceType": "MedicationRequest",
        "id": resource_id,
        "status": "active",
        "intent": "order",
        "medicationCodeableConcept": {
            "coding": [{
                "system": "http://www.nlm.nih.gov/research/umls/rxnorm",
                "code": "83367",
                "display": display
            }],
            "text": display
        },
        "subject": {"reference": f"Patient/{patient_id}"}
    })


def make_allergy(resource_id: str = "allergy-1", patient_id: str = "123") -> AllergyIntolerance:
    return AllergyIntolerance(**{
        "resourceType": "AllergyIntolerance",
        "id": resource_id,
        "code": {"text": "Penicillin"},
        "patient": {"reference": f"Patient/{patient_id}"}
    })


def make_condition(resource_id: str = "condition-1", patient_id: str = "123") -> Condition:
    return Condition(**{
        "resourceType": "Condition",
        "id": resource_id,
        "code": {
            "coding": [{
                "system": "http://snomed.info/sct",
                "code": "55822004",
                "display": "Hyperlipidemia"
            }]
        },
        "subject": {"reference": f"Patient/{patient_id}"}
    })


class FakeFetcher:
    """
    In-memory stand-in for the FHIR fetcher.

    Args:
        collections: resource type -> resources returned by fetch()
        failures: resource types whose fetch returns a FetchFailure
        raises: resource types whose fetch raises
        known: resources readable by read()
    """

    def __init__(
        self,
        collections: Dict[str, List] = None,
        failures: Iterable[str] = (),
        raises: Iterable[str] = (),
        known: Iterable = ()
    ):
        self.collections = collections or {}
        self.failures = set(failures)
        self.raises = set(raises)
        self.known = {(r.resource_type, r.id): r for r in known}
        self.calls = []
        self.closed = False

    async def fetch(self, resource_type, patient_id, search_param="patient"):
        self.calls.append((resource_type, patient_id, search_param))
        if resource_type in self.raises:
            raise RuntimeError(f"{resource_type} exploded")
        if resource_type in self.failures:
            return FetchFailure(resource_type, "FHIR server error (500)", status_code=500)
        return ResourceCollection(resource_type, tuple(self.collections.get(resource_type, ())))

    async def read(self, resource_type, resource_id):
        resource = self.known.get((resource_type, resource_id))
        if resource is None:
            return FetchFailure(resource_type, "FHIR server error (404)", status_code=404)
        return resource

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        self.closed = True


@pytest.fixture
def patient():
    return make_patient()


@pytest.fixture
def practitioner():
    return make_practitioner()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
