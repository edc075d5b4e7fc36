"""
IPS Section Builder

Turns one clinical domain's fetch result into:
1. A normalized resource list (with a placeholder if nothing was found)
2. A Composition section referencing exactly those resources

Fetch failures are absorbed here: a failed fetch and an empty result both
yield the domain's "no known information" placeholder, so a section is
never left without entries.
"""
import dataclasses
import html
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Protocol, Tuple

from fhir.resources.R4B.composition import CompositionSection
from fhir.resources.R4B.resource import Resource

from src.services.results import FetchFailure, FetchResult
from .placeholders import AllergyPlaceholder, MedicationPlaceholder, ProblemPlaceholder
from .references import Reference

logger = logging.getLogger(__name__)

LOINC_SYSTEM = "http://loinc.org"

MEDICATION_RESOURCE_TYPES = ("MedicationRequest", "MedicationStatement")

# (patient reference, assembly timestamp, resource id) -> placeholder resource
PlaceholderFactory = Callable[[Reference, str, str], Resource]

# (patient id, section key) -> placeholder resource id
IdFactory = Callable[[str, str], str]


class ResourceFetcher(Protocol):
    """Anything that can search a FHIR server for a patient's resources."""

    async def fetch(
        self,
        resource_type: str,
        patient_id: str,
        search_param: str = "patient"
    ) -> FetchResult:
        ...


@dataclass(frozen=True)
class SectionDefinition:
    """Fixed definition of one IPS section."""
    key: str
    title: str
    loinc_code: str
    loinc_display: str
    resource_type: str
    search_param: str
    placeholder_factory: PlaceholderFactory

    @property
    def code(self) -> Dict:
        return {
            "coding": [{
                "system": LOINC_SYSTEM,
                "code": self.loinc_code,
                "display": self.loinc_display
            }]
        }

    def with_resource_type(self, resource_type: str) -> "SectionDefinition":
        return dataclasses.replace(self, resource_type=resource_type)


MEDICATIONS = SectionDefinition(
    key="medications",
    title="Medication Summary",
    loinc_code="10160-0",
    loinc_display="History of Medication use Narrative",
    resource_type="MedicationRequest",
    search_param="patient",
    placeholder_factory=MedicationPlaceholder.build,
)

ALLERGIES = SectionDefinition(
    key="allergies",
    title="Allergies and Intolerances",
    loinc_code="48765-2",
    loinc_display="Allergies and adverse reactions Document",
    resource_type="AllergyIntolerance",
    search_param="patient",
    placeholder_factory=AllergyPlaceholder.build,
)

PROBLEMS = SectionDefinition(
    key="problems",
    title="Problem List",
    loinc_code="11450-4",
    loinc_display="Problem list - Reported",
    resource_type="Condition",
    search_param="patient",
    placeholder_factory=ProblemPlaceholder.build,
)

# Canonical IPS order
SECTION_ORDER = (MEDICATIONS, ALLERGIES, PROBLEMS)


def section_definitions(medication_resource_type: str = "MedicationRequest") -> Tuple[SectionDefinition, ...]:
    """The three IPS section definitions, medications reading from the given type."""
    if medication_resource_type not in MEDICATION_RESOURCE_TYPES:
        raise ValueError(
            f"Medication section cannot be built from {medication_resource_type}; "
            f"expected one of {', '.join(MEDICATION_RESOURCE_TYPES)}"
        )
    return (MEDICATIONS.with_resource_type(medication_resource_type), ALLERGIES, PROBLEMS)


def describe(resource: Resource) -> str:
    """Short human-readable label for a section resource."""
    concept = (
        getattr(resource, "code", None)
        or getattr(resource, "medicationCodeableConcept", None)
    )
    if concept is not None:
        if concept.text:
            return concept.text
        for coding in concept.coding or []:
            if coding.display or coding.code:
                return coding.display or coding.code
    return str(Reference.of(resource))


@dataclass(frozen=True)
class Section:
    """A Composition section: title, fixed LOINC code and entry references."""
    title: str
    code: Dict
    entries: Tuple[Reference, ...]
    narrative: Tuple[str, ...] = ()

    def to_fhir(self) -> CompositionSection:
        items = "".join(f"<li>{html.escape(label)}</li>" for label in self.narrative)
        return CompositionSection(**{
            "title": self.title,
            "code": self.code,
            "text": {
                "status": "generated",
                "div": f'<div xmlns="http://www.w3.org/1999/xhtml"><ul>{items}</ul></div>'
            },
            "entry": [ref.to_fhir() for ref in self.entries],
        })


@dataclass(frozen=True)
class SectionResult:
    """
    Output of building one section.

    The resource bodies travel alongside the section because the bundle
    needs them, not just the references.
    """
    key: str
    section: Section
    resources: Tuple[Resource, ...]
    placeholder: bool = False


async def build_section(
    definition: SectionDefinition,
    patient: Reference,
    fetcher: ResourceFetcher,
    now: str,
    id_factory: IdFactory
) -> SectionResult:
    """
    Build one IPS section for a patient.

    Args:
        definition: Section definition (resource type, LOINC code, placeholder)
        patient: Reference to the subject Patient
        fetcher: Resource fetcher adapter
        now: Assembly timestamp shared by every date in the document
        id_factory: Issues the id for a synthesized placeholder

    Returns:
        SectionResult with a non-empty section and its resources
    """
    try:
        result = await fetcher.fetch(definition.resource_type, patient.id, definition.search_param)
    except Exception as e:
        result = FetchFailure(definition.resource_type, f"{type(e).__name__}: {e}")

    if isinstance(result, FetchFailure):
        logger.warning(
            "%s fetch failed for %s (status=%s): %s; using placeholder",
            definition.resource_type, patient, result.status_code, result.error
        )
        resources: List[Resource] = []
    else:
        resources = list(result.resources)

    placeholder = False
    if not resources:
        resource_id = id_factory(patient.id, definition.key)
        resources.append(definition.placeholder_factory(patient, now, resource_id))
        placeholder = True

    section = Section(
        title=definition.title,
        code=definition.code,
        entries=tuple(Reference.of(r) for r in resources),
        narrative=tuple(describe(r) for r in resources),
    )
    logger.debug(
        "Built %s section with %d entries (placeholder=%s)",
        definition.key, len(section.entries), placeholder
    )
    return SectionResult(
        key=definition.key,
        section=section,
        resources=tuple(resources),
        placeholder=placeholder
    )
