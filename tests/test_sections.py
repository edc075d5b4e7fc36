"""
Section Builder Tests

Tests for:
1. Reference parsing and identifier strategies
2. Placeholder policy (empty results, failed fetches, raising fetchers)
3. Sections built from real fetched resources
"""
import pytest

from fhir.resources.R4B.condition import Condition

from src.fhir.placeholders import (
    ABSENT_UNKNOWN_SYSTEM,
    NO_ALLERGY_INFO,
    NO_MEDICATION_INFO,
    NO_PROBLEM_INFO,
    is_placeholder,
)
from src.fhir.references import IdentifierStrategy, Reference, parse_resource
from src.fhir.sections import (
    ALLERGIES,
    MEDICATIONS,
    PROBLEMS,
    build_section,
    section_definitions,
)

from conftest import (
    UUID,
    FakeFetcher,
    make_allergy,
    make_condition,
    make_medication_request,
)


NOW = "2026-10-18T12:00:00.000+00:00"
PATIENT = Reference("Patient", "123")

# (definition, placeholder resource type, absent code, patient field)
PLACEHOLDER_CASES = [
    (MEDICATIONS, "MedicationStatement", NO_MEDICATION_INFO, "subject"),
    (ALLERGIES, "AllergyIntolerance", NO_ALLERGY_INFO, "patient"),
    (PROBLEMS, "Condition", NO_PROBLEM_INFO, "subject"),
]


def absent_code(resource) -> str:
    concept = getattr(resource, "code", None) or getattr(resource, "medicationCodeableConcept", None)
    return concept.coding[0].code


# ============================================================================
# References and Identifiers
# ============================================================================

class TestReference:
    """Test the Reference value object."""

    def test_renders_type_and_id(self):
        assert str(Reference("Patient", "123")) == "Patient/123"
        assert Reference("Patient", "123").to_fhir() == {"reference": "Patient/123"}

    def test_parse_relative(self):
        assert Reference.parse("Practitioner/456") == Reference("Practitioner", "456")

    def test_parse_absolute_and_versioned(self):
        assert Reference.parse(
            "https://launch.smarthealthit.org/v/r4/fhir/Practitioner/456"
        ) == Reference("Practitioner", "456")
        assert Reference.parse("Patient/123/_history/2") == Reference("Patient", "123")

    def test_parse_rejects_contained_and_urn(self):
        assert Reference.parse("#med1") is None
        assert Reference.parse("urn:uuid:0b8f1b6e-0000-4000-8000-000000000000") is None
        assert Reference.parse("Patient") is None
        assert Reference.parse("") is None

    def test_of_requires_id(self):
        condition = make_condition()
        assert Reference.of(condition) == Reference("Condition", "condition-1")

        anonymous = Condition(**{
            "resourceType": "Condition",
            "subject": {"reference": "Patient/123"}
        })
        with pytest.raises(ValueError):
            Reference.of(anonymous)


class TestParseResource:
    """Test parsing raw JSON into the closed resource set."""

    def test_parses_known_type(self):
        resource = parse_resource({
            "resourceType": "Condition",
            "id": "c1",
            "subject": {"reference": "Patient/123"}
        })
        assert resource.resource_type == "Condition"
        assert resource.subject.reference == "Patient/123"

    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            parse_resource({"resourceType": "Observation", "id": "o1"})

    def test_rejects_invalid_payload(self):
        # Condition.subject is required
        with pytest.raises(ValueError):
            parse_resource({"resourceType": "Condition", "id": "c1"})


class TestIdentifierStrategy:
    """Test placeholder identifier strategies."""

    def test_random_ids_differ(self):
        strategy = IdentifierStrategy("random")
        first = strategy("123", "medications")
        second = strategy("123", "medications")
        assert UUID.match(first)
        assert first != second

    def test_stable_ids_repeat(self):
        strategy = IdentifierStrategy("stable")
        assert strategy("123", "medications") == strategy("123", "medications")
        assert strategy("123", "medications") != strategy("123", "allergies")
        assert strategy("123", "medications") != strategy("999", "medications")
        assert UUID.match(strategy("123", "problems"))

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            IdentifierStrategy("sequential")


# ============================================================================
# Section Definitions
# ============================================================================

class TestSectionDefinitions:
    """Test the fixed IPS section definitions."""

    def test_loinc_codes(self):
        assert MEDICATIONS.code["coding"][0] == {
            "system": "http://loinc.org",
            "code": "10160-0",
            "display": "History of Medication use Narrative"
        }
        assert ALLERGIES.code["coding"][0]["code"] == "48765-2"
        assert PROBLEMS.code["coding"][0]["code"] == "11450-4"

    def test_canonical_order(self):
        assert [definition.key for definition in section_definitions()] == ["medications", "allergies", "problems"]

    def test_medication_resource_type_override(self):
        definitions = section_definitions("MedicationStatement")
        assert definitions[0].resource_type == "MedicationStatement"
        assert definitions[0].loinc_code == "10160-0"
        # Module-level definition is unchanged
        assert MEDICATIONS.resource_type == "MedicationRequest"

    def test_rejects_non_medication_type(self):
        with pytest.raises(ValueError):
            section_definitions("Condition")


# ============================================================================
# Placeholder Policy
# ============================================================================

class TestPlaceholderPolicy:
    """Sections are never empty."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("definition,resource_type,code,patient_field", PLACEHOLDER_CASES)
    async def test_empty_collection_gets_placeholder(self, definition, resource_type, code, patient_field):
        result = await build_section(definition, PATIENT, FakeFetcher(), NOW, IdentifierStrategy())

        assert result.placeholder is True
        assert len(result.section.entries) == 1
        assert len(result.resources) == 1

        placeholder = result.resources[0]
        assert placeholder.resource_type == resource_type
        assert absent_code(placeholder) == code
        assert is_placeholder(placeholder)
        assert getattr(placeholder, patient_field).reference == "Patient/123"
        assert UUID.match(placeholder.id)
        assert result.section.entries[0] == Reference(resource_type, placeholder.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("definition,resource_type,code,patient_field", PLACEHOLDER_CASES)
    async def test_failed_fetch_gets_placeholder(self, definition, resource_type, code, patient_field):
        fetcher = FakeFetcher(failures=[definition.resource_type])
        result = await build_section(definition, PATIENT, fetcher, NOW, IdentifierStrategy())

        assert result.placeholder is True
        assert len(result.section.entries) == 1
        assert absent_code(result.resources[0]) == code

    @pytest.mark.asyncio
    async def test_raising_fetcher_is_absorbed(self):
        fetcher = FakeFetcher(raises=["Condition"])
        result = await build_section(PROBLEMS, PATIENT, fetcher, NOW, IdentifierStrategy())

        assert result.placeholder is True
        assert absent_code(result.resources[0]) == NO_PROBLEM_INFO

    @pytest.mark.asyncio
    async def test_placeholder_coding_system(self):
        result = await build_section(ALLERGIES, PATIENT, FakeFetcher(), NOW, IdentifierStrategy())
        coding = result.resources[0].code.coding[0]

        assert coding.system == ABSENT_UNKNOWN_SYSTEM
        assert coding.display == "No information about allergies"

    @pytest.mark.asyncio
    async def test_stable_placeholder_ids(self):
        strategy = IdentifierStrategy("stable")
        first = await build_section(MEDICATIONS, PATIENT, FakeFetcher(), NOW, strategy)
        second = await build_section(MEDICATIONS, PATIENT, FakeFetcher(), NOW, strategy)

        assert first.resources[0].id == second.resources[0].id

    @pytest.mark.asyncio
    async def test_medication_placeholder_is_statement_with_effective_date(self):
        result = await build_section(MEDICATIONS, PATIENT, FakeFetcher(), NOW, IdentifierStrategy())
        statement = result.resources[0]

        assert statement.resource_type == "MedicationStatement"
        assert statement.status == "unknown"
        assert statement.effectiveDateTime is not None


# ============================================================================
# Sections From Fetched Data
# ============================================================================

class TestFetchedSections:
    """Non-empty collections pass through without placeholders."""

    @pytest.mark.asyncio
    async def test_entries_match_resources(self):
        meds = [
            make_medication_request("med-1", "atorvastatin"),
            make_medication_request("med-2", "lisinopril"),
        ]
        fetcher = FakeFetcher(collections={"MedicationRequest": meds})
        result = await build_section(MEDICATIONS, PATIENT, fetcher, NOW, IdentifierStrategy())

        assert result.placeholder is False
        assert len(result.section.entries) == 2
        assert [str(ref) for ref in result.section.entries] == [
            "MedicationRequest/med-1",
            "MedicationRequest/med-2",
        ]
        assert list(result.resources) == meds
        assert not any(is_placeholder(r) for r in result.resources)

    @pytest.mark.asyncio
    async def test_fetch_is_patient_scoped(self):
        fetcher = FakeFetcher(collections={"AllergyIntolerance": [make_allergy()]})
        await build_section(ALLERGIES, PATIENT, fetcher, NOW, IdentifierStrategy())

        assert fetcher.calls == [("AllergyIntolerance", "123", "patient")]

    @pytest.mark.asyncio
    async def test_section_to_fhir(self):
        fetcher = FakeFetcher(collections={"Condition": [make_condition()]})
        result = await build_section(PROBLEMS, PATIENT, fetcher, NOW, IdentifierStrategy())
        section = result.section.to_fhir()

        assert section.title == "Problem List"
        assert section.code.coding[0].code == "11450-4"
        assert section.entry[0].reference == "Condition/condition-1"
        assert "Hyperlipidemia" in section.text.div
        assert section.text.status == "generated"
