"""Tests for the FHIR XML codec."""

from typing import Any
from xml.etree import ElementTree as ET

import pytest

from cqf_tooling.exceptions import ResourceParseError
from cqf_tooling.fhir.xml_codec import resource_to_xml, xml_to_resource


@pytest.fixture
def patient() -> dict[str, Any]:
    """Patient with primitives, extensions and a narrative."""
    return {
        "resourceType": "Patient",
        "id": "example",
        "text": {
            "status": "generated",
            "div": '<div xmlns="http://www.w3.org/1999/xhtml">Peter</div>',
        },
        "extension": [
            {
                "url": "http://example.org/fhir/StructureDefinition/eye-color",
                "valueString": "blue",
            }
        ],
        "active": True,
        "name": [
            {"family": "Chalmers", "given": ["Peter", "James"]},
            {"use": "nickname", "given": ["Jim"]},
        ],
        "birthDate": "1974-12-25",
        "_birthDate": {
            "extension": [
                {
                    "url": "http://hl7.org/fhir/StructureDefinition/patient-birthTime",
                    "valueDateTime": "1974-12-25T14:35:45-05:00",
                }
            ]
        },
    }


class TestResourceToXml:
    """Tests for writing resources as XML."""

    def test_declaration_and_namespace(self, patient: dict[str, Any]) -> None:
        """Test the document has a declaration and the FHIR namespace."""
        xml = resource_to_xml(patient)

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')
        assert '<Patient xmlns="http://hl7.org/fhir">' in xml

    def test_primitives_and_extensions(self, patient: dict[str, Any]) -> None:
        """Test primitives use value attributes and extensions carry url."""
        xml = resource_to_xml(patient)

        assert '<id value="example" />' in xml
        assert '<active value="true" />' in xml
        assert (
            '<extension url="http://example.org/fhir/StructureDefinition/eye-color">'
            in xml
        )

    def test_resource_element_order(self, patient: dict[str, Any]) -> None:
        """Test id, text and extension are written before other elements."""
        xml = resource_to_xml(patient)

        assert xml.index("<id ") < xml.index("<text>") < xml.index("<extension ")
        assert xml.index("<extension ") < xml.index("<active ")

    def test_nested_resource(self) -> None:
        """Test bundle entry resources are wrapped in a resource element."""
        bundle = {
            "resourceType": "Bundle",
            "type": "collection",
            "entry": [{"resource": {"resourceType": "Patient", "id": "p1"}}],
        }

        xml = resource_to_xml(bundle, pretty=False)

        assert (
            '<entry><resource><Patient><id value="p1" /></Patient></resource></entry>'
            in xml
        )

    def test_global_namespace_registry_untouched(self, patient: dict[str, Any]) -> None:
        """Test writing does not make FHIR the default namespace for other documents."""
        resource_to_xml(patient)

        other = ET.tostring(ET.Element("{http://hl7.org/fhir}Patient"), encoding="unicode")

        assert 'xmlns="http://hl7.org/fhir"' not in other

    def test_missing_resource_type(self) -> None:
        """Test a resource without resourceType cannot be written."""
        with pytest.raises(ValueError):
            resource_to_xml({"id": "x"})


class TestXmlToResource:
    """Tests for reading XML resources."""

    def test_round_trip(self, patient: dict[str, Any]) -> None:
        """Test a written resource reads back to the same JSON shape."""
        assert xml_to_resource(resource_to_xml(patient)) == patient

    def test_single_occurrence_of_repeating_element(self) -> None:
        """Test known repeating elements become lists even when they occur once."""
        resource = xml_to_resource(
            '<ValueSet xmlns="http://hl7.org/fhir">'
            '<status value="active"/>'
            '<compose><include><system value="http://example.org"/></include></compose>'
            "</ValueSet>"
        )

        assert resource == {
            "resourceType": "ValueSet",
            "status": "active",
            "compose": {"include": [{"system": "http://example.org"}]},
        }

    def test_invalid_xml(self) -> None:
        """Test malformed XML is rejected."""
        with pytest.raises(ResourceParseError, match="Invalid XML"):
            xml_to_resource("<Patient")

    def test_not_fhir_namespace(self) -> None:
        """Test documents outside the FHIR namespace are rejected."""
        with pytest.raises(ResourceParseError, match="not in the FHIR namespace"):
            xml_to_resource("<Patient><id value='x'/></Patient>")

    def test_entities_rejected(self) -> None:
        """Test entity declarations are refused."""
        xml = (
            '<?xml version="1.0"?>'
            '<!DOCTYPE r [<!ENTITY e "boom">]>'
            '<Patient xmlns="http://hl7.org/fhir"><id value="&e;"/></Patient>'
        )

        with pytest.raises(ResourceParseError, match="Forbidden XML construct"):
            xml_to_resource(xml)

    def test_repeating_elements_by_path(self) -> None:
        """Test cardinality depends on where an element occurs."""
        concept_map = xml_to_resource(
            '<ConceptMap xmlns="http://hl7.org/fhir">'
            "<group><element>"
            '<code value="a"/>'
            '<target><code value="b"/><relationship value="equivalent"/></target>'
            "</element></group>"
            "</ConceptMap>"
        )
        structure_definition = xml_to_resource(
            '<StructureDefinition xmlns="http://hl7.org/fhir">'
            '<snapshot><element id="Observation.code">'
            '<path value="Observation.code"/>'
            '<code><code value="8867-4"/></code>'
            '<type><code value="CodeableConcept"/></type>'
            "</element></snapshot>"
            "</StructureDefinition>"
        )

        element = concept_map["group"][0]["element"][0]
        assert element["code"] == "a"
        assert element["target"] == [{"code": "b", "relationship": "equivalent"}]
        definition = structure_definition["snapshot"]["element"][0]
        assert definition["code"] == [{"code": "8867-4"}]
        assert definition["type"] == [{"code": "CodeableConcept"}]

    def test_numeric_primitives(self) -> None:
        """Test integer and decimal elements are read as numbers."""
        observation = xml_to_resource(
            '<Observation xmlns="http://hl7.org/fhir">'
            '<status value="final"/>'
            '<valueQuantity><value value="98.6"/><unit value="F"/></valueQuantity>'
            "<component>"
            '<valueInteger value="3"/>'
            "</component>"
            "<referenceRange><low><value value=\"1\"/></low></referenceRange>"
            "</Observation>"
        )
        code_system = xml_to_resource(
            '<CodeSystem xmlns="http://hl7.org/fhir"><count value="12"/></CodeSystem>'
        )

        assert observation["valueQuantity"] == {"value": 98.6, "unit": "F"}
        assert observation["component"] == [{"valueInteger": 3}]
        assert observation["referenceRange"] == [{"low": {"value": 1}}]
        assert code_system["count"] == 12

    def test_invalid_number(self) -> None:
        """Test non-numeric text in a numeric element is rejected."""
        with pytest.raises(ResourceParseError, match="Invalid numeric value 'many'"):
            xml_to_resource(
                '<CodeSystem xmlns="http://hl7.org/fhir"><count value="many"/></CodeSystem>'
            )
