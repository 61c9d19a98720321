"""
StructureDefinition transformer (R5 to R4).

https://hl7.org/fhir/R5/structuredefinition.html
"""

from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.transform.r5_to_r4.common import drop_fields

# ElementDefinition members added in R5
R5_ELEMENT_DEFINITION_FIELDS = ("mustHaveValue", "valueAlternatives")


def transform_structure_definition(
    r5_structure_definition: dict[str, Any],
) -> dict[str, Any]:
    """
    Transform a FHIR R5 StructureDefinition to R4.

    Key changes in R5:
    - fhirVersion is 5.0.0
    - ElementDefinition.mustHaveValue and valueAlternatives added
    - ElementDefinition.constraint.suppress added
    - ElementDefinition.binding.additional added

    Args:
        r5_structure_definition: FHIR R5 StructureDefinition resource

    Returns:
        FHIR R4 StructureDefinition resource
    """
    r4_structure_definition = r5_structure_definition.copy()

    fhir_version = r4_structure_definition.get("fhirVersion")
    if isinstance(fhir_version, str) and fhir_version.startswith("5."):
        r4_structure_definition["fhirVersion"] = FhirVersion.R4.value

    for view in ("snapshot", "differential"):
        if view in r4_structure_definition:
            r4_view = r4_structure_definition[view].copy()
            r4_view["element"] = [
                transform_element_definition(e) for e in as_list(r4_view.get("element"))
            ]
            r4_structure_definition[view] = r4_view

    return r4_structure_definition


def transform_element_definition(element: dict[str, Any]) -> dict[str, Any]:
    """Remove R5-only ElementDefinition members."""
    r4_element = element.copy()
    drop_fields(r4_element, *R5_ELEMENT_DEFINITION_FIELDS)

    if "constraint" in r4_element:
        constraints = []
        for constraint in as_list(r4_element["constraint"]):
            r4_constraint = constraint.copy()
            drop_fields(r4_constraint, "suppress")
            constraints.append(r4_constraint)
        r4_element["constraint"] = constraints

    if "binding" in r4_element:
        r4_binding = r4_element["binding"].copy()
        drop_fields(r4_binding, "additional")
        r4_element["binding"] = r4_binding

    return r4_element
