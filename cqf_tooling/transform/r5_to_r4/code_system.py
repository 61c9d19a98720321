"""
CodeSystem transformer (R5 to R4).

CodeSystem changed little between R4 and R5; the metadata elements are
handled by the shared downgrade.
https://hl7.org/fhir/R5/codesystem.html
"""

from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.common import drop_fields


def transform_code_system(r5_code_system: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 CodeSystem to R4.

    Key changes in R5:
    - concept.designation.additionalUse added
    - supplements and content codes unchanged

    Args:
        r5_code_system: FHIR R5 CodeSystem resource

    Returns:
        FHIR R4 CodeSystem resource
    """
    r4_code_system = r5_code_system.copy()

    if "concept" in r4_code_system:
        r4_code_system["concept"] = [
            transform_concept(c) for c in as_list(r4_code_system["concept"])
        ]

    return r4_code_system


def transform_concept(concept: dict[str, Any]) -> dict[str, Any]:
    """Transform a concept definition and its children recursively."""
    r4_concept = concept.copy()

    if "designation" in r4_concept:
        r4_concept["designation"] = [
            transform_designation(d) for d in as_list(r4_concept["designation"])
        ]

    if "concept" in r4_concept:
        r4_concept["concept"] = [
            transform_concept(c) for c in as_list(r4_concept["concept"])
        ]

    return r4_concept


def transform_designation(designation: dict[str, Any]) -> dict[str, Any]:
    r4_designation = designation.copy()
    drop_fields(r4_designation, "additionalUse")
    return r4_designation
