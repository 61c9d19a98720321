"""
ValueSet transformer (R5 to R4).

https://hl7.org/fhir/R5/valueset.html
"""

from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.code_system import transform_designation
from cqf_tooling.transform.r5_to_r4.common import drop_fields


def transform_value_set(r5_value_set: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 ValueSet to R4.

    Key changes in R5:
    - scope added
    - compose.property and compose.include.copyright added
    - designation.additionalUse added
    - expansion.next, expansion.property and contains.property added

    Args:
        r5_value_set: FHIR R5 ValueSet resource

    Returns:
        FHIR R4 ValueSet resource
    """
    r4_value_set = r5_value_set.copy()
    drop_fields(r4_value_set, "scope")

    if "compose" in r4_value_set:
        r4_value_set["compose"] = _transform_compose(r4_value_set["compose"])

    if "expansion" in r4_value_set:
        r4_value_set["expansion"] = _transform_expansion(r4_value_set["expansion"])

    return r4_value_set


def _transform_compose(compose: dict[str, Any]) -> dict[str, Any]:
    r4_compose = compose.copy()
    drop_fields(r4_compose, "property")

    for field in ("include", "exclude"):
        if field in r4_compose:
            r4_compose[field] = [
                _transform_include(i) for i in as_list(r4_compose[field])
            ]

    return r4_compose


def _transform_include(include: dict[str, Any]) -> dict[str, Any]:
    r4_include = include.copy()
    drop_fields(r4_include, "copyright")

    if "concept" in r4_include:
        concepts = []
        for concept in as_list(r4_include["concept"]):
            r4_concept = concept.copy()
            if "designation" in r4_concept:
                r4_concept["designation"] = [
                    transform_designation(d) for d in as_list(r4_concept["designation"])
                ]
            concepts.append(r4_concept)
        r4_include["concept"] = concepts

    return r4_include


def _transform_expansion(expansion: dict[str, Any]) -> dict[str, Any]:
    r4_expansion = expansion.copy()
    drop_fields(r4_expansion, "next", "property")

    if "contains" in r4_expansion:
        r4_expansion["contains"] = [
            _transform_contains(c) for c in as_list(r4_expansion["contains"])
        ]

    return r4_expansion


def _transform_contains(contains: dict[str, Any]) -> dict[str, Any]:
    r4_contains = contains.copy()
    drop_fields(r4_contains, "property")

    if "designation" in r4_contains:
        r4_contains["designation"] = [
            transform_designation(d) for d in as_list(r4_contains["designation"])
        ]

    if "contains" in r4_contains:
        r4_contains["contains"] = [
            _transform_contains(c) for c in as_list(r4_contains["contains"])
        ]

    return r4_contains
