"""
ConceptMap transformer (R5 to R4).

ConceptMap was reworked substantially in R5.
https://hl7.org/fhir/R5/conceptmap.html

Key changes reversed here:
- target.relationship (source-to-target) back to target.equivalence (target-to-source)
- sourceScope[x]/targetScope[x] back to source[x]/target[x]
- element.noMap back to a target with equivalence 'unmatched'
- dependsOn.attribute/value[x] back to dependsOn.property/system/value/display
- unmapped.mode 'use-source-code' back to 'provided'
- identifier is 0..1 in R4
"""

import logging
from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.common import drop_fields

logger = logging.getLogger(__name__)

# R5 relationship -> R4 equivalence. R4 equivalence reads target-to-source,
# so "narrower" and "broader" swap.
RELATIONSHIP_TO_EQUIVALENCE = {
    "related-to": "relatedto",
    "equivalent": "equivalent",
    "source-is-narrower-than-target": "wider",
    "source-is-broader-than-target": "narrower",
    "not-related-to": "disjoint",
}

UNMAPPED_MODES = {
    "use-source-code": "provided",
    "fixed": "fixed",
    "other-map": "other-map",
}

SCOPE_FIELDS = {
    "sourceScopeUri": "sourceUri",
    "sourceScopeCanonical": "sourceCanonical",
    "targetScopeUri": "targetUri",
    "targetScopeCanonical": "targetCanonical",
}


def transform_concept_map(r5_concept_map: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 ConceptMap to R4.

    Args:
        r5_concept_map: FHIR R5 ConceptMap resource

    Returns:
        FHIR R4 ConceptMap resource
    """
    r4_concept_map = r5_concept_map.copy()

    identifiers = r4_concept_map.get("identifier")
    if isinstance(identifiers, list):
        if len(identifiers) > 1:
            logger.warning(
                "ConceptMap/%s has %d identifiers, R4 keeps only the first",
                r4_concept_map.get("id"),
                len(identifiers),
            )
        if identifiers:
            r4_concept_map["identifier"] = identifiers[0]
        else:
            del r4_concept_map["identifier"]

    for r5_field, r4_field in SCOPE_FIELDS.items():
        if r5_field in r4_concept_map:
            r4_concept_map[r4_field] = r4_concept_map.pop(r5_field)

    # Declarations used by element properties and additional attributes
    drop_fields(r4_concept_map, "property", "additionalAttribute")

    if "group" in r4_concept_map:
        r4_concept_map["group"] = [
            _transform_group(group) for group in as_list(r4_concept_map["group"])
        ]

    return r4_concept_map


def _transform_group(group: dict[str, Any]) -> dict[str, Any]:
    r4_group = group.copy()

    if "element" in r4_group:
        r4_group["element"] = [
            _transform_element(e) for e in as_list(r4_group["element"])
        ]

    if "unmapped" in r4_group:
        r4_group["unmapped"] = _transform_unmapped(r4_group["unmapped"])

    return r4_group


def _transform_element(element: dict[str, Any]) -> dict[str, Any]:
    r4_element = element.copy()
    drop_fields(r4_element, "valueSet")

    targets = [_transform_target(t) for t in as_list(r4_element.get("target"))]

    if r4_element.pop("noMap", False):
        targets.append({"equivalence": "unmatched"})

    if targets:
        r4_element["target"] = targets
    else:
        r4_element.pop("target", None)

    return r4_element


def _transform_target(target: dict[str, Any]) -> dict[str, Any]:
    r4_target = target.copy()
    drop_fields(r4_target, "valueSet", "property")

    relationship = r4_target.pop("relationship", None)
    r4_target["equivalence"] = _transform_relationship(relationship)

    for field in ("dependsOn", "product"):
        if field in r4_target:
            r4_target[field] = [
                _transform_depends_on(d) for d in as_list(r4_target[field])
            ]

    return r4_target


def _transform_relationship(relationship: str | None) -> str:
    """Map a relationship to an equivalence; 'relatedto' when absent or unknown."""
    if relationship is None:
        return "relatedto"
    return RELATIONSHIP_TO_EQUIVALENCE.get(relationship, "relatedto")


def _transform_depends_on(depends_on: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a dependsOn/product entry.

    R5: attribute, value[x] (code | Coding | string | boolean | Quantity), valueSet
    R4: property (uri), system, value (string), display
    """
    r4_depends_on: dict[str, Any] = {}

    for field in ("id", "extension", "modifierExtension"):
        if field in depends_on:
            r4_depends_on[field] = depends_on[field]

    if "attribute" in depends_on:
        r4_depends_on["property"] = depends_on["attribute"]

    if "valueCoding" in depends_on:
        coding = depends_on["valueCoding"]
        if "system" in coding:
            r4_depends_on["system"] = coding["system"]
        if "code" in coding:
            r4_depends_on["value"] = coding["code"]
        if "display" in coding:
            r4_depends_on["display"] = coding["display"]
    elif "valueCode" in depends_on:
        r4_depends_on["value"] = depends_on["valueCode"]
    elif "valueString" in depends_on:
        r4_depends_on["value"] = depends_on["valueString"]
    elif "valueBoolean" in depends_on:
        r4_depends_on["value"] = "true" if depends_on["valueBoolean"] else "false"
    elif "valueQuantity" in depends_on:
        logger.debug("Dropping dependsOn.valueQuantity, not representable in R4")

    return r4_depends_on


def _transform_unmapped(unmapped: dict[str, Any]) -> dict[str, Any]:
    r4_unmapped = unmapped.copy()
    drop_fields(r4_unmapped, "valueSet", "relationship")

    if "mode" in r4_unmapped:
        r4_unmapped["mode"] = UNMAPPED_MODES.get(r4_unmapped["mode"], r4_unmapped["mode"])

    return r4_unmapped
