"""
Measure transformer (R5 to R4).

R5 moved several measure-level properties onto the group and added a
population basis. R4 content expresses these with the CQF Measures IG
extensions.
https://hl7.org/fhir/R5/measure.html
https://hl7.org/fhir/us/cqfmeasures/
"""

from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.common import add_extension, drop_fields

CQFM_BASE = "http://hl7.org/fhir/us/cqfmeasures/StructureDefinition/"
CQFM_POPULATION_BASIS = f"{CQFM_BASE}cqfm-populationBasis"
CQFM_SCORING = f"{CQFM_BASE}cqfm-scoring"
CQFM_SCORING_UNIT = f"{CQFM_BASE}cqfm-scoringUnit"
CQFM_TYPE = f"{CQFM_BASE}cqfm-type"
CQFM_IMPROVEMENT_NOTATION = f"{CQFM_BASE}cqfm-improvementNotation"
CQFM_RATE_AGGREGATION = f"{CQFM_BASE}cqfm-rateAggregation"

# Group-level R5 element -> (extension url, value type)
GROUP_EXTENSIONS = {
    "basis": (CQFM_POPULATION_BASIS, "Code"),
    "scoring": (CQFM_SCORING, "CodeableConcept"),
    "scoringUnit": (CQFM_SCORING_UNIT, "CodeableConcept"),
    "improvementNotation": (CQFM_IMPROVEMENT_NOTATION, "CodeableConcept"),
    "rateAggregation": (CQFM_RATE_AGGREGATION, "String"),
}


def transform_measure(r5_measure: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 Measure to R4.

    Key changes in R5:
    - basis added (population basis)
    - term (code + definition) replaces definition (markdown)
    - scoringUnit added
    - group gains linkId, type, subject[x], basis, scoring, scoringUnit,
      rateAggregation, improvementNotation and library
    - population, stratifier and supplementalData gain linkId

    Args:
        r5_measure: FHIR R5 Measure resource

    Returns:
        FHIR R4 Measure resource
    """
    r4_measure = r5_measure.copy()

    if "basis" in r4_measure:
        add_extension(r4_measure, CQFM_POPULATION_BASIS, "Code", r4_measure.pop("basis"))

    if "scoringUnit" in r4_measure:
        add_extension(
            r4_measure, CQFM_SCORING_UNIT, "CodeableConcept", r4_measure.pop("scoringUnit")
        )

    if "term" in r4_measure:
        definitions = [
            t["definition"] for t in as_list(r4_measure.pop("term")) if t.get("definition")
        ]
        if definitions:
            r4_measure["definition"] = definitions

    if "group" in r4_measure:
        r4_measure["group"] = [_transform_group(g) for g in as_list(r4_measure["group"])]

    if "supplementalData" in r4_measure:
        r4_measure["supplementalData"] = [
            _link_id_to_id(s) for s in as_list(r4_measure["supplementalData"])
        ]

    return r4_measure


def _transform_group(group: dict[str, Any]) -> dict[str, Any]:
    r4_group = _link_id_to_id(group)

    for field, (url, value_type) in GROUP_EXTENSIONS.items():
        if field in r4_group:
            add_extension(r4_group, url, value_type, r4_group.pop(field))

    # Measure.type is measure-level only in R4
    if "type" in r4_group:
        for group_type in as_list(r4_group.pop("type")):
            add_extension(r4_group, CQFM_TYPE, "CodeableConcept", group_type)

    drop_fields(r4_group, "subjectCodeableConcept", "subjectReference", "library")

    if "population" in r4_group:
        populations = []
        for population in as_list(r4_group["population"]):
            r4_population = _link_id_to_id(population)
            drop_fields(
                r4_population, "groupDefinition", "inputPopulationId", "aggregateMethod"
            )
            populations.append(r4_population)
        r4_group["population"] = populations

    if "stratifier" in r4_group:
        r4_group["stratifier"] = [
            _transform_stratifier(s) for s in as_list(r4_group["stratifier"])
        ]

    return r4_group


def _transform_stratifier(stratifier: dict[str, Any]) -> dict[str, Any]:
    r4_stratifier = _link_id_to_id(stratifier)
    drop_fields(r4_stratifier, "groupDefinition")

    if "component" in r4_stratifier:
        components = []
        for component in as_list(r4_stratifier["component"]):
            r4_component = _link_id_to_id(component)
            drop_fields(r4_component, "groupDefinition")
            components.append(r4_component)
        r4_stratifier["component"] = components

    return r4_stratifier


def _link_id_to_id(element: dict[str, Any]) -> dict[str, Any]:
    """Carry an R5 linkId over as the element id when the element has none."""
    r4_element = element.copy()
    link_id = r4_element.pop("linkId", None)
    if link_id and "id" not in r4_element:
        r4_element["id"] = link_id
    return r4_element
