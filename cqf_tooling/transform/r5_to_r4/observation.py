"""
Observation resource transformer (R5 to R4).

Observation has relatively few changes between R4 and R5.
https://hl7.org/fhir/R5/observation.html
"""

from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.common import drop_fields, preserve_as_extension

# value[x] types R5 added to Observation.value[x] and component.value[x]
R5_VALUE_TYPES = ("Attachment", "Reference")


def transform_observation(r5_observation: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 Observation to R4.

    Key changes in R5:
    - instantiates[x] and bodyStructure added
    - triggeredBy added
    - value[x] gains Attachment and Reference
    - referenceRange.normalValue added
    - status codes same

    Args:
        r5_observation: FHIR R5 Observation resource

    Returns:
        FHIR R4 Observation resource
    """
    r4_observation = r5_observation.copy()

    preserve_as_extension(
        r4_observation,
        "instantiatesCanonical",
        "Observation",
        "instantiates[x]",
        "Canonical",
    )
    preserve_as_extension(
        r4_observation,
        "instantiatesReference",
        "Observation",
        "instantiates[x]",
        "Reference",
    )
    preserve_as_extension(
        r4_observation, "bodyStructure", "Observation", "bodyStructure", "Reference"
    )
    _preserve_value(r4_observation, "Observation")

    # BackboneElement with no R4 equivalent
    drop_fields(r4_observation, "triggeredBy")

    if "referenceRange" in r4_observation:
        ranges = []
        for reference_range in as_list(r4_observation["referenceRange"]):
            r4_range = reference_range.copy()
            drop_fields(r4_range, "normalValue")
            ranges.append(r4_range)
        r4_observation["referenceRange"] = ranges

    if "component" in r4_observation:
        r4_observation["component"] = [
            _transform_component(c) for c in as_list(r4_observation["component"])
        ]

    return r4_observation


def _transform_component(r5_component: dict[str, Any]) -> dict[str, Any]:
    """Transform Observation.component."""
    r4_component = r5_component.copy()
    _preserve_value(r4_component, "Observation.component")
    return r4_component


def _preserve_value(target: dict[str, Any], path: str) -> None:
    for value_type in R5_VALUE_TYPES:
        preserve_as_extension(target, f"value{value_type}", path, "value[x]", value_type)
