"""
Resource router for R5 to R4 conversion.

Routes each resource to its type-specific transformer and applies the
shared metadata downgrade. Types without a specific transformer pass
through unchanged apart from that downgrade.
"""

import copy
import logging
from typing import Any, Callable

from cqf_tooling.fhir.io import as_list
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.transform.r5_to_r4.bundle import transform_bundle
from cqf_tooling.transform.r5_to_r4.code_system import transform_code_system
from cqf_tooling.transform.r5_to_r4.common import downgrade_metadata
from cqf_tooling.transform.r5_to_r4.concept_map import transform_concept_map
from cqf_tooling.transform.r5_to_r4.library import transform_library
from cqf_tooling.transform.r5_to_r4.measure import transform_measure
from cqf_tooling.transform.r5_to_r4.observation import transform_observation
from cqf_tooling.transform.r5_to_r4.structure_definition import (
    transform_structure_definition,
)
from cqf_tooling.transform.r5_to_r4.value_set import transform_value_set

logger = logging.getLogger(__name__)

ResourceTransformer = Callable[[dict[str, Any]], dict[str, Any]]

# Map R5 resource types to their transformers
RESOURCE_TRANSFORMERS: dict[str, ResourceTransformer] = {
    "Bundle": transform_bundle,
    "CodeSystem": transform_code_system,
    "ConceptMap": transform_concept_map,
    "Library": transform_library,
    "Measure": transform_measure,
    "Observation": transform_observation,
    "StructureDefinition": transform_structure_definition,
    "ValueSet": transform_value_set,
}

# Resource types renamed in R5
RENAMED_RESOURCE_TYPES = {
    "DeviceUsage": "DeviceUseStatement",
    "RequestOrchestration": "RequestGroup",
}


def r4_resource_type(r5_type: str | None) -> str | None:
    """
    The R4 resource type for an R5 resource type.

    Returns:
        The R4 type, or None if ``r5_type`` is not an R5 type or R4 has no
        counterpart for it
    """
    if not FhirVersion.R5.is_resource_type(r5_type):
        return None
    r4_type = RENAMED_RESOURCE_TYPES.get(r5_type, r5_type)  # type: ignore[arg-type]
    if not FhirVersion.R4.is_resource_type(r4_type):
        return None
    return r4_type


def transform_resource(r5_resource: dict[str, Any]) -> dict[str, Any] | None:
    """
    Transform a FHIR R5 resource to R4.

    The input is not modified.

    Args:
        r5_resource: FHIR R5 resource

    Returns:
        FHIR R4 resource, or None if the resource type has no R4 counterpart
    """
    r5_type = r5_resource.get("resourceType")
    r4_type = r4_resource_type(r5_type)
    if r4_type is None:
        logger.debug("No R4 counterpart for resource type %s", r5_type)
        return None

    r4_resource = copy.deepcopy(r5_resource)
    r4_resource["resourceType"] = r4_type

    transformer = RESOURCE_TRANSFORMERS.get(r5_type)  # type: ignore[arg-type]
    if transformer:
        r4_resource = transformer(r4_resource)

    downgrade_metadata(r4_resource)

    if "contained" in r4_resource:
        contained = []
        for resource in as_list(r4_resource["contained"]):
            r4_contained = transform_resource(resource)
            if r4_contained is None:
                logger.warning(
                    "Dropping contained %s/%s from %s/%s: no R4 counterpart",
                    resource.get("resourceType"),
                    resource.get("id"),
                    r4_type,
                    r4_resource.get("id"),
                )
                continue
            contained.append(r4_contained)
        if contained:
            r4_resource["contained"] = contained
        else:
            del r4_resource["contained"]

    return r4_resource
