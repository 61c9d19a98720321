"""
Downgrades shared by all canonical (metadata) resources.

R5 added several metadata elements to every canonical resource. Where R4
has no home for them they are preserved as cross-version extensions:
http://hl7.org/fhir/versions.html#extensions
"""

import logging
from typing import Any

from cqf_tooling.fhir.io import as_list

logger = logging.getLogger(__name__)

CROSS_VERSION_EXTENSION_BASE = "http://hl7.org/fhir/5.0/StructureDefinition/extension-"

# Terminology resources that gained the knowledge artifact metadata in R5
R5_METADATA_RESOURCES = {"CodeSystem", "ConceptMap", "NamingSystem", "ValueSet"}

# Element -> extension value[x] type, for elements R4 only has on knowledge artifacts
KNOWLEDGE_METADATA_ELEMENTS = {
    "topic": "CodeableConcept",
    "author": "ContactDetail",
    "editor": "ContactDetail",
    "reviewer": "ContactDetail",
    "endorser": "ContactDetail",
    "relatedArtifact": "RelatedArtifact",
    "approvalDate": "Date",
    "lastReviewDate": "Date",
    "effectivePeriod": "Period",
}

R4_RELATED_ARTIFACT_TYPES = {
    "documentation",
    "justification",
    "citation",
    "predecessor",
    "successor",
    "derived-from",
    "depends-on",
    "composed-of",
}

# RelatedArtifact members added in R5
R5_RELATED_ARTIFACT_ELEMENTS = (
    "classifier",
    "resourceReference",
    "publicationStatus",
    "publicationDate",
)


def cross_version_extension(
    resource_type: str, element: str, value_type: str, value: Any
) -> dict[str, Any]:
    """Build a cross-version extension for ``<resource_type>.<element>``."""
    return {
        "url": f"{CROSS_VERSION_EXTENSION_BASE}{resource_type}.{element}",
        f"value{value_type}": value,
    }


def preserve_as_extension(
    target: dict[str, Any],
    field: str,
    path: str,
    element: str,
    value_type: str,
) -> bool:
    """
    Move ``target[field]`` into cross-version extensions on ``target``.

    Repeating values produce one extension per item.

    Args:
        target: Resource or element holding the field (modified in place)
        field: JSON property to move
        path: Path of the owning element, e.g. ``Measure`` or ``Observation.component``
        element: Element name used in the extension url, e.g. ``versionAlgorithm[x]``
        value_type: FHIR datatype used for ``value[x]``

    Returns:
        True if the field was present
    """
    if field not in target:
        return False

    value = target.pop(field)
    values = as_list(value)
    extensions = target.setdefault("extension", [])
    for item in values:
        extensions.append(cross_version_extension(path, element, value_type, item))
    return True


def add_extension(target: dict[str, Any], url: str, value_type: str, value: Any) -> None:
    """Append a single extension to ``target``."""
    target.setdefault("extension", []).append({"url": url, f"value{value_type}": value})


def downgrade_metadata(resource: dict[str, Any]) -> dict[str, Any]:
    """
    Downgrade the R5 canonical-resource metadata elements in place.

    Args:
        resource: Resource already carrying its R4 resourceType

    Returns:
        The same resource
    """
    resource_type = resource["resourceType"]

    preserve_as_extension(
        resource, "versionAlgorithmString", resource_type, "versionAlgorithm[x]", "String"
    )
    preserve_as_extension(
        resource, "versionAlgorithmCoding", resource_type, "versionAlgorithm[x]", "Coding"
    )
    preserve_as_extension(
        resource, "copyrightLabel", resource_type, "copyrightLabel", "String"
    )

    if "relatedArtifact" in resource:
        resource["relatedArtifact"] = downgrade_related_artifacts(
            as_list(resource["relatedArtifact"])
        )
        if not resource["relatedArtifact"]:
            del resource["relatedArtifact"]

    if resource_type in R5_METADATA_RESOURCES:
        for element, value_type in KNOWLEDGE_METADATA_ELEMENTS.items():
            preserve_as_extension(resource, element, resource_type, element, value_type)

    return resource


def downgrade_related_artifacts(
    artifacts: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Drop R5-only RelatedArtifact members and types R4 cannot express."""
    downgraded: list[dict[str, Any]] = []
    for artifact in artifacts:
        artifact_type = artifact.get("type")
        if artifact_type not in R4_RELATED_ARTIFACT_TYPES:
            logger.debug("Dropping relatedArtifact with R5-only type %s", artifact_type)
            continue

        r4_artifact = {
            k: v for k, v in artifact.items() if k not in R5_RELATED_ARTIFACT_ELEMENTS
        }
        downgraded.append(r4_artifact)
    return downgraded


def drop_fields(target: dict[str, Any], *fields: str) -> None:
    """Remove R5-only members that have no R4 representation."""
    for field in fields:
        if target.pop(field, None) is not None:
            logger.debug("Dropped R5-only element %s", field)
