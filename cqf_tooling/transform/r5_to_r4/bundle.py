"""
Bundle transformer for R5 to R4 conversion.

Transforms a FHIR R5 Bundle to FHIR R4 format by routing each entry to
the appropriate resource transformer.
"""

import logging
from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.common import drop_fields

logger = logging.getLogger(__name__)


def transform_bundle(r5_bundle: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 Bundle to R4.

    Entries whose resource has no R4 counterpart are dropped. Entry order is
    preserved.

    Args:
        r5_bundle: FHIR R5 Bundle resource

    Returns:
        FHIR R4 Bundle resource
    """
    # Imported here: the resource router registers this transformer
    from cqf_tooling.transform.r5_to_r4.resource import transform_resource

    r4_bundle = r5_bundle.copy()

    # Bundle.issues (OperationOutcome) was added in R5
    drop_fields(r4_bundle, "issues")

    r4_entries: list[dict[str, Any]] = []
    for entry in as_list(r4_bundle.get("entry")):
        r4_entry = entry.copy()

        if "resource" in entry:
            r5_type = entry["resource"].get("resourceType")
            r4_resource = transform_resource(entry["resource"])
            if r4_resource is None:
                logger.warning(
                    "Dropping Bundle entry %s: %s has no R4 counterpart",
                    entry.get("fullUrl", "<no fullUrl>"),
                    r5_type,
                )
                continue
            r4_entry["resource"] = r4_resource

            if "request" in entry:
                r4_entry["request"] = _transform_request(
                    entry["request"], r5_type, r4_resource.get("resourceType")
                )

        if "response" in entry and "outcome" in entry["response"]:
            response = entry["response"].copy()
            outcome = transform_resource(response["outcome"])
            if outcome is None:
                del response["outcome"]
            else:
                response["outcome"] = outcome
            r4_entry["response"] = response

        r4_entries.append(r4_entry)

    if "entry" in r4_bundle:
        r4_bundle["entry"] = r4_entries

    return r4_bundle


def _transform_request(
    request: dict[str, Any],
    r5_type: str | None,
    r4_type: str | None,
) -> dict[str, Any]:
    """Transform bundle entry request, updating resource type references."""
    new_request = request.copy()

    # Update URL if resource type changed (e.g., DeviceUsage -> DeviceUseStatement)
    if r5_type and r4_type and r5_type != r4_type:
        url = request.get("url", "")
        if url.startswith(r5_type):
            new_request["url"] = url.replace(r5_type, r4_type, 1)

    return new_request
