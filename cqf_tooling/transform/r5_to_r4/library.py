"""
Library transformer (R5 to R4).

https://hl7.org/fhir/R5/library.html
"""

from typing import Any

from cqf_tooling.fhir.io import as_list
from cqf_tooling.transform.r5_to_r4.common import drop_fields


def transform_library(r5_library: dict[str, Any]) -> dict[str, Any]:
    """
    Transform a FHIR R5 Library to R4.

    Key changes in R5:
    - DataRequirement.valueFilter added
    - DataRequirement.codeFilter and dateFilter unchanged

    Args:
        r5_library: FHIR R5 Library resource

    Returns:
        FHIR R4 Library resource
    """
    r4_library = r5_library.copy()

    if "dataRequirement" in r4_library:
        r4_library["dataRequirement"] = [
            transform_data_requirement(d)
            for d in as_list(r4_library["dataRequirement"])
        ]

    return r4_library


def transform_data_requirement(data_requirement: dict[str, Any]) -> dict[str, Any]:
    r4_data_requirement = data_requirement.copy()
    drop_fields(r4_data_requirement, "valueFilter")
    return r4_data_requirement
