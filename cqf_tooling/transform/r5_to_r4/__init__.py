"""
FHIR R5 to R4 transformation module.

This module provides transformers to convert FHIR R5 resources to FHIR R4 format.
The transformations follow the official HL7 R4/R5 mappings, preserving R5-only
elements as cross-version extensions where R4 has no equivalent.

Key changes reversed from R5:
- DeviceUsage and RequestOrchestration are renamed back
- ConceptMap relationship codes become equivalence codes
- Canonical resource metadata (versionAlgorithm, copyrightLabel, ...) moves to extensions
"""

from cqf_tooling.transform.r5_to_r4.bundle import transform_bundle
from cqf_tooling.transform.r5_to_r4.resource import r4_resource_type, transform_resource

__all__ = ["r4_resource_type", "transform_bundle", "transform_resource"]
