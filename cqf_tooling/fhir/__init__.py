"""FHIR resource handling: versions, file I/O, encodings and bundles."""

from cqf_tooling.fhir.bundle_builder import BundleBuilder, BundleType
from cqf_tooling.fhir.io import (
    Encoding,
    get_file_paths,
    read_resource,
    read_resources,
    write_resource,
)
from cqf_tooling.fhir.versions import FhirVersion

__all__ = [
    "BundleBuilder",
    "BundleType",
    "Encoding",
    "FhirVersion",
    "get_file_paths",
    "read_resource",
    "read_resources",
    "write_resource",
]
