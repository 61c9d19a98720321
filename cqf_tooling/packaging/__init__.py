"""
Measure packaging.

Packages FHIR R4 Measures from an Implementation Guide into distributable
transaction bundles, including:
- the primary Library and its Library dependencies
- referenced terminology, from the IG or a FHIR server
- test case resources
"""

from cqf_tooling.packaging.measure_paths import (
    PathResolutionPolicy,
    filter_measure_paths,
    get_measure_paths,
)
from cqf_tooling.packaging.package_measure import MeasurePackage, PackageMeasure
from cqf_tooling.packaging.package_measures import (
    MeasurePackagingOptions,
    MeasurePackagingResult,
    PackageMeasures,
    PackagingStatus,
)

__all__ = [
    "MeasurePackage",
    "MeasurePackagingOptions",
    "MeasurePackagingResult",
    "PackageMeasure",
    "PackageMeasures",
    "PackagingStatus",
    "PathResolutionPolicy",
    "filter_measure_paths",
    "get_measure_paths",
]
