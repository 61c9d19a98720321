"""
PackageMeasures operation.

Locates the Measure resources of an Implementation Guide, optionally narrows
them to a target file or directory, and packages each one independently.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from cqf_tooling.exceptions import UnsupportedOperationError
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.packaging.measure_paths import (
    PathResolutionPolicy,
    filter_measure_paths,
    get_measure_paths,
)
from cqf_tooling.packaging.package_measure import (
    MeasurePackage,
    PackageMeasure,
    load_library_index,
    load_value_set_index,
)
from cqf_tooling.services.fhir_server_service import FhirServerService

logger = logging.getLogger(__name__)


class MeasurePackagingOptions(BaseModel):
    """Immutable options for a PackageMeasures run."""

    model_config = ConfigDict(frozen=True)

    ig_root: Path
    fhir_version: FhirVersion = FhirVersion.R4
    measure_to_package_path: Path | None = None
    include_dependencies: bool = False
    include_terminology: bool = False
    include_tests: bool = False
    fhir_server_url: str | None = None


class PackagingStatus(str, Enum):
    """Outcome of a packaging run."""

    PACKAGED = "packaged"
    NO_MATCH = "no-match"


@dataclass
class MeasurePackagingResult:
    """Result of a packaging run."""

    status: PackagingStatus
    packages: list[MeasurePackage] = field(default_factory=list)


class PackageMeasures:
    """Packages every eligible Measure of an IG."""

    def __init__(
        self,
        options: MeasurePackagingOptions,
        on_resolve_error: PathResolutionPolicy = PathResolutionPolicy.FAIL_OPEN,
        fhir_server: FhirServerService | None = None,
    ):
        self.options = options
        self.on_resolve_error = on_resolve_error
        self._fhir_server = fhir_server

    def run(self) -> MeasurePackagingResult:
        """
        Package the eligible Measures.

        Returns:
            MeasurePackagingResult; NO_MATCH when the filter leaves nothing

        Raises:
            UnsupportedOperationError: If the FHIR version is not R4
        """
        fhir_version = self.options.fhir_version
        if fhir_version is not FhirVersion.R4:
            raise UnsupportedOperationError(
                "Package operation for Measure resources is not supported "
                f"for FHIR version: {fhir_version.value}"
            )

        measure_paths = get_measure_paths(self.options.ig_root, fhir_version)
        filtered_paths = filter_measure_paths(
            measure_paths,
            self.options.measure_to_package_path,
            on_resolve_error=self.on_resolve_error,
        )

        if not filtered_paths:
            logger.warning(
                "No Measure resources matched the path: %s",
                self.options.measure_to_package_path,
            )
            return MeasurePackagingResult(status=PackagingStatus.NO_MATCH)

        # Shared by every Measure of the run
        libraries = load_library_index(self.options.ig_root)
        value_sets = (
            load_value_set_index(self.options.ig_root)
            if self.options.include_terminology
            else None
        )

        packages = [
            PackageMeasure(
                self.options.ig_root,
                fhir_version,
                path,
                self.options.include_dependencies,
                self.options.include_terminology,
                self.options.include_tests,
                self.options.fhir_server_url,
                fhir_server=self._fhir_server,
                libraries=libraries,
                value_sets=value_sets,
            ).package_artifact()
            for path in filtered_paths
        ]

        logger.info("Packaged %d Measure(s)", len(packages))
        return MeasurePackagingResult(status=PackagingStatus.PACKAGED, packages=packages)
