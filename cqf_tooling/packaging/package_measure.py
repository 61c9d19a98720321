"""
Packages a single FHIR R4 Measure with its dependencies.

The package is a transaction bundle written to
``<ig_root>/bundles/measure/<MeasureName>/<MeasureName>-bundle.json`` holding:
- the Measure
- its primary Library
- Libraries it depends on, transitively (include_dependencies)
- ValueSets referenced by those Libraries (include_terminology)
- test case resources from ``input/tests/measure/<MeasureName>`` (include_tests)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import httpx

from cqf_tooling.fhir.bundle_builder import BundleBuilder, BundleType
from cqf_tooling.fhir.io import (
    Encoding,
    as_list,
    get_file_paths,
    read_resource,
    read_resources,
    write_resource,
)
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.packaging.measure_paths import LIBRARY_RESOURCES_DIR
from cqf_tooling.services.fhir_server_service import FhirServerService
from cqf_tooling.settings import settings

logger = logging.getLogger(__name__)

VALUE_SET_DIR = Path("input") / "vocabulary" / "valueset"
MEASURE_TESTS_DIR = Path("input") / "tests" / "measure"
MEASURE_BUNDLES_DIR = Path("bundles") / "measure"


@dataclass
class MeasurePackage:
    """Result of packaging one Measure."""

    measure_name: str
    output_path: Path
    resource_count: int
    warnings: list[str] = field(default_factory=list)


class CanonicalIndex:
    """Resources of one type, addressable by canonical url, url|version or id."""

    def __init__(self, resources: list[dict[str, Any]]):
        self._by_key: dict[str, dict[str, Any]] = {}
        for resource in resources:
            url = resource.get("url")
            if url:
                self._by_key.setdefault(url, resource)
                if resource.get("version"):
                    self._by_key.setdefault(f"{url}|{resource['version']}", resource)
            if resource.get("id"):
                self._by_key.setdefault(resource["id"], resource)

    def find(self, canonical: str) -> dict[str, Any] | None:
        """Find by exact canonical, then by url without version, then by id."""
        if canonical in self._by_key:
            return self._by_key[canonical]
        url = canonical.split("|", 1)[0]
        if url in self._by_key:
            return self._by_key[url]
        return self._by_key.get(url.rstrip("/").rsplit("/", 1)[-1])


def load_index(directory: Path, resource_type: str) -> CanonicalIndex:
    """Index every ``resource_type`` resource under ``directory``."""
    if not directory.is_dir():
        return CanonicalIndex([])
    resources = read_resources(get_file_paths(directory), FhirVersion.R4)
    return CanonicalIndex(
        [r for r in resources if r.get("resourceType") == resource_type]
    )


def load_library_index(ig_root: str | Path) -> CanonicalIndex:
    """Libraries under ``input/resources/library``."""
    return load_index(Path(ig_root) / LIBRARY_RESOURCES_DIR, "Library")


def load_value_set_index(ig_root: str | Path) -> CanonicalIndex:
    """ValueSets under ``input/vocabulary/valueset``."""
    return load_index(Path(ig_root) / VALUE_SET_DIR, "ValueSet")


class PackageMeasure:
    """Packages one Measure resource file."""

    def __init__(
        self,
        ig_root: str | Path,
        fhir_version: FhirVersion,
        measure_path: str | Path,
        include_dependencies: bool,
        include_terminology: bool,
        include_tests: bool,
        fhir_server_url: str | None = None,
        fhir_server: FhirServerService | None = None,
        libraries: CanonicalIndex | None = None,
        value_sets: CanonicalIndex | None = None,
    ):
        self.ig_root = Path(ig_root)
        self.fhir_version = fhir_version
        self.measure_path = Path(measure_path)
        self.include_dependencies = include_dependencies
        self.include_terminology = include_terminology
        self.include_tests = include_tests
        self.fhir_server_url = fhir_server_url
        self._fhir_server = fhir_server
        self._owns_server = False
        self._libraries = libraries
        self._value_sets = value_sets
        self._warnings: list[str] = []

    def package_artifact(self) -> MeasurePackage:
        """
        Build and write the Measure package.

        Returns:
            MeasurePackage describing the written bundle

        Raises:
            ResourceParseError: If the Measure file cannot be read
        """
        self._warnings = []
        measure = read_resource(self.measure_path)
        measure_name = _artifact_name(measure, self.measure_path)
        logger.info("Packaging Measure %s from %s", measure_name, self.measure_path)

        if self._libraries is None:
            self._libraries = load_library_index(self.ig_root)
        libraries = self._libraries
        package: list[dict[str, Any]] = [measure]

        primary_libraries = []
        for canonical in as_list(measure.get("library")):
            library = libraries.find(canonical)
            if library is None:
                self._warn(f"Library {canonical} for Measure {measure_name} not found")
                continue
            primary_libraries.append(library)

        package.extend(primary_libraries)

        if self.include_dependencies:
            package.extend(self._library_dependencies(primary_libraries, libraries))

        if self.include_terminology:
            library_resources = [r for r in package if r["resourceType"] == "Library"]
            try:
                package.extend(self._terminology(library_resources))
            finally:
                self._close_server()

        if self.include_tests:
            package.extend(self._tests(measure_name))

        builder = BundleBuilder(BundleType.TRANSACTION)
        for resource in _deduplicate(package):
            builder.add_transaction_update_entry(resource)
        bundle = builder.build(f"{measure_name}-bundle")

        output_dir = self.ig_root / MEASURE_BUNDLES_DIR / measure_name
        output_path = write_resource(
            bundle,
            output_dir,
            Encoding.JSON,
            pretty=settings.pretty_print,
            file_name=f"{measure_name}-bundle",
        )

        return MeasurePackage(
            measure_name=measure_name,
            output_path=output_path,
            resource_count=len(bundle["entry"]),
            warnings=list(self._warnings),
        )

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self._warnings.append(message)

    def _library_dependencies(
        self, roots: list[dict[str, Any]], libraries: CanonicalIndex
    ) -> list[dict[str, Any]]:
        """Libraries the roots depend on, transitively, excluding the roots."""
        seen = {id(library) for library in roots}
        dependencies: list[dict[str, Any]] = []
        pending = list(roots)

        while pending:
            library = pending.pop(0)
            for canonical in _depends_on(library, "Library"):
                dependency = libraries.find(canonical)
                if dependency is None:
                    self._warn(f"Library dependency {canonical} not found")
                    continue
                if id(dependency) in seen:
                    continue
                seen.add(id(dependency))
                dependencies.append(dependency)
                pending.append(dependency)

        return dependencies

    def _terminology(self, libraries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """ValueSets referenced by the libraries, local first then the FHIR server."""
        if self._value_sets is None:
            self._value_sets = load_value_set_index(self.ig_root)
        value_sets = self._value_sets
        found: list[dict[str, Any]] = []
        canonicals: list[str] = []
        for library in libraries:
            for canonical in _value_set_references(library):
                if canonical not in canonicals:
                    canonicals.append(canonical)

        for canonical in canonicals:
            value_set = value_sets.find(canonical) or self._fetch_value_set(canonical)
            if value_set is None:
                self._warn(f"ValueSet {canonical} not found")
                continue
            found.append(value_set)

        return found

    def _fetch_value_set(self, canonical: str) -> dict[str, Any] | None:
        server = self._server()
        if server is None:
            return None
        try:
            return server.search_by_canonical("ValueSet", canonical)
        except httpx.HTTPError as e:
            self._warn(f"Error fetching ValueSet {canonical} from {server.base_url}: {e}")
            return None

    def _server(self) -> FhirServerService | None:
        if self._fhir_server is None and self.fhir_server_url:
            self._fhir_server = FhirServerService(self.fhir_server_url)
            self._owns_server = True
        return self._fhir_server

    def _close_server(self) -> None:
        if self._owns_server and self._fhir_server is not None:
            self._fhir_server.close()
            self._fhir_server = None
            self._owns_server = False

    def _tests(self, measure_name: str) -> list[dict[str, Any]]:
        tests_dir = self.ig_root / MEASURE_TESTS_DIR / measure_name
        if not tests_dir.is_dir():
            self._warn(f"No tests found for Measure {measure_name} in {tests_dir}")
            return []

        resources: list[dict[str, Any]] = []
        for resource in read_resources(get_file_paths(tests_dir), self.fhir_version):
            if resource["resourceType"] == "Bundle":
                resources.extend(
                    e["resource"] for e in as_list(resource.get("entry")) if "resource" in e
                )
            else:
                resources.append(resource)
        return resources


def _artifact_name(resource: dict[str, Any], path: Path) -> str:
    name = resource.get("name") or resource.get("id") or path.stem
    return str(name)


def _depends_on(library: dict[str, Any], resource_type: str) -> Iterator[str]:
    """Canonicals of ``resource_type`` in the library's depends-on artifacts."""
    for artifact in as_list(library.get("relatedArtifact")):
        canonical = artifact.get("resource")
        if artifact.get("type") != "depends-on" or not canonical:
            continue
        if f"/{resource_type}/" in canonical:
            yield canonical


def _value_set_references(library: dict[str, Any]) -> Iterator[str]:
    yield from _depends_on(library, "ValueSet")
    for data_requirement in as_list(library.get("dataRequirement")):
        for code_filter in as_list(data_requirement.get("codeFilter")):
            if code_filter.get("valueSet"):
                yield code_filter["valueSet"]


def _deduplicate(resources: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop repeated resources, keyed by type and id, keeping the first."""
    seen: set[tuple[str, str]] = set()
    unique: list[dict[str, Any]] = []
    for resource in resources:
        resource_id = resource.get("id")
        if resource_id:
            key = (resource["resourceType"], resource_id)
            if key in seen:
                continue
            seen.add(key)
        unique.append(resource)
    return unique
