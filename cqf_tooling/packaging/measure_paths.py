"""
Measure resource discovery and target-path filtering.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable

from cqf_tooling.exceptions import ResourceDirectoryError, ResourceParseError
from cqf_tooling.fhir.io import Encoding, get_file_paths, read_resource
from cqf_tooling.fhir.versions import FhirVersion

logger = logging.getLogger(__name__)

# IG layout relative to the IG root
RESOURCES_DIR = Path("input") / "resources"
MEASURE_RESOURCES_DIR = RESOURCES_DIR / "measure"
LIBRARY_RESOURCES_DIR = RESOURCES_DIR / "library"

PathResolver = Callable[[str | Path], Path]


class PathResolutionPolicy(str, Enum):
    """What to do when the target path cannot be canonicalized."""

    FAIL_OPEN = "fail-open"  # warn and treat every measure as eligible
    STRICT = "strict"  # raise ResourceDirectoryError


def canonical_path(path: str | Path) -> Path:
    """Absolute path with symlinks and ``..`` resolved."""
    return Path(path).resolve()


def get_measure_paths(ig_root: str | Path, fhir_version: FhirVersion) -> list[Path]:
    """
    Find every Measure resource file under ``<ig_root>/input/resources/measure``.

    Args:
        ig_root: Implementation Guide root directory
        fhir_version: Revision the Measure resources conform to

    Returns:
        Sorted paths of the files whose resourceType is Measure
    """
    measure_dir = Path(ig_root) / MEASURE_RESOURCES_DIR
    if not measure_dir.is_dir():
        logger.warning("No Measure directory found at %s", measure_dir)
        return []

    measure_paths: list[Path] = []
    for path in get_file_paths(measure_dir, recursive=True):
        if Encoding.from_path(path) is None:
            continue
        try:
            resource = read_resource(path)
        except ResourceParseError as e:
            logger.debug("Skipping %s: %s", path, e)
            continue
        if resource.get("resourceType") == "Measure":
            measure_paths.append(path)

    logger.info(
        "Found %d FHIR %s Measure file(s) in %s",
        len(measure_paths),
        fhir_version.label,
        measure_dir,
    )
    return measure_paths


def filter_measure_paths(
    measure_paths: Iterable[Path],
    measure_to_package_path: str | Path | None,
    on_resolve_error: PathResolutionPolicy = PathResolutionPolicy.FAIL_OPEN,
    resolve: PathResolver = canonical_path,
) -> list[Path]:
    """
    Narrow measure paths to those matching a target file or directory.

    - No target: every path is eligible.
    - Target is a directory: paths equal to it or located under it.
      Matching is per path component, so ``a/bb`` is not under ``a/b``.
    - Target is a file: paths equal to it.

    Args:
        measure_paths: Candidate Measure resource files
        measure_to_package_path: Target file or directory, or None
        on_resolve_error: Policy when the target cannot be canonicalized
        resolve: Canonicalization function

    Returns:
        Eligible paths, in input order

    Raises:
        ResourceDirectoryError: If the target cannot be resolved and the
            policy is STRICT
    """
    paths = list(measure_paths)
    if not measure_to_package_path:
        return paths

    try:
        target = resolve(measure_to_package_path)
    except (OSError, RuntimeError) as e:
        if on_resolve_error is PathResolutionPolicy.STRICT:
            raise ResourceDirectoryError(
                f"Error resolving measure path {measure_to_package_path}: {e}"
            ) from e
        logger.warning("Error resolving measure path: %s. Packaging all Measures.", e)
        return paths

    target_is_dir = target.is_dir()
    eligible: list[Path] = []
    for path in paths:
        try:
            candidate = resolve(path)
        except (OSError, RuntimeError) as e:
            logger.debug("Could not resolve %s: %s", path, e)
            continue

        if target_is_dir:
            matches = candidate == target or candidate.is_relative_to(target)
        else:
            matches = candidate == target

        if matches:
            eligible.append(path)

    return eligible
