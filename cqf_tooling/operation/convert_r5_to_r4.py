"""
ConvertR5toR4 operation.

Reads every FHIR R5 resource file in a directory, converts each to FHIR R4
and writes them as a single R4 Bundle.

Usage:
    cqf-tooling ConvertR5toR4 -ptd=path/to/r5/resources -e=json -bt=collection
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from cqf_tooling.exceptions import InvalidArgumentError, ResourceDirectoryError
from cqf_tooling.fhir.bundle_builder import (
    BundleBuilder,
    BundleType,
    allowed_bundle_types,
    is_bundle_type_allowed,
    resolve_bundle_type,
)
from cqf_tooling.fhir.io import Encoding, get_file_paths, read_resources, write_resource
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.settings import settings
from cqf_tooling.transform.r5_to_r4 import transform_resource

logger = logging.getLogger(__name__)

OPERATION_NAME = "ConvertR5toR4"

# Normalized flag -> ConvertOptions field
FLAG_ALIASES = {
    "bundleid": "bundle_id",
    "bid": "bundle_id",
    "bundletype": "bundle_type",
    "bt": "bundle_type",
    "encoding": "encoding",
    "e": "encoding",
    "outputfilename": "output_file_name",
    "ofn": "output_file_name",
    "outputpath": "output_path",
    "op": "output_path",
    "pathtodir": "path_to_directory",
    "ptd": "path_to_directory",
}


class ConvertOptions(BaseModel):
    """Validated, immutable options for a ConvertR5toR4 run."""

    model_config = ConfigDict(frozen=True)

    path_to_directory: Path
    output_path: Path = Field(default_factory=lambda: Path(settings.convert_output_path))
    bundle_id: str = Field(default_factory=lambda: str(uuid4()))
    # Resolved to a BundleType when the run starts
    bundle_type: str = BundleType.TRANSACTION.value
    encoding: Encoding = Encoding.JSON
    output_file_name: str | None = None

    @property
    def file_name(self) -> str:
        """Output base name: the configured file name, else the bundle id."""
        return self.output_file_name or self.bundle_id


class ConversionStatus(str, Enum):
    """Outcome of a conversion run."""

    WRITTEN = "written"
    SKIPPED = "skipped"


@dataclass
class ConversionResult:
    """Result of a conversion run."""

    status: ConversionStatus
    output_path: Path | None = None
    entry_count: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def produced_output(self) -> bool:
        return self.status is ConversionStatus.WRITTEN


def parse_convert_args(args: Sequence[str]) -> ConvertOptions:
    """
    Parse ``-flag=value`` tokens into validated options.

    Flags are matched case-insensitively; the operation token
    ``-ConvertR5toR4`` is ignored.

    Raises:
        InvalidArgumentError: Malformed token, unknown flag, missing path,
            or disallowed encoding or bundle type
        ResourceDirectoryError: The path is not a directory or is empty
    """
    values: dict[str, str] = {}
    for arg in args:
        if arg.lstrip("-").lower() == OPERATION_NAME.lower():
            continue

        flag, separator, value = arg.partition("=")
        if not separator or not value:
            raise InvalidArgumentError(f"Invalid argument: {arg}")

        option = FLAG_ALIASES.get(flag.replace("-", "").lower())
        if option is None:
            raise InvalidArgumentError(f"Unknown flag: {flag}")
        values[option] = value

    encoding = validate_encoding(values.get("encoding"))
    bundle_type = validate_bundle_type(
        values.get("bundle_type", BundleType.TRANSACTION.value)
    )
    path_to_directory = validate_path_to_directory(values.get("path_to_directory"))

    options: dict[str, Any] = {
        "path_to_directory": path_to_directory,
        "bundle_type": bundle_type,
        "encoding": encoding,
    }
    for name in ("bundle_id", "output_file_name", "output_path"):
        if name in values:
            options[name] = values[name]

    return ConvertOptions(**options)


def validate_encoding(encoding: str | None) -> Encoding:
    """Resolve the encoding, defaulting to JSON when unset or empty."""
    if not encoding:
        return Encoding.JSON
    try:
        return Encoding.parse(encoding)
    except ValueError as e:
        raise InvalidArgumentError(str(e)) from e


def validate_bundle_type(bundle_type: str | None) -> str:
    """Check the bundle type against the allow-list and normalize its case."""
    if bundle_type is None:
        raise InvalidArgumentError("BundleType cannot be null")
    if not is_bundle_type_allowed(bundle_type):
        raise InvalidArgumentError(_invalid_bundle_type_message(bundle_type))
    return bundle_type.strip().lower()


def validate_path_to_directory(path_to_directory: str | None) -> Path:
    """
    Check the source directory exists and has at least one entry.

    Raises:
        InvalidArgumentError: If no path was given
        ResourceDirectoryError: If the path is not a directory or is empty
    """
    if path_to_directory is None:
        raise InvalidArgumentError(
            "The path to the resource directory is required (-pathtodir)"
        )

    resource_directory = Path(path_to_directory)
    if not resource_directory.is_dir():
        raise ResourceDirectoryError(
            f"The specified path [{path_to_directory}] to resource files is not a directory"
        )

    if not any(resource_directory.iterdir()):
        raise ResourceDirectoryError(
            f"The specified path [{path_to_directory}] to resource files is empty"
        )

    return resource_directory


def _invalid_bundle_type_message(bundle_type: str) -> str:
    return (
        f"The bundle type [{bundle_type}] is invalid. "
        f"Allowed Types: {', '.join(allowed_bundle_types())}"
    )


def convert_resources(
    bundle_id: str | None,
    bundle_type: BundleType,
    resources_to_convert: Sequence[dict[str, Any]],
) -> tuple[dict[str, Any], list[str]]:
    """
    Convert R5 resources to R4 and assemble them into a bundle.

    Args:
        bundle_id: Id for the bundle (a fresh UUID if None)
        bundle_type: Collection entries or transaction update entries
        resources_to_convert: FHIR R5 resources, in bundle order

    Returns:
        Tuple of (R4 Bundle, warnings)
    """
    warnings: list[str] = []
    builder = BundleBuilder(bundle_type)

    for resource in resources_to_convert:
        r4_resource = transform_resource(resource)
        if r4_resource is None:
            message = (
                f"Skipped {resource.get('resourceType')}/{resource.get('id')}: "
                "no FHIR R4 counterpart"
            )
            logger.warning(message)
            warnings.append(message)
            continue

        if bundle_type is BundleType.COLLECTION:
            builder.add_collection_entry(r4_resource)
        else:
            builder.add_transaction_update_entry(r4_resource)

    return builder.build(bundle_id), warnings


def convert_r5_to_r4(options: ConvertOptions) -> ConversionResult:
    """
    Run a conversion with validated options.

    Returns:
        ConversionResult. A bundle type that does not resolve produces a
        SKIPPED result and no file.
    """
    bundle_type = resolve_bundle_type(options.bundle_type)
    if bundle_type is None:
        logger.error("Invalid bundle type: %s", options.bundle_type)
        return ConversionResult(
            status=ConversionStatus.SKIPPED,
            warnings=[f"Invalid bundle type: {options.bundle_type}"],
        )

    paths = get_file_paths(options.path_to_directory, recursive=True)
    logger.info(
        "Converting %d file(s) from %s", len(paths), options.path_to_directory
    )
    resources = read_resources(paths, FhirVersion.R5)

    bundle, warnings = convert_resources(options.bundle_id, bundle_type, resources)

    output_file = write_resource(
        bundle,
        options.output_path,
        options.encoding,
        pretty=settings.pretty_print,
        file_name=options.file_name,
    )

    return ConversionResult(
        status=ConversionStatus.WRITTEN,
        output_path=output_file,
        entry_count=len(bundle["entry"]),
        warnings=warnings,
    )


class ConvertR5toR4:
    """Command line entry for the ConvertR5toR4 operation."""

    def execute(self, args: Sequence[str]) -> ConversionResult:
        options = parse_convert_args(args)
        result = convert_r5_to_r4(options)

        if result.produced_output:
            logger.info(
                "Wrote %s bundle with %d entries to %s",
                options.bundle_type,
                result.entry_count,
                result.output_path,
            )
        return result
