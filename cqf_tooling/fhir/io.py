"""
Resource file I/O.

Enumerates resource files, parses them into JSON-shaped resources and
serializes resources back to disk as JSON or XML.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from cqf_tooling.exceptions import ResourceDirectoryError, ResourceParseError
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.fhir.xml_codec import resource_to_xml, xml_to_resource

logger = logging.getLogger(__name__)


class Encoding(str, Enum):
    """Supported resource text encodings."""

    JSON = "json"
    XML = "xml"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @classmethod
    def parse(cls, value: str) -> "Encoding":
        """
        Resolve an encoding name case-insensitively.

        Raises:
            ValueError: If the name is not a supported encoding
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unsupported encoding: {value}. "
                f"Allowed encodings {{ {', '.join(e.value for e in cls)} }}"
            ) from None

    @classmethod
    def from_path(cls, path: Path) -> "Encoding | None":
        """Infer the encoding from a file extension, or None if unknown."""
        suffix = path.suffix.lower()
        for encoding in cls:
            if encoding.extension == suffix:
                return encoding
        return None


def get_file_paths(directory: str | Path, recursive: bool = True) -> list[Path]:
    """
    List the files in a directory.

    Paths are sorted so discovery order is stable across platforms.

    Raises:
        ResourceDirectoryError: If the path is not a directory
    """
    root = Path(directory)
    if not root.is_dir():
        raise ResourceDirectoryError(f"The path [{directory}] is not a directory")

    candidates = root.rglob("*") if recursive else root.iterdir()
    return sorted(p for p in candidates if p.is_file())


def parse_resource(content: str | bytes, encoding: Encoding) -> dict[str, Any]:
    """
    Parse resource text in the given encoding.

    Raises:
        ResourceParseError: If the content is not a FHIR resource
    """
    if encoding is Encoding.XML:
        return xml_to_resource(content)

    try:
        resource = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ResourceParseError(f"Invalid JSON: {e}") from e

    if not isinstance(resource, dict) or not isinstance(
        resource.get("resourceType"), str
    ):
        raise ResourceParseError("Content is not a FHIR resource: missing resourceType")
    return resource


def as_list(value: Any) -> list[Any]:
    """
    Ensure a 0..* element is a list.

    Resources read from XML carry a single occurrence as a bare value.
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def read_resource(path: str | Path) -> dict[str, Any]:
    """
    Read a single resource file, inferring the encoding from its extension.

    Raises:
        ResourceParseError: If the file has an unknown extension or does not parse
    """
    file_path = Path(path)
    encoding = Encoding.from_path(file_path)
    if encoding is None:
        raise ResourceParseError(f"Unsupported resource file extension: {file_path}")

    try:
        content = file_path.read_bytes()
    except OSError as e:
        raise ResourceParseError(f"Could not read {file_path}: {e}") from e

    try:
        return parse_resource(content, encoding)
    except ResourceParseError as e:
        raise ResourceParseError(f"{file_path}: {e}") from e


def read_resources(
    paths: Iterable[Path], fhir_version: FhirVersion
) -> list[dict[str, Any]]:
    """
    Read resource files in the context of a FHIR revision.

    Files that do not parse, and resources whose type the revision does not
    define, are skipped.

    Args:
        paths: Candidate resource files, read in order
        fhir_version: Revision the resources are expected to conform to

    Returns:
        The parsed resources in input order
    """
    resources: list[dict[str, Any]] = []
    for path in paths:
        try:
            resource = read_resource(path)
        except ResourceParseError as e:
            logger.debug("Skipping %s: %s", path, e)
            continue

        resource_type = resource.get("resourceType")
        if not fhir_version.is_resource_type(resource_type):
            logger.warning(
                "Skipping %s: %s is not a FHIR %s resource type",
                path,
                resource_type,
                fhir_version.label,
            )
            continue

        resources.append(resource)

    logger.info(
        "Read %d %s resource(s)", len(resources), fhir_version.label
    )
    return resources


def encode_resource(
    resource: dict[str, Any], encoding: Encoding, pretty: bool = True
) -> str:
    """Serialize a resource to text."""
    if encoding is Encoding.XML:
        return resource_to_xml(resource, pretty=pretty)
    if pretty:
        return json.dumps(resource, indent=2, ensure_ascii=False) + "\n"
    return json.dumps(resource, separators=(",", ":"), ensure_ascii=False)


def write_resource(
    resource: dict[str, Any],
    output_path: str | Path,
    encoding: Encoding,
    pretty: bool = True,
    file_name: str | None = None,
) -> Path:
    """
    Write a resource to ``<output_path>/<file_name>.<ext>``.

    The output directory is created if needed. ``file_name`` defaults to
    ``<resourceType>-<id>``.

    Returns:
        Path of the written file
    """
    directory = Path(output_path)
    directory.mkdir(parents=True, exist_ok=True)

    if not file_name:
        file_name = f"{resource.get('resourceType')}-{resource.get('id', 'unknown')}"

    target = directory / f"{file_name}{encoding.extension}"
    target.write_text(encode_resource(resource, encoding, pretty), encoding="utf-8")

    logger.info("Wrote %s", target)
    return target
