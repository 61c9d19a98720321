"""Tests for resource file I/O."""

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from cqf_tooling.exceptions import ResourceDirectoryError, ResourceParseError
from cqf_tooling.fhir import FhirVersion
from cqf_tooling.fhir.io import (
    Encoding,
    get_file_paths,
    parse_resource,
    read_resource,
    read_resources,
    write_resource,
)


class TestEncoding:
    """Tests for Encoding parsing."""

    def test_parse_is_case_insensitive(self) -> None:
        """Test encodings are matched regardless of case."""
        assert Encoding.parse("JSON") is Encoding.JSON
        assert Encoding.parse("xml") is Encoding.XML

    def test_parse_unsupported(self) -> None:
        """Test the error lists the allowed encodings."""
        with pytest.raises(ValueError, match=r"Allowed encodings \{ json, xml \}"):
            Encoding.parse("turtle")

    def test_from_path(self) -> None:
        """Test encodings are inferred from file extensions."""
        assert Encoding.from_path(Path("a/b.JSON")) is Encoding.JSON
        assert Encoding.from_path(Path("a/b.xml")) is Encoding.XML
        assert Encoding.from_path(Path("a/b.txt")) is None


class TestGetFilePaths:
    """Tests for get_file_paths."""

    def test_recursive_and_sorted(self, tmp_path: Path) -> None:
        """Test files are found in subdirectories, in sorted order."""
        (tmp_path / "sub").mkdir()
        (tmp_path / "b.json").write_text("{}")
        (tmp_path / "a.json").write_text("{}")
        (tmp_path / "sub" / "c.json").write_text("{}")

        paths = get_file_paths(tmp_path)

        assert paths == [
            tmp_path / "a.json",
            tmp_path / "b.json",
            tmp_path / "sub" / "c.json",
        ]

    def test_not_recursive(self, tmp_path: Path) -> None:
        """Test subdirectories are skipped when not recursive."""
        (tmp_path / "sub").mkdir()
        (tmp_path / "a.json").write_text("{}")
        (tmp_path / "sub" / "c.json").write_text("{}")

        assert get_file_paths(tmp_path, recursive=False) == [tmp_path / "a.json"]

    def test_not_a_directory(self, tmp_path: Path) -> None:
        """Test a missing directory raises."""
        with pytest.raises(ResourceDirectoryError):
            get_file_paths(tmp_path / "missing")


class TestReadResources:
    """Tests for parsing and reading resources."""

    def test_parse_json_requires_resource_type(self) -> None:
        """Test JSON without a resourceType is rejected."""
        with pytest.raises(ResourceParseError):
            parse_resource('{"id": "x"}', Encoding.JSON)

    def test_parse_invalid_json(self) -> None:
        """Test malformed JSON is rejected."""
        with pytest.raises(ResourceParseError, match="Invalid JSON"):
            parse_resource("{not json", Encoding.JSON)

    def test_read_resource_unknown_extension(self, tmp_path: Path) -> None:
        """Test files with an unknown extension are rejected."""
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        with pytest.raises(ResourceParseError, match="Unsupported resource file extension"):
            read_resource(path)

    def test_read_resources_skips_unparseable_files(
        self, tmp_path: Path, r5_code_system: dict[str, Any]
    ) -> None:
        """Test files that do not parse are skipped."""
        good = tmp_path / "good.json"
        good.write_text(json.dumps(r5_code_system))
        bad = tmp_path / "bad.json"
        bad.write_text("{broken")
        readme = tmp_path / "README.md"
        readme.write_text("# resources")

        resources = read_resources([bad, good, readme], FhirVersion.R5)

        assert [r["id"] for r in resources] == ["example-codes"]

    def test_read_resources_skips_other_revisions(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test resources the revision does not define are skipped with a warning."""
        path = tmp_path / "media.json"
        path.write_text(json.dumps({"resourceType": "Media", "id": "m"}))

        with caplog.at_level(logging.WARNING):
            resources = read_resources([path], FhirVersion.R5)

        assert resources == []
        assert "Media is not a FHIR R5 resource type" in caplog.text


class TestWriteResource:
    """Tests for write_resource."""

    def test_write_json_creates_directory(self, tmp_path: Path) -> None:
        """Test the output directory is created and the file is named."""
        resource = {"resourceType": "Patient", "id": "p1"}

        path = write_resource(resource, tmp_path / "out" / "nested", Encoding.JSON)

        assert path == tmp_path / "out" / "nested" / "Patient-p1.json"
        assert json.loads(path.read_text()) == resource

    def test_write_with_file_name(self, tmp_path: Path) -> None:
        """Test an explicit file name is used with the encoding's extension."""
        resource = {"resourceType": "Patient", "id": "p1"}

        path = write_resource(resource, tmp_path, Encoding.XML, file_name="patient")

        assert path.name == "patient.xml"
        assert read_resource(path) == resource

    def test_compact_json(self, tmp_path: Path) -> None:
        """Test compact output has no whitespace."""
        resource = {"resourceType": "Patient", "id": "p1"}

        path = write_resource(resource, tmp_path, Encoding.JSON, pretty=False)

        assert path.read_text() == '{"resourceType":"Patient","id":"p1"}'
