"""Tests for bundle assembly and FHIR version contexts."""

from uuid import UUID

import pytest

from cqf_tooling.fhir import BundleBuilder, BundleType, FhirVersion
from cqf_tooling.fhir.bundle_builder import (
    allowed_bundle_types,
    is_bundle_type_allowed,
    resolve_bundle_type,
)


class TestBundleTypes:
    """Tests for the bundle type allow-list."""

    def test_allowed_types(self) -> None:
        """Test only collection and transaction are allowed."""
        assert allowed_bundle_types() == ["collection", "transaction"]

    @pytest.mark.parametrize("bundle_type", ["collection", "TRANSACTION", " Collection "])
    def test_allowed_case_insensitive(self, bundle_type: str) -> None:
        """Test allowed types match regardless of case and whitespace."""
        assert is_bundle_type_allowed(bundle_type)

    @pytest.mark.parametrize("bundle_type", ["batch", "searchset", "", None])
    def test_not_allowed(self, bundle_type: str | None) -> None:
        """Test other bundle types are rejected."""
        assert not is_bundle_type_allowed(bundle_type)
        assert resolve_bundle_type(bundle_type) is None

    def test_resolve(self) -> None:
        """Test names resolve to BundleType members."""
        assert resolve_bundle_type("Transaction") is BundleType.TRANSACTION


class TestBundleBuilder:
    """Tests for BundleBuilder."""

    def test_collection_entries(self) -> None:
        """Test collection entries carry a fullUrl and keep their order."""
        builder = BundleBuilder(BundleType.COLLECTION)
        builder.add_collection_entry({"resourceType": "Patient", "id": "p1"})
        builder.add_collection_entry({"resourceType": "Basic"})

        bundle = builder.build("bundle-1")

        assert bundle["resourceType"] == "Bundle"
        assert bundle["id"] == "bundle-1"
        assert bundle["type"] == "collection"
        assert bundle["entry"] == [
            {"fullUrl": "Patient/p1", "resource": {"resourceType": "Patient", "id": "p1"}},
            {"resource": {"resourceType": "Basic"}},
        ]

    def test_transaction_update_entry(self) -> None:
        """Test resources with an id become PUT entries."""
        builder = BundleBuilder(BundleType.TRANSACTION)
        builder.add_transaction_update_entry({"resourceType": "Library", "id": "lib"})

        entry = builder.build()["entry"][0]

        assert entry["fullUrl"] == "Library/lib"
        assert entry["request"] == {"method": "PUT", "url": "Library/lib"}

    def test_transaction_entry_without_id(self) -> None:
        """Test resources without an id become POST entries with a urn:uuid."""
        builder = BundleBuilder(BundleType.TRANSACTION)
        builder.add_transaction_update_entry({"resourceType": "Basic"})

        entry = builder.build()["entry"][0]

        assert entry["request"] == {"method": "POST", "url": "Basic"}
        assert entry["fullUrl"].startswith("urn:uuid:")
        UUID(entry["fullUrl"].removeprefix("urn:uuid:"))

    def test_generated_id(self) -> None:
        """Test a bundle without an id gets a UUID."""
        bundle = BundleBuilder(BundleType.TRANSACTION).build()

        UUID(bundle["id"])
        assert bundle["entry"] == []


class TestFhirVersion:
    """Tests for FhirVersion."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("r4", FhirVersion.R4), ("R5", FhirVersion.R5), ("4.0.1", FhirVersion.R4)],
    )
    def test_parse(self, value: str, expected: FhirVersion) -> None:
        """Test labels and version strings resolve."""
        assert FhirVersion.parse(value) is expected

    def test_parse_unknown(self) -> None:
        """Test unknown versions are rejected."""
        with pytest.raises(ValueError, match="Unknown FHIR version"):
            FhirVersion.parse("r6")

    def test_resource_types(self) -> None:
        """Test resource type registries differ between revisions."""
        assert FhirVersion.R5.is_resource_type("DeviceUsage")
        assert not FhirVersion.R4.is_resource_type("DeviceUsage")
        assert FhirVersion.R4.is_resource_type("DeviceUseStatement")
        assert not FhirVersion.R4.is_resource_type(None)
