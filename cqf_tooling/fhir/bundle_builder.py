"""Bundle assembly for converted resources."""

from enum import Enum
from typing import Any
from uuid import uuid4


class BundleType(str, Enum):
    """Bundle types the tooling can produce."""

    COLLECTION = "collection"
    TRANSACTION = "transaction"


ALLOWED_BUNDLE_TYPES = [BundleType.COLLECTION, BundleType.TRANSACTION]


def allowed_bundle_types() -> list[str]:
    return [bundle_type.value for bundle_type in ALLOWED_BUNDLE_TYPES]


def is_bundle_type_allowed(bundle_type: str | None) -> bool:
    """Case-insensitive allow-list check."""
    if bundle_type is None:
        return False
    return bundle_type.strip().lower() in allowed_bundle_types()


def resolve_bundle_type(bundle_type: str | None) -> BundleType | None:
    """Resolve a bundle type name, or None if it is not an allowed type."""
    if not is_bundle_type_allowed(bundle_type):
        return None
    return BundleType(bundle_type.strip().lower())  # type: ignore[union-attr]


class BundleBuilder:
    """
    Builds a FHIR Bundle one entry at a time.

    Entries keep the order they are added in.
    """

    def __init__(self, bundle_type: BundleType):
        self.bundle_type = bundle_type
        self._entries: list[dict[str, Any]] = []

    def add_collection_entry(self, resource: dict[str, Any]) -> None:
        """Add a plain entry carrying the resource."""
        entry: dict[str, Any] = {}
        full_url = _full_url(resource)
        if full_url:
            entry["fullUrl"] = full_url
        entry["resource"] = resource
        self._entries.append(entry)

    def add_transaction_update_entry(self, resource: dict[str, Any]) -> None:
        """
        Add an update (upsert) entry: ``PUT <Type>/<id>``.

        Resources without an id cannot be upserted and are added as a
        ``POST`` with a ``urn:uuid`` fullUrl instead.
        """
        resource_type = resource.get("resourceType")
        resource_id = resource.get("id")

        if resource_id:
            entry = {
                "fullUrl": _full_url(resource),
                "resource": resource,
                "request": {"method": "PUT", "url": f"{resource_type}/{resource_id}"},
            }
        else:
            entry = {
                "fullUrl": f"urn:uuid:{uuid4()}",
                "resource": resource,
                "request": {"method": "POST", "url": resource_type},
            }
        self._entries.append(entry)

    def build(self, bundle_id: str | None = None) -> dict[str, Any]:
        """Assemble the bundle with the given id (a fresh UUID if None)."""
        return {
            "resourceType": "Bundle",
            "id": bundle_id or str(uuid4()),
            "type": self.bundle_type.value,
            "entry": list(self._entries),
        }


def _full_url(resource: dict[str, Any]) -> str | None:
    resource_type = resource.get("resourceType")
    resource_id = resource.get("id")
    if not resource_id:
        return None
    return f"{resource_type}/{resource_id}"
