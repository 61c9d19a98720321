"""Test configuration and fixtures."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from cqf_tooling.settings import settings

WriteResource = Callable[[Path, dict[str, Any]], Path]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep default outputs inside the test's temporary directory."""
    monkeypatch.setattr(settings, "convert_output_path", str(tmp_path / "default-output"))
    monkeypatch.setattr(settings, "pretty_print", True)


@pytest.fixture
def write_json() -> WriteResource:
    """Write a resource as JSON to the given file path."""

    def _write(path: Path, resource: dict[str, Any]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(resource), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def r5_code_system() -> dict[str, Any]:
    """R5 CodeSystem using R5-only metadata elements."""
    return {
        "resourceType": "CodeSystem",
        "id": "example-codes",
        "url": "http://example.org/fhir/CodeSystem/example-codes",
        "version": "1.0.0",
        "versionAlgorithmString": "semver",
        "name": "ExampleCodes",
        "status": "active",
        "content": "complete",
        "concept": [
            {
                "code": "a",
                "display": "Alpha",
                "designation": [
                    {
                        "language": "de",
                        "value": "Alfa",
                        "additionalUse": [{"code": "preferred"}],
                    }
                ],
                "concept": [{"code": "a1", "display": "Alpha One"}],
            }
        ],
    }


@pytest.fixture
def r5_value_set() -> dict[str, Any]:
    """R5 ValueSet with a scope and compose properties."""
    return {
        "resourceType": "ValueSet",
        "id": "example-values",
        "url": "http://example.org/fhir/ValueSet/example-values",
        "status": "active",
        "scope": {"inclusionCriteria": "All example codes"},
        "compose": {
            "property": ["display"],
            "include": [
                {
                    "system": "http://example.org/fhir/CodeSystem/example-codes",
                    "copyright": "Example Org",
                }
            ],
        },
    }


@pytest.fixture
def r5_concept_map() -> dict[str, Any]:
    """R5 ConceptMap exercising relationships, noMap and dependsOn."""
    return {
        "resourceType": "ConceptMap",
        "id": "example-map",
        "url": "http://example.org/fhir/ConceptMap/example-map",
        "identifier": [
            {"system": "urn:ietf:rfc:3986", "value": "urn:oid:1.2.3"},
            {"system": "urn:ietf:rfc:3986", "value": "urn:oid:1.2.4"},
        ],
        "status": "draft",
        "sourceScopeUri": "http://example.org/fhir/ValueSet/source",
        "targetScopeCanonical": "http://example.org/fhir/ValueSet/target",
        "property": [{"code": "priority", "type": "string"}],
        "group": [
            {
                "source": "http://example.org/source",
                "target": "http://example.org/target",
                "element": [
                    {
                        "code": "s1",
                        "target": [
                            {
                                "code": "t1",
                                "relationship": "source-is-narrower-than-target",
                                "dependsOn": [
                                    {
                                        "attribute": "http://example.org/attr",
                                        "valueCoding": {
                                            "system": "http://example.org/sys",
                                            "code": "x",
                                            "display": "X",
                                        },
                                    }
                                ],
                            },
                            {"code": "t2", "relationship": "equivalent"},
                        ],
                    },
                    {"code": "s2", "noMap": True},
                ],
                "unmapped": {"mode": "use-source-code"},
            }
        ],
    }


@pytest.fixture
def r5_structure_definition() -> dict[str, Any]:
    """R5 StructureDefinition with R5-only ElementDefinition members."""
    return {
        "resourceType": "StructureDefinition",
        "id": "example-profile",
        "url": "http://example.org/fhir/StructureDefinition/example-profile",
        "name": "ExampleProfile",
        "status": "draft",
        "fhirVersion": "5.0.0",
        "kind": "resource",
        "abstract": False,
        "type": "Patient",
        "differential": {
            "element": [
                {
                    "id": "Patient.name",
                    "path": "Patient.name",
                    "mustHaveValue": True,
                    "constraint": [
                        {"key": "ex-1", "severity": "error", "suppress": True}
                    ],
                    "binding": {
                        "strength": "required",
                        "valueSet": "http://example.org/fhir/ValueSet/example-values",
                        "additional": [{"purpose": "extensible"}],
                    },
                }
            ]
        },
    }


@pytest.fixture
def r5_bundle() -> dict[str, Any]:
    """R5 collection Bundle holding a Patient and an Observation."""
    return {
        "resourceType": "Bundle",
        "id": "r5-bundle",
        "type": "collection",
        "entry": [
            {
                "fullUrl": "Patient/example",
                "resource": {
                    "resourceType": "Patient",
                    "id": "example",
                    "name": [{"family": "Chalmers", "given": ["Peter"]}],
                },
            },
            {
                "fullUrl": "Observation/example-obs",
                "resource": {
                    "resourceType": "Observation",
                    "id": "example-obs",
                    "status": "final",
                    "code": {"text": "Body weight"},
                    "subject": {"reference": "Patient/example"},
                    "effectivePeriod": {"start": "2024-01-01"},
                    "valueReference": {"reference": "DocumentReference/doc"},
                    "triggeredBy": [
                        {"observation": {"reference": "Observation/o"}, "type": "reflex"}
                    ],
                },
            },
        ],
    }


@pytest.fixture
def r5_measure() -> dict[str, Any]:
    """R5 Measure with group-level scoring and a population basis."""
    return {
        "resourceType": "Measure",
        "id": "example-measure",
        "url": "http://example.org/fhir/Measure/example-measure",
        "name": "ExampleMeasure",
        "status": "draft",
        "basis": "boolean",
        "term": [
            {"code": {"text": "Numerator"}, "definition": "Patients who qualify"}
        ],
        "library": ["http://example.org/fhir/Library/ExampleLogic"],
        "group": [
            {
                "linkId": "group-1",
                "scoring": {"coding": [{"code": "proportion"}]},
                "type": [{"coding": [{"code": "process"}]}],
                "subjectCodeableConcept": {"text": "Patient"},
                "population": [
                    {
                        "linkId": "numerator",
                        "code": {"coding": [{"code": "numerator"}]},
                        "criteria": {"language": "text/cql-identifier", "expression": "Numerator"},
                        "inputPopulationId": "initial-population",
                    }
                ],
            }
        ],
        "supplementalData": [
            {
                "linkId": "sde-sex",
                "criteria": {"language": "text/cql-identifier", "expression": "SDE Sex"},
            }
        ],
    }
