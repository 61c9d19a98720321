"""
FHIR XML encoding for JSON-shaped resources.

Writes follow the FHIR XML rules: primitives carry a ``value`` attribute,
``id`` (and ``url`` on extensions) become attributes, nested resources are
wrapped in an element named after their type and narrative ``div`` content
is embedded as XHTML. Namespaces are declared with ``xmlns`` attributes, so
ElementTree's global prefix registry is left alone.

Reads use defusedxml for secure XML parsing. XML carries no cardinality or
primitive type information. An element becomes a list when it repeats, is
listed in ``ALWAYS_REPEATING`` or its path ends with one of
``REPEATING_PATHS``. Booleans, integers and decimals are typed from the
element name.
"""

import copy
import re
from typing import Any
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as DefusedET
from defusedxml import DefusedXmlException

from cqf_tooling.exceptions import ResourceParseError

FHIR_NS = "http://hl7.org/fhir"
XHTML_NS = "http://www.w3.org/1999/xhtml"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

# Elements that are 0..* wherever they occur
ALWAYS_REPEATING = {
    "extension",
    "modifierExtension",
    "contained",
    "entry",
    "coding",
    "identifier",
    "given",
    "prefix",
    "suffix",
    "line",
    "telecom",
    "contact",
    "jurisdiction",
    "useContext",
    "include",
    "exclude",
    "designation",
    "element",
    "constraint",
    "note",
    "relatedArtifact",
    "dataRequirement",
    "codeFilter",
}

_ARTIFACT_METADATA = ("topic", "author", "editor", "reviewer", "endorser")

# Dotted path suffixes of elements that are 0..*
REPEATING_PATHS = {
    # Bundle, Meta
    "Bundle.link",
    "entry.link",
    "meta.profile",
    "meta.security",
    "meta.tag",
    # CodeSystem
    "CodeSystem.concept",
    "CodeSystem.property",
    "CodeSystem.filter",
    "concept.concept",
    "concept.property",
    "filter.operator",
    # ValueSet
    "compose.property",
    "include.concept",
    "include.filter",
    "include.valueSet",
    "expansion.parameter",
    "expansion.property",
    "expansion.contains",
    "contains.contains",
    "contains.property",
    # ConceptMap
    "ConceptMap.property",
    "ConceptMap.additionalAttribute",
    "ConceptMap.group",
    "group.element.target",
    "target.dependsOn",
    "target.product",
    "target.property",
    # Measure
    "Measure.library",
    "Measure.type",
    "Measure.definition",
    "Measure.term",
    "Measure.group",
    "Measure.supplementalData",
    "Measure.group.type",
    "Measure.group.library",
    "Measure.group.population",
    "Measure.group.stratifier",
    "stratifier.component",
    "supplementalData.usage",
    # Library
    "Library.parameter",
    "Library.content",
    # DataRequirement
    "dataRequirement.profile",
    "dataRequirement.mustSupport",
    "dataRequirement.dateFilter",
    "dataRequirement.valueFilter",
    "dataRequirement.sort",
    "codeFilter.code",
    # StructureDefinition, ElementDefinition
    "StructureDefinition.keyword",
    "StructureDefinition.mapping",
    "StructureDefinition.context",
    "StructureDefinition.contextInvariant",
    "snapshot.element.code",
    "differential.element.code",
    "snapshot.element.alias",
    "differential.element.alias",
    "element.condition",
    "element.mapping",
    "element.example",
    "element.type",
    "type.profile",
    "type.targetProfile",
    "type.aggregation",
    # Observation
    "Observation.basedOn",
    "Observation.partOf",
    "Observation.triggeredBy",
    "Observation.category",
    "Observation.focus",
    "Observation.performer",
    "Observation.interpretation",
    "Observation.referenceRange",
    "Observation.hasMember",
    "Observation.derivedFrom",
    "Observation.component",
    "component.interpretation",
    "component.referenceRange",
    "referenceRange.appliesTo",
    # Patient
    "Patient.name",
    "Patient.address",
    "Patient.communication",
    "Patient.generalPractitioner",
    "Patient.link",
}
REPEATING_PATHS.update(
    f"{resource_type}.{element}"
    for resource_type in ("CodeSystem", "ConceptMap", "Library", "Measure", "ValueSet")
    for element in _ARTIFACT_METADATA
)

# integer, unsignedInt and positiveInt elements
INTEGER_ELEMENTS = {
    "count",
    "total",
    "offset",
    "rank",
    "limit",
    "min",
    "maxLength",
    "numberOfSeries",
    "numberOfInstances",
}

# Quantity-typed elements; their ``value`` is a decimal
QUANTITY_ELEMENTS = {
    "valueQuantity",
    "valueAge",
    "valueDuration",
    "valueDistance",
    "valueCount",
    "valueMoney",
    "low",
    "high",
    "numerator",
    "denominator",
    "quantity",
}

_INTEGER_TEXT = re.compile(r"^[+-]?\d+$")

_NUMERIC_CHOICE = re.compile(
    r"^(?:value|defaultValue|fixed|pattern|minValue|maxValue)"
    r"(Integer|UnsignedInt|PositiveInt|Decimal)$"
)

# Elements written first inside a complex datatype
_LEADING_ELEMENTS = ("extension", "modifierExtension")

# Elements written first inside a resource, in this order
_RESOURCE_LEADING_ELEMENTS = (
    "id",
    "meta",
    "implicitRules",
    "language",
    "text",
    "contained",
    "extension",
    "modifierExtension",
)


def resource_to_xml(resource: dict[str, Any], pretty: bool = True) -> str:
    """
    Encode a resource as a FHIR XML document.

    Args:
        resource: JSON-shaped FHIR resource
        pretty: Indent the output

    Returns:
        The XML document, including the declaration
    """
    root = _build_resource(resource)
    root.set("xmlns", FHIR_NS)
    if pretty:
        ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"


def xml_to_resource(content: str | bytes) -> dict[str, Any]:
    """
    Parse a FHIR XML document into a JSON-shaped resource.

    Raises:
        ResourceParseError: If the content is not well-formed or not FHIR
    """
    try:
        root = DefusedET.fromstring(content)
    except DefusedET.ParseError as e:
        raise ResourceParseError(f"Invalid XML: {e}") from e
    except DefusedXmlException as e:
        raise ResourceParseError(f"Forbidden XML construct: {e}") from e

    namespace, _ = _split_tag(root.tag)
    if namespace != FHIR_NS:
        raise ResourceParseError(
            f"Root element {root.tag} is not in the FHIR namespace"
        )
    return _parse_resource(root)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def _build_resource(resource: dict[str, Any]) -> Element:
    resource_type = resource.get("resourceType")
    if not resource_type:
        raise ValueError("Resource is missing resourceType")

    # Unqualified names inherit the default namespace set on the root
    element = ET.Element(resource_type)
    # Resource.id is an element, not an attribute
    keys = [k for k in _RESOURCE_LEADING_ELEMENTS if k in resource]
    keys.extend(k for k in resource if k not in _RESOURCE_LEADING_ELEMENTS)
    for key in keys:
        if key == "resourceType" or key.startswith("_"):
            continue
        _append_property(element, key, resource[key], resource.get(f"_{key}"))
    return element


def _append_property(
    parent: Element, name: str, value: Any, companion: Any = None
) -> None:
    """Append one JSON property (possibly repeating) to ``parent``."""
    if isinstance(value, list):
        companions = companion if isinstance(companion, list) else []
        for i, item in enumerate(value):
            item_companion = companions[i] if i < len(companions) else None
            _append_property(parent, name, item, item_companion)
        return

    if value is None and companion is None:
        return

    if name == "div" and isinstance(value, str):
        parent.append(_xhtml_with_default_namespace(_parse_xhtml(value)))
        return

    child = ET.SubElement(parent, name)

    if isinstance(value, dict) and "resourceType" in value:
        child.append(_build_resource(value))
        return

    if isinstance(value, dict):
        _fill_complex(child, name, value)
        return

    if value is not None:
        child.set("value", _primitive_text(value))
    if isinstance(companion, dict):
        _fill_complex(child, name, companion)


def _fill_complex(element: Element, name: str, value: dict[str, Any]) -> None:
    if "id" in value:
        element.set("id", str(value["id"]))
    if name in ("extension", "modifierExtension") and "url" in value:
        element.set("url", str(value["url"]))

    keys = [k for k in _LEADING_ELEMENTS if k in value]
    keys.extend(k for k in value if k not in _LEADING_ELEMENTS)
    for key in keys:
        if key == "id" or key.startswith("_"):
            continue
        if key == "url" and name in ("extension", "modifierExtension"):
            continue
        _append_property(element, key, value[key], value.get(f"_{key}"))


def _primitive_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_xhtml(div: str) -> Element:
    try:
        element: Element = DefusedET.fromstring(div)
    except DefusedET.ParseError as e:
        raise ValueError(f"Narrative div is not well-formed XHTML: {e}") from e
    return element


def _xhtml_with_default_namespace(div: Element) -> Element:
    """Copy of an XHTML tree that declares XHTML as its default namespace."""
    element = copy.deepcopy(div)
    for node in element.iter():
        if not isinstance(node.tag, str):
            continue
        namespace, name = _split_tag(node.tag)
        if namespace == XHTML_NS:
            node.tag = name
    element.set("xmlns", XHTML_NS)
    element.tail = None
    return element


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _split_tag(tag: str) -> tuple[str | None, str]:
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    return None, tag


def _is_repeating(path: tuple[str, ...]) -> bool:
    if path[-1] in ALWAYS_REPEATING:
        return True
    return any(
        ".".join(path[start:]) in REPEATING_PATHS for start in range(len(path) - 1)
    )


def _parse_resource(element: Element) -> dict[str, Any]:
    _, resource_type = _split_tag(element.tag)
    resource: dict[str, Any] = {"resourceType": resource_type}
    _collect_children(element, resource, (resource_type,))
    return resource


def _collect_children(
    element: Element, target: dict[str, Any], path: tuple[str, ...]
) -> None:
    grouped: dict[str, list[tuple[Any, dict[str, Any] | None]]] = {}
    for child in element:
        namespace, name = _split_tag(child.tag)
        if namespace == XHTML_NS and name == "div":
            target["div"] = ET.tostring(
                _xhtml_with_default_namespace(child), encoding="unicode"
            )
            continue
        grouped.setdefault(name, []).append(_parse_element(child, path + (name,)))

    for name, items in grouped.items():
        values = [value for value, _ in items]
        companions = [companion for _, companion in items]
        repeating = len(items) > 1 or _is_repeating(path + (name,))

        if any(v is not None for v in values):
            target[name] = values if repeating else values[0]
        if any(c is not None for c in companions):
            target[f"_{name}"] = companions if repeating else companions[0]


def _parse_element(
    element: Element, path: tuple[str, ...]
) -> tuple[Any, dict[str, Any] | None]:
    """
    Parse one element.

    Args:
        element: The element to parse
        path: Element names from the enclosing resource type down to ``element``

    Returns:
        Tuple of (value, primitive companion). The companion holds the
        ``id`` and extensions of a primitive element.
    """
    children = list(element)

    # Nested resource: a single child named with an upper-case type
    if len(children) == 1 and not element.attrib:
        namespace, name = _split_tag(children[0].tag)
        if namespace == FHIR_NS and name[:1].isupper():
            return _parse_resource(children[0]), None

    if "value" in element.attrib:
        value = _primitive_value(element.attrib["value"], path)
        companion: dict[str, Any] = {}
        if "id" in element.attrib:
            companion["id"] = element.attrib["id"]
        _collect_children(element, companion, path)
        return value, companion or None

    complex_value: dict[str, Any] = {}
    if "id" in element.attrib:
        complex_value["id"] = element.attrib["id"]
    if "url" in element.attrib:
        complex_value["url"] = element.attrib["url"]
    _collect_children(element, complex_value, path)
    return complex_value, None


def _primitive_value(text: str, path: tuple[str, ...]) -> Any:
    if text == "true":
        return True
    if text == "false":
        return False

    name = path[-1]
    match = _NUMERIC_CHOICE.match(name)
    try:
        if match and match.group(1) == "Decimal":
            return _decimal(text)
        if match or name in INTEGER_ELEMENTS:
            return int(text)
        if name == "value" and len(path) > 1 and path[-2] in QUANTITY_ELEMENTS:
            return _decimal(text)
    except ValueError as e:
        raise ResourceParseError(
            f"Invalid numeric value {text!r} at {'.'.join(path)}"
        ) from e
    return text


def _decimal(text: str) -> int | float:
    """Whole numbers stay integers so ``1`` is not written back as ``1.0``."""
    if _INTEGER_TEXT.match(text):
        return int(text)
    return float(text)
