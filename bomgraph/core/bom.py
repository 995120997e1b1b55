import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Iterable

CYCLONEDX_NAMESPACE = "http://cyclonedx.org/schema/bom/1.2"

LIBRARY = "library"


@dataclass
class Component:
    name: str
    version: str
    group: str = ""
    type: str = LIBRARY
    description: str = ""
    purl: str = ""
    components: List['Component'] = field(default_factory=list)


@dataclass
class BOM:
    components: List[Component] = field(default_factory=list)


def merge(parts: Iterable[BOM]) -> BOM:
    """Concatenates the components of several BOMs. Duplicates are kept."""
    bom = BOM()
    for part in parts:
        bom.components.extend(part.components)
    return bom


def to_xml(bom: BOM) -> bytes:
    ET.register_namespace("", CYCLONEDX_NAMESPACE)
    root = ET.Element(_tag("bom"), {"version": "1"})
    ET.SubElement(root, _tag("metadata"))
    components = ET.SubElement(root, _tag("components"))
    for component in bom.components:
        _append_component(components, component)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _append_component(parent: ET.Element, component: Component) -> None:
    element = ET.SubElement(parent, _tag("component"), {"type": component.type})
    if component.group:
        ET.SubElement(element, _tag("group")).text = component.group
    ET.SubElement(element, _tag("name")).text = component.name
    ET.SubElement(element, _tag("version")).text = component.version
    ET.SubElement(element, _tag("description")).text = component.description
    ET.SubElement(element, _tag("purl")).text = component.purl

    if component.components:
        children = ET.SubElement(element, _tag("components"))
        for child in component.components:
            _append_component(children, child)


def _tag(name: str) -> str:
    return f"{{{CYCLONEDX_NAMESPACE}}}{name}"
