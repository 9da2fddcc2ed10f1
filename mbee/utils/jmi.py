"""
Element output shapes.

``jmi1`` is a plain list, ``jmi2`` a dict keyed by element id and ``jmi3``
nests each element under its parent's ``contains``, keyed by id, with the
elements whose parent is not in the result at the top level.
"""
from typing import Any, Dict, List, Union

JMI_FORMATS = ("jmi1", "jmi2", "jmi3")


def to_jmi2(elements: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    keyed: Dict[str, Dict[str, Any]] = {}
    for element in elements:
        if element["id"] in keyed:
            raise ValueError(f"Duplicate element id [{element['id']}]")
        keyed[element["id"]] = element
    return keyed


def to_jmi3(elements: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    nodes = {key: {**element, "contains": {}} for key, element in to_jmi2(elements).items()}
    tree: Dict[str, Dict[str, Any]] = {}
    for key, node in nodes.items():
        parent = node.get("parent")
        if parent in nodes and parent != key:
            nodes[parent]["contains"][key] = node
        else:
            tree[key] = node
    return tree


def convert(elements: List[Dict[str, Any]], fmt: str = "jmi1") -> Union[List[Dict[str, Any]], Dict[str, Any]]:
    if fmt == "jmi1":
        return elements
    if fmt == "jmi2":
        return to_jmi2(elements)
    if fmt == "jmi3":
        return to_jmi3(elements)
    raise ValueError(f"Unknown format [{fmt}]")
