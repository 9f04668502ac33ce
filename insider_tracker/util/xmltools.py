from __future__ import annotations

from typing import Iterator, List, Optional
from xml.etree import ElementTree as ET


def strip_ns(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def find_child(parent: ET.Element | None, name: str) -> Optional[ET.Element]:
    if parent is None:
        return None
    for child in parent:
        if strip_ns(child.tag) == name:
            return child
    return None


def iter_children(parent: ET.Element | None, name: str) -> Iterator[ET.Element]:
    if parent is None:
        return
    for child in parent:
        if strip_ns(child.tag) == name:
            yield child


def find_text(parent: ET.Element | None, path: List[str]) -> Optional[str]:
    cur: Optional[ET.Element] = parent
    for p in path:
        if cur is None:
            return None
        cur = find_child(cur, p)
    if cur is None:
        return None
    text = (cur.text or "").strip()
    return text if text else None


def find_value_text(parent: ET.Element | None, path: List[str]) -> Optional[str]:
    """Common SEC pattern: <foo><value>TEXT</value></foo>, sometimes just <foo>TEXT</foo>."""
    return find_text(parent, path + ["value"]) or find_text(parent, path)
