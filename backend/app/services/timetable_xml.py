"""Conversion of Timetables API XML documents into JSON-compatible dicts.

Attributes are merged into the element's object, a child element that
occurs once becomes a plain value and one that repeats becomes a list.
Elements without attributes or children collapse to their text, and text
next to attributes or children is kept under ``"_"``.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

from app.services.timetable_errors import TimetableParseError

TEXT_KEY = "_"


def element_to_value(element: ET.Element) -> Any:
    text = (element.text or "").strip()
    children = list(element)
    if not element.attrib and not children:
        return text

    result: dict[str, Any] = dict(element.attrib)
    repeated: set[str] = set()
    for child in children:
        value = element_to_value(child)
        if child.tag not in result:
            result[child.tag] = value
        elif child.tag in repeated:
            result[child.tag].append(value)
        else:
            result[child.tag] = [result[child.tag], value]
            repeated.add(child.tag)

    if text:
        result[TEXT_KEY] = text
    return result


def parse_timetable_xml(document: str | bytes) -> dict[str, Any]:
    """Parse a Timetables API XML body into ``{root_tag: value}``.

    Raises:
        TimetableParseError: if the body is not well-formed XML.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise TimetableParseError(f"Invalid timetable XML: {exc}") from exc
    return {root.tag: element_to_value(root)}


__all__ = ["element_to_value", "parse_timetable_xml", "TEXT_KEY"]
