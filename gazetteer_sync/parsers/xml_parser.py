"""
XML parser.

Uses ElementTree.iterparse and detaches each record element from its parent
once it has been converted, keeping memory flat for large exports.
"""

from collections.abc import Iterator
from typing import Any, BinaryIO
from xml.etree import ElementTree as ET

from gazetteer_sync.errors import ParseError
from gazetteer_sync.types import RawRecord


def local_name(tag: str) -> str:
    """Strip an XML namespace: '{http://...}title' -> 'title'."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def element_to_dict(element: ET.Element) -> Any:
    """
    Convert an element into plain Python values.

    Leaf elements become their stripped text; attributes are kept under
    "@name" keys; repeated child tags become lists.
    """
    children = list(element)
    attributes = {f"@{local_name(k)}": v for k, v in element.attrib.items()}
    text = (element.text or "").strip()

    if not children and not attributes:
        return text

    result: dict[str, Any] = dict(attributes)
    for child in children:
        key = local_name(child.tag)
        value = element_to_dict(child)
        if key in result:
            if not isinstance(result[key], list):
                result[key] = [result[key]]
            result[key].append(value)
        else:
            result[key] = value

    if text:
        result["#text"] = text
    return result


def parse_xml(
    stream: BinaryIO,
    stats,
    source_name: str | None = None,
    record_tag: str = "record",
) -> Iterator[RawRecord]:
    """
    Yield one dict per element whose local name is record_tag.

    Args:
        record_tag: Local (namespace-free) name of the repeating record element
    """
    index = -1
    # Open elements, innermost last
    stack: list[ET.Element] = []
    try:
        for event, element in ET.iterparse(stream, events=("start", "end")):
            if event == "start":
                stack.append(element)
                continue
            stack.pop()
            if local_name(element.tag) != record_tag:
                continue
            index += 1

            record = element_to_dict(element)
            element.clear()
            if stack:
                stack[-1].remove(element)

            if not isinstance(record, dict) or not record:
                stats.skip(index, f"<{record_tag}> has no fields", source_name)
                continue

            stats.yielded += 1
            yield record
    except ET.ParseError as e:
        raise ParseError(
            f"Unreadable XML after record {index}: {e}",
            source_name=source_name,
            offset=index + 1,
        ) from e
