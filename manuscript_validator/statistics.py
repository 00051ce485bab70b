from __future__ import annotations
from typing import List, Protocol

from manuscript_validator.models import (
    LIST_ELEMENT,
    KEYWORDS_ELEMENT,
    PARAGRAPH_ELEMENT,
    FIGURE_ELEMENT,
    TABLE_ELEMENT,
    ManuscriptDocument,
    Model,
    SectionNode,
)
from manuscript_validator.rich_text import text_content

_TEXT_ELEMENTS = {PARAGRAPH_ELEMENT, LIST_ELEMENT, KEYWORDS_ELEMENT}


class StatisticsProvider(Protocol):
    def count_words(self, text: str) -> int: ...

    def count_characters(self, text: str) -> int: ...


class DefaultStatistics:
    """Whitespace word splitting and code point character counts."""

    def count_words(self, text: str) -> int:
        return len(text.split())

    def count_characters(self, text: str) -> int:
        return len(text)


def element_text(doc: ManuscriptDocument, element: Model) -> str:
    object_type = element.get("objectType")
    if object_type in _TEXT_ELEMENTS:
        return text_content(element.get("contents"))
    parts: List[str] = []
    if object_type == TABLE_ELEMENT:
        table = doc.get(element.get("containedObjectID", ""))
        if table:
            parts.append(text_content(table.get("contents")))
    if object_type in (FIGURE_ELEMENT, TABLE_ELEMENT):
        parts.append(text_content(element.get("caption")))
    return " ".join(p for p in parts if p)


def build_text(doc: ManuscriptDocument, node: SectionNode) -> str:
    """Title, element text and subsection text of a section, space separated."""
    parts = [node.title]
    parts.extend(element_text(doc, element) for element in doc.elements(node))
    parts.extend(build_text(doc, child) for child in node.children)
    return " ".join(p for p in parts if p)


def build_manuscript_text(doc: ManuscriptDocument) -> str:
    return " ".join(t for t in (build_text(doc, node) for node in doc.sections) if t)
