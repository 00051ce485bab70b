"""
Rich Text Helpers

Element and title contents are stored as HTML fragments. These helpers read
their plain text and produce the small fragments the autofix engine writes
(placeholder paragraphs, keyword lists).
"""
from __future__ import annotations
from typing import Iterable, Optional

from lxml import html
from lxml.html import builder as E


def _parse(contents: str) -> html.HtmlElement:
    return html.fragment_fromstring(contents, create_parent="div")


def _serialize_children(wrapper: html.HtmlElement) -> str:
    parts = [wrapper.text or ""]
    parts.extend(html.tostring(child, encoding="unicode") for child in wrapper)
    return "".join(parts)


def text_content(contents: Optional[str]) -> str:
    """Plain text of an HTML fragment ("" for missing or blank contents)."""
    if not contents or not contents.strip():
        return ""
    return _parse(contents).text_content()


def build_paragraph_contents(element_id: str, placeholder: Optional[str] = None) -> str:
    p = E.P(E.CLASS("MPElement"))
    p.set("id", element_id)
    if placeholder:
        p.set("data-placeholder-text", placeholder)
    return html.tostring(p, encoding="unicode")


def _keywords_container(wrapper: html.HtmlElement) -> html.HtmlElement:
    paragraphs = wrapper.xpath(".//p")
    if paragraphs:
        return paragraphs[0]
    children = list(wrapper)
    if len(children) == 1:
        return children[0]
    return wrapper


def rewrite_keywords_contents(contents: Optional[str], names: Iterable[str]) -> str:
    """Replace the keyword list inside a keywords element, keeping its wrapper markup."""
    text = ", ".join(names)
    if not contents or not contents.strip():
        return html.tostring(E.P(E.CLASS("keywords"), text), encoding="unicode")

    wrapper = _parse(contents)
    target = _keywords_container(wrapper)
    for child in list(target):
        target.remove(child)
    target.text = text
    return _serialize_children(wrapper)
