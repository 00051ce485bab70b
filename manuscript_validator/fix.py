from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging
import uuid

from manuscript_validator.errors import InputError, InvariantError
from manuscript_validator.models import (
    KEYWORD,
    KEYWORDS_CATEGORY,
    KEYWORDS_ELEMENT,
    MANUSCRIPT,
    PARAGRAPH_ELEMENT,
    SECTION,
    Model,
    build_model_properties,
    generate_id,
    has_object_type,
    is_section,
    next_priority,
    touch,
)
from manuscript_validator.results import ValidationResult
from manuscript_validator.rich_text import build_paragraph_contents, rewrite_keywords_contents
from manuscript_validator.templates import category_name_from_id

logger = logging.getLogger(__name__)


class FixContext:
    """State shared by the fixers of one ``run_manuscript_fixes`` call."""

    def __init__(self, data: List[Model], manuscript: Model):
        self.data = data
        self.manuscript = manuscript
        self.session_id = str(uuid.uuid4())
        self.model_map: Dict[str, Model] = {m["_id"]: m for m in data}

    @property
    def manuscript_id(self) -> str:
        return self.manuscript["_id"]

    def add(self, models: List[Model]) -> None:
        self.data.extend(models)
        for model in models:
            self.model_map[model["_id"]] = model

    def touch(self, model: Model) -> None:
        touch(model, self.session_id)

    def owned_sections(self) -> List[Model]:
        return [
            m for m in self.data
            if is_section(m) and m.get("manuscriptID") in (None, self.manuscript_id)
        ]


# =============================================================================
# Required sections
# =============================================================================

def build_required_section(
    description: Dict[str, Any],
    ctx: FixContext,
    priority: int,
    parent_path: Optional[List[str]] = None,
) -> List[Model]:
    """A section for a section description, its placeholder paragraph and its subsections."""
    category = description["sectionCategory"]
    section_id = generate_id(SECTION)
    properties = build_model_properties(ctx.manuscript_id, ctx.manuscript.get("containerID"), ctx.session_id)
    section: Model = {
        "_id": section_id,
        "objectType": SECTION,
        **properties,
        "priority": priority,
        "path": list(parent_path or []) + [section_id],
        "title": description.get("title") or category_name_from_id(category),
        "category": category,
    }
    models = [section]

    placeholder = description.get("placeholder")
    if placeholder:
        paragraph_id = generate_id(PARAGRAPH_ELEMENT)
        models.append({
            "_id": paragraph_id,
            "objectType": PARAGRAPH_ELEMENT,
            **properties,
            "elementType": "p",
            "contents": build_paragraph_contents(paragraph_id, placeholder),
            "placeholderInnerHTML": placeholder,
        })
        section["elementIDs"] = [paragraph_id]

    for index, subsection in enumerate(description.get("subsections") or [], start=1):
        models.extend(build_required_section(subsection, ctx, index, section["path"]))
    return models


def fix_required_section(result: ValidationResult, ctx: FixContext) -> None:
    description = result.data.get("sectionDescription")
    if not description or not description.get("sectionCategory"):
        raise InputError(f"{result.id} has no section description to build from")
    models = build_required_section(description, ctx, next_priority(ctx.data))
    ctx.add(models)
    logger.debug(f"Added {description['sectionCategory']} section ({len(models)} models)")


# =============================================================================
# Section titles and order
# =============================================================================

def fix_section_title(result: ValidationResult, ctx: FixContext) -> None:
    section_id = result.affected_element_id
    model = ctx.model_map.get(section_id) if section_id else None
    if model is None:
        raise InputError(f"{section_id} not found")
    if not is_section(model):
        raise InvariantError(f"{section_id} must be of type {SECTION}")
    model["title"] = result.data["title"]
    ctx.touch(model)
    logger.debug(f"Retitled {section_id} to {model['title']!r}")


def fix_section_order(result: ValidationResult, ctx: FixContext) -> None:
    order = {category: index for index, category in enumerate(result.data.get("order") or [])}
    top_level = [
        s for s in ctx.owned_sections()
        if s.get("category") in order and len(s.get("path") or [s["_id"]]) <= 1
    ]
    top_level.sort(key=lambda s: (order[s["category"]], s.get("priority", 0)))

    priority = next_priority(ctx.data)
    for section in top_level:
        section["priority"] = priority
        priority += 1
        ctx.touch(section)
    logger.debug(f"Reordered {len(top_level)} sections")


# =============================================================================
# Keywords
# =============================================================================

def fix_keywords_order(result: ValidationResult, ctx: FixContext) -> None:
    order = list(result.data.get("order") or [])
    keywords = []
    for keyword_id in order:
        keyword = ctx.model_map.get(keyword_id)
        if keyword is None or not has_object_type(keyword, KEYWORD):
            raise InputError(f"Invalid keyword ID {keyword_id}")
        keywords.append(keyword)

    ctx.manuscript["keywordIDs"] = order
    ctx.touch(ctx.manuscript)

    sections = [s for s in ctx.owned_sections() if s.get("category") == KEYWORDS_CATEGORY]
    if len(sections) > 1:
        raise InputError(f"Found {len(sections)} keywords sections, expected at most one")
    if not sections:
        return

    names = [k.get("name") or "" for k in keywords]
    for element_id in sections[0].get("elementIDs") or []:
        element = ctx.model_map.get(element_id)
        if element is not None and has_object_type(element, KEYWORDS_ELEMENT):
            element["contents"] = rewrite_keywords_contents(element.get("contents"), names)
            ctx.touch(element)


Fixer = Callable[[ValidationResult, FixContext], None]

FIXERS: Dict[str, Fixer] = {
    "required-section": fix_required_section,
    "section-title-match": fix_section_title,
    "section-order": fix_section_order,
    "keywords-order": fix_keywords_order,
}


def run_manuscript_fixes(
    data: List[Model],
    manuscript_id: str,
    results: Iterable[Union[ValidationResult, Model]],
) -> List[Model]:
    """
    Apply the fix for every failed, fixable result.

    ``data`` is modified in place and returned. Entities are only added or
    updated, never removed; each one touched gets a fresh ``updatedAt`` and
    the ``sessionID`` of this call.
    """
    manuscript = next((m for m in data if m.get("_id") == manuscript_id), None)
    if manuscript is None or not has_object_type(manuscript, MANUSCRIPT):
        raise InputError("Could not find a Manuscript object")

    ctx = FixContext(data, manuscript)
    applied: Dict[str, int] = {}
    for result in results:
        if not isinstance(result, ValidationResult):
            result = ValidationResult.from_dict(result)
        if result.passed or result.ignored:
            continue
        fixer = FIXERS.get(result.type)
        if fixer is None:
            continue
        fixer(result, ctx)
        applied[result.type] = applied.get(result.type, 0) + 1

    if applied:
        logger.info(f"Applied fixes to {manuscript_id}: {applied}")
    return data
