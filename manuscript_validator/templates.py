"""
Template Catalog

Loads manuscript templates, their requirement models and the section
category list from YAML packs into an immutable lookup service. Build it once
at start-up and pass it to the requirement extractor and the validator.
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

import yaml

from manuscript_validator.errors import InputError
from manuscript_validator.models import Model

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_TEMPLATES_PATH = DATA_DIR / "templates.yml"
DEFAULT_CATEGORIES_PATH = DATA_DIR / "section_categories.yml"


@dataclass(frozen=True)
class SectionCategory:
    id: str
    name: str
    unique_in_scope: bool = False


@dataclass(frozen=True)
class TemplateCatalog:
    templates: Mapping[str, Model]
    requirements: Mapping[str, Model]
    categories: Mapping[str, SectionCategory]

    def get_template(self, template_id: str) -> Model:
        template = self.templates.get(template_id)
        if template is None:
            raise InputError(f"Unknown template {template_id}")
        return template

    def get_requirement(self, requirement_id: str) -> Optional[Model]:
        return self.requirements.get(requirement_id)

    def get_category(self, category_id: Optional[str]) -> Optional[SectionCategory]:
        if not category_id:
            return None
        return self.categories.get(category_id)

    def category_name(self, category_id: Optional[str]) -> str:
        if not category_id:
            return "Section"
        category = self.categories.get(category_id)
        if category:
            return category.name
        logger.debug(f"{category_id} not found in section categories")
        return category_name_from_id(category_id)


def category_name_from_id(category_id: str) -> str:
    """'MPSectionCategory:materials-method' -> 'Materials-method'"""
    _, _, name = category_id.partition(":")
    name = name or category_id
    return name[:1].upper() + name[1:]


def load_pack(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _index(models: List[Model], kind: str) -> Dict[str, Model]:
    out: Dict[str, Model] = {}
    for model in models:
        if "_id" not in model:
            raise InputError(f"{kind} entry without _id: {model!r}")
        out[model["_id"]] = model
    return out


def build_catalog(template_pack: Dict[str, Any], category_pack: Dict[str, Any]) -> TemplateCatalog:
    templates = _index(template_pack.get("templates") or [], "template")
    requirements = _index(template_pack.get("requirements") or [], "requirement")
    categories = {}
    for c in category_pack.get("section_categories") or []:
        categories[c["_id"]] = SectionCategory(
            id=c["_id"],
            name=str(c.get("name") or category_name_from_id(c["_id"])),
            unique_in_scope=bool(c.get("uniqueInScope", False)),
        )
    return TemplateCatalog(
        templates=MappingProxyType(templates),
        requirements=MappingProxyType(requirements),
        categories=MappingProxyType(categories),
    )


def load_catalog(
    templates_path: Optional[Union[str, Path]] = None,
    categories_path: Optional[Union[str, Path]] = None,
) -> TemplateCatalog:
    templates_path = templates_path or DEFAULT_TEMPLATES_PATH
    categories_path = categories_path or DEFAULT_CATEGORIES_PATH
    catalog = build_catalog(load_pack(templates_path), load_pack(categories_path))
    logger.info(
        f"Loaded {len(catalog.templates)} templates, {len(catalog.requirements)} requirements "
        f"and {len(catalog.categories)} section categories"
    )
    return catalog
