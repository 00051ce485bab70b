from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional
import time
import uuid

from manuscript_validator.errors import InputError
from manuscript_validator.rich_text import text_content

Model = Dict[str, Any]
ModelMap = Dict[str, Model]

MANUSCRIPT = "MPManuscript"
SECTION = "MPSection"
PARAGRAPH_ELEMENT = "MPParagraphElement"
LIST_ELEMENT = "MPListElement"
KEYWORDS_ELEMENT = "MPKeywordsElement"
BIBLIOGRAPHY_ELEMENT = "MPBibliographyElement"
FIGURE_ELEMENT = "MPFigureElement"
TABLE_ELEMENT = "MPTableElement"
EQUATION_ELEMENT = "MPEquationElement"
EQUATION = "MPEquation"
FIGURE = "MPFigure"
TABLE = "MPTable"
KEYWORD = "MPManuscriptKeyword"
CITATION = "MPCitation"
BIBLIOGRAPHY_ITEM = "MPBibliographyItem"
CONTRIBUTOR = "MPContributor"

KEYWORDS_CATEGORY = "MPSectionCategory:keywords"
BIBLIOGRAPHY_CATEGORY = "MPSectionCategory:bibliography"


def has_object_type(model: Model, object_type: str) -> bool:
    return model.get("objectType") == object_type


def is_section(model: Model) -> bool:
    return has_object_type(model, SECTION)


def generate_id(object_type: str) -> str:
    return f"{object_type}:{str(uuid.uuid4()).upper()}"


def timestamp() -> int:
    return int(time.time())


def build_model_properties(manuscript_id: str, container_id: Optional[str], session_id: Optional[str] = None) -> Model:
    """Bookkeeping fields every model created by the autofix engine carries."""
    created_at = timestamp()
    return {
        "containerID": container_id,
        "manuscriptID": manuscript_id,
        "createdAt": created_at,
        "updatedAt": created_at,
        "sessionID": session_id or str(uuid.uuid4()),
    }


def touch(model: Model, session_id: str) -> None:
    model["updatedAt"] = timestamp()
    model["sessionID"] = session_id


def next_priority(data: Iterable[Model]) -> int:
    """One past the highest section priority, or 1 when there are no sections."""
    priorities = [m.get("priority", 0) for m in data if is_section(m)]
    return max(priorities + [0]) + 1


def section_scope(section: Model) -> str:
    return ",".join(p for p in (section.get("path") or []) if p != section["_id"])


def find_model(data: Iterable[Model], model_id: str) -> Optional[Model]:
    for model in data:
        if model.get("_id") == model_id:
            return model
    return None


@dataclass
class SectionNode:
    section: Model
    children: List["SectionNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.section["_id"]

    @property
    def category(self) -> Optional[str]:
        return self.section.get("category")

    @property
    def title(self) -> str:
        return text_content(self.section.get("title"))

    @property
    def priority(self) -> int:
        return self.section.get("priority", 0)

    def walk(self) -> Iterator["SectionNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class ManuscriptDocument:
    """Read-only view of one manuscript's models arranged as a section tree."""
    manuscript: Model
    model_map: ModelMap
    sections: List[SectionNode] = field(default_factory=list)

    @classmethod
    def from_data(cls, data: Iterable[Model], manuscript_id: str) -> "ManuscriptDocument":
        data = list(data)
        manuscript = find_model(data, manuscript_id)
        if manuscript is None or not has_object_type(manuscript, MANUSCRIPT):
            raise InputError(f"manuscriptID {manuscript_id} does not match a Manuscript in the project")

        model_map: ModelMap = {}
        for model in data:
            owner = model.get("manuscriptID")
            if not owner or owner == manuscript_id:
                model_map[model["_id"]] = model
        model_map[manuscript_id] = manuscript

        doc = cls(manuscript=manuscript, model_map=model_map)
        doc.sections = doc._build_section_tree()
        return doc

    def _build_section_tree(self) -> List[SectionNode]:
        nodes = {m["_id"]: SectionNode(m) for m in self.model_map.values() if is_section(m)}
        roots: List[SectionNode] = []
        for node in nodes.values():
            for element_id in node.section.get("elementIDs") or []:
                if element_id not in self.model_map:
                    raise InputError(f"{node.id} refers to missing element {element_id}")
            ancestors = [p for p in (node.section.get("path") or []) if p != node.id]
            if not ancestors:
                roots.append(node)
                continue
            parent = nodes.get(ancestors[-1])
            if parent is None:
                raise InputError(f"{node.id} refers to missing parent section {ancestors[-1]}")
            parent.children.append(node)

        for node in nodes.values():
            node.children.sort(key=lambda n: n.priority)
        roots.sort(key=lambda n: n.priority)
        return roots

    @property
    def id(self) -> str:
        return self.manuscript["_id"]

    @property
    def title(self) -> str:
        return text_content(self.manuscript.get("title"))

    def get(self, model_id: str) -> Optional[Model]:
        return self.model_map.get(model_id)

    def require(self, model_id: str) -> Model:
        model = self.model_map.get(model_id)
        if model is None:
            raise InputError(f"{model_id} not found in manuscript data")
        return model

    def iter_sections(self, recurse: bool = False) -> Iterator[SectionNode]:
        for node in self.sections:
            if recurse:
                yield from node.walk()
            else:
                yield node

    def models_by_type(self, object_type: str) -> List[Model]:
        return [m for m in self.model_map.values() if has_object_type(m, object_type)]

    def elements(self, node: SectionNode) -> List[Model]:
        return [self.model_map[i] for i in node.section.get("elementIDs") or []]
