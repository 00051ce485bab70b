import asyncio
from io import BytesIO

import pytest
from PIL import Image

from manuscript_validator.templates import build_catalog
from manuscript_validator.validate import ManuscriptValidator, ValidationOptions

TEMPLATE_ID = "MPManuscriptTemplate:test"
MANDATORY_ID = "MPMandatorySubsectionsRequirement:test"

ABSTRACT = "MPSectionCategory:abstract"
INTRODUCTION = "MPSectionCategory:introduction"
METHODS = "MPSectionCategory:materials-method"
RESULTS = "MPSectionCategory:results"
KEYWORDS = "MPSectionCategory:keywords"
BIBLIOGRAPHY = "MPSectionCategory:bibliography"

CATEGORY_PACK = {
    "section_categories": [
        {"_id": ABSTRACT, "name": "Abstract", "uniqueInScope": True},
        {"_id": INTRODUCTION, "name": "Introduction", "uniqueInScope": True},
        {"_id": METHODS, "name": "Materials & Methods", "uniqueInScope": True},
        {"_id": RESULTS, "name": "Results"},
        {"_id": KEYWORDS, "name": "Keywords", "uniqueInScope": True},
        {"_id": BIBLIOGRAPHY, "name": "Bibliography", "uniqueInScope": True},
    ]
}

DEFAULT_DESCRIPTIONS = [
    {"sectionCategory": ABSTRACT, "title": "Abstract", "required": True, "priority": 1,
     "placeholder": "Summarize the study."},
    {"sectionCategory": INTRODUCTION, "required": True, "priority": 2},
    {"sectionCategory": METHODS, "title": "Methods", "required": True, "priority": 3},
]


class ProjectBuilder:
    """Builds the model list of a one-manuscript project."""

    def __init__(self, manuscript_id="MPManuscript:test", title="A study of things"):
        self.manuscript_id = manuscript_id
        self.container_id = "MPProject:test"
        self.manuscript = {
            "_id": manuscript_id,
            "objectType": "MPManuscript",
            "containerID": self.container_id,
            "title": title,
        }
        self.data = [self.manuscript]
        self.binaries = {}
        self.fetched = []
        self._counter = 0

    def _id(self, object_type):
        self._counter += 1
        return f"{object_type}:{self._counter}"

    def add(self, model):
        model.setdefault("manuscriptID", self.manuscript_id)
        model.setdefault("containerID", self.container_id)
        self.data.append(model)
        return model["_id"]

    def get(self, model_id):
        return next(m for m in self.data if m["_id"] == model_id)

    def paragraph(self, text):
        return self.add({
            "_id": self._id("MPParagraphElement"),
            "objectType": "MPParagraphElement",
            "contents": f"<p>{text}</p>",
        })

    def section(self, category=None, title="Section", priority=None, parent=None,
                paragraphs=("Some body text.",), element_ids=()):
        section_id = self._id("MPSection")
        parent_path = list(self.get(parent)["path"]) if parent else []
        if priority is None:
            priority = sum(1 for m in self.data if m["objectType"] == "MPSection") + 1
        elements = list(element_ids) + [self.paragraph(p) for p in paragraphs]
        section = {
            "_id": section_id,
            "objectType": "MPSection",
            "title": title,
            "priority": priority,
            "path": parent_path + [section_id],
            "elementIDs": elements,
        }
        if category:
            section["category"] = category
        return self.add(section)

    def keyword(self, name):
        keyword_id = self.add({"_id": self._id("MPManuscriptKeyword"), "objectType": "MPManuscriptKeyword", "name": name})
        self.manuscript.setdefault("keywordIDs", []).append(keyword_id)
        return keyword_id

    def keywords_section(self):
        names = [self.get(k)["name"] for k in self.manuscript.get("keywordIDs", [])]
        element_id = self.add({
            "_id": self._id("MPKeywordsElement"),
            "objectType": "MPKeywordsElement",
            "contents": f'<div class="manuscript-keywords"><p class="keywords">{", ".join(names)}</p></div>',
        })
        return self.section(KEYWORDS, title="Keywords", paragraphs=(), element_ids=[element_id])

    def figure(self, data=None, content_type="image/png"):
        figure_id = self._id("MPFigure")
        model = {"_id": figure_id, "objectType": "MPFigure"}
        if content_type:
            model["contentType"] = content_type
        self.add(model)
        if data is not None:
            self.binaries[figure_id] = data
        return figure_id

    def figure_element(self, figure_id, caption=None):
        element = {
            "_id": self._id("MPFigureElement"),
            "objectType": "MPFigureElement",
            "containedObjectIDs": [figure_id],
        }
        if caption:
            element["caption"] = caption
        return self.add(element)

    def bibliography_item(self, doi=None):
        item = {"_id": self._id("MPBibliographyItem"), "objectType": "MPBibliographyItem"}
        if doi is not None:
            item["DOI"] = doi
        return self.add(item)

    def citation(self, *references):
        return self.add({
            "_id": self._id("MPCitation"),
            "objectType": "MPCitation",
            "embeddedCitationItems": [{"bibliographyItem": r} for r in references],
        })

    def contributor(self, corresponding=False):
        return self.add({
            "_id": self._id("MPContributor"),
            "objectType": "MPContributor",
            "isCorresponding": corresponding,
        })

    def get_binary(self, model_id):
        self.fetched.append(model_id)
        return self.binaries.get(model_id)

    def complete(self):
        """Abstract, introduction and methods sections in template order."""
        self.section(ABSTRACT, title="Abstract")
        self.section(INTRODUCTION, title="Introduction")
        self.section(METHODS, title="Methods")
        return self


def make_catalog(descriptions=None, severity=2, requirements=(), **template_fields):
    template = {
        "_id": TEMPLATE_ID,
        "objectType": "MPManuscriptTemplate",
        "requirementIDs": [MANDATORY_ID] + [r["_id"] for r in requirements],
        **template_fields,
    }
    mandatory = {
        "_id": MANDATORY_ID,
        "objectType": "MPMandatorySubsectionsRequirement",
        "severity": severity,
        "embeddedSectionDescriptions": DEFAULT_DESCRIPTIONS if descriptions is None else descriptions,
    }
    return build_catalog({"templates": [template], "requirements": [mandatory] + list(requirements)}, CATEGORY_PACK)


def make_validator(**kwargs):
    catalog = make_catalog(**kwargs)
    return ManuscriptValidator(catalog.get_template(TEMPLATE_ID), catalog)


def validate(validator, project, validate_image_files=True, get_binary=None):
    options = ValidationOptions(validate_image_files=validate_image_files)
    return asyncio.run(validator.validate(
        project.data, project.manuscript_id, get_binary or project.get_binary, options
    ))


def by_type(results, result_type):
    return [r for r in results if r.type == result_type]


def png_bytes(width, height, fmt="PNG"):
    buf = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def project():
    return ProjectBuilder()


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def validator():
    return make_validator()
