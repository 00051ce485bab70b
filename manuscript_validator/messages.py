from __future__ import annotations
from typing import Any, Dict, List, Optional

from manuscript_validator.models import BIBLIOGRAPHY_CATEGORY
from manuscript_validator.results import ValidationResult
from manuscript_validator.templates import TemplateCatalog

# count type -> (subject, unit); the comparison follows from maximum/minimum
_COUNT_SUBJECTS = {
    "manuscript-maximum-characters": ("The manuscript", "characters"),
    "manuscript-minimum-characters": ("The manuscript", "characters"),
    "manuscript-maximum-words": ("The manuscript", "words"),
    "manuscript-minimum-words": ("The manuscript", "words"),
    "manuscript-maximum-figures": ("The manuscript", "figures"),
    "manuscript-maximum-tables": ("The manuscript", "tables"),
    "manuscript-maximum-combined-figure-tables": ("The manuscript", "figures and tables combined"),
    "manuscript-maximum-references": ("The manuscript", "references"),
    "manuscript-maximum-corresponding-authors": ("The manuscript", "corresponding authors"),
    "manuscript-title-maximum-characters": ("The manuscript title", "characters"),
    "manuscript-title-minimum-characters": ("The manuscript title", "characters"),
    "manuscript-title-maximum-words": ("The manuscript title", "words"),
    "manuscript-title-minimum-words": ("The manuscript title", "words"),
    "manuscript-running-title-maximum-characters": ("The manuscript running title", "characters"),
}

_SECTION_COUNT_UNITS = {
    "section-maximum-characters": "characters",
    "section-minimum-characters": "characters",
    "section-maximum-words": "words",
    "section-minimum-words": "words",
    "section-maximum-paragraphs": "paragraphs",
}

_FIXED_MESSAGES = {
    "bibliography-doi-exist": (
        "DOI included for bibliographic references",
        "DOI is required for bibliographic references",
    ),
    "bibliography-doi-format": (
        "DOI format for bibliographic references is correct",
        "Incorrect DOI format for a bibliographic reference",
    ),
    "figure-contains-image": (
        "Image data for figure is included",
        "Image data for figure is missing",
    ),
    "keywords-order": (
        "Keywords are listed in alphabetical order",
        "Keywords must be listed in alphabetical order",
    ),
}


def _comparison(result_type: str) -> str:
    return "less than or equal to" if "maximum" in result_type.split("-") else "more than or equal to"


def _format_number(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


class MessageFormatter:
    """Turns a result's (type, passed, data) into an English sentence."""

    def __init__(self, catalog: TemplateCatalog):
        self.catalog = catalog

    def section_name(self, category_id: Optional[str]) -> str:
        return self.catalog.category_name(category_id)

    def message(self, result: ValidationResult) -> str:
        passed, data, result_type = result.passed, result.data, result.type

        def pick(valid: str, invalid: Optional[str] = None) -> str:
            return valid if passed else (invalid if invalid is not None else valid)

        if result_type in _FIXED_MESSAGES:
            return pick(*_FIXED_MESSAGES[result_type])

        if result_type in _COUNT_SUBJECTS:
            subject, unit = _COUNT_SUBJECTS[result_type]
            bound = f"{_comparison(result_type)} {data.get('value')} {unit}"
            return pick(f"{subject} has {bound}", f"{subject} must have {bound}")

        if result_type in _SECTION_COUNT_UNITS:
            name = self.section_name(data.get("sectionCategory"))
            bound = f"{_comparison(result_type)} {data.get('value')} {_SECTION_COUNT_UNITS[result_type]}"
            return pick(f'"{name}" has {bound}', f'"{name}" must have {bound}')

        if result_type == "required-section":
            name = self.section_name(data.get("sectionCategory"))
            return f'There must exist a "{name}" section'

        if result_type == "section-order":
            sections = ", ".join(self.section_name(c) for c in data.get("order") or [])
            return pick(
                f"Sections are listed in the correct order {sections}",
                f'Sections must be listed in the following order: "{sections}"',
            )

        if result_type == "section-body-has-content":
            category = data.get("sectionCategory")
            title = self.section_name(category)
            if category == BIBLIOGRAPHY_CATEGORY and data.get("sectionTitle"):
                title = data["sectionTitle"]
            return pick(f'"{title}" section has content (is not empty)', f'"{title}" section must not be empty')

        if result_type == "section-category-uniqueness":
            name = self.section_name(data.get("sectionCategory"))
            return pick(
                f'The scope has at most one "{name}" section',
                f'Cannot have more than one "{name}" section in the same scope',
            )

        if result_type == "section-title-match":
            title = data.get("title")
            name = self.section_name(data.get("sectionCategory"))
            return pick(f'Title for "{title}" is correct', f'Title for "{name}" section should be "{title}"')

        if result_type == "section-title-contains-content":
            name = self.section_name(data.get("sectionCategory"))
            return pick(f'"{name}" title has content (is not empty)', f'"{name}" title cannot be empty')

        if result_type == "figure-format-validation":
            return self._figure_format(data, pick)

        if result_type.startswith("figure-") and result_type.endswith("-resolution"):
            return self._figure_resolution(result_type, data, pick)

        return pick("Requirement passed", "Requirement did not pass")

    def _figure_format(self, data: Dict[str, Any], pick) -> str:
        content_type = data.get("contentType") or ""
        shown = content_type.partition("/")[2].upper() or (data.get("format") or "").upper()
        allowed = ",".join(t.upper() for t in data.get("allowedImageTypes") or [])
        return pick(
            f"Required image file format ({shown})",
            f"{shown} format is not allowed, allowed formats ({allowed})",
        )

    def _figure_resolution(self, result_type: str, data: Dict[str, Any], pick) -> str:
        # figure-{minimum,maximum}-{width,height}-resolution
        _, bound, dimension, _ = result_type.split("-")
        comparison = "less than or equal to" if bound == "maximum" else "greater than or equal to"
        adjective = "wide" if dimension == "width" else "tall"
        value = data.get("value")
        subject = f"Figure {dimension}"
        dpi = data.get("dpi")
        if dpi:
            cm = _format_number(value * 2.54 / dpi)
            detail = f"{comparison} {cm}cm {adjective} at {dpi}DPI ({value}px)"
        else:
            detail = f"{comparison} ({value}px)"
        return pick(f"{subject} is {detail}", f"{subject} must be {detail}")


def append_validation_messages(results: List[ValidationResult], formatter: MessageFormatter) -> List[ValidationResult]:
    for result in results:
        result.message = formatter.message(result)
    return results
