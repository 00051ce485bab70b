from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Optional

from manuscript_validator.models import Model, generate_id

ResultType = Literal[
    "required-section",
    "section-order",
    "section-category-uniqueness",
    "section-body-has-content",
    "section-title-contains-content",
    "section-title-match",
    "manuscript-maximum-characters",
    "manuscript-minimum-characters",
    "manuscript-maximum-words",
    "manuscript-minimum-words",
    "manuscript-title-maximum-characters",
    "manuscript-title-minimum-characters",
    "manuscript-title-maximum-words",
    "manuscript-title-minimum-words",
    "manuscript-running-title-maximum-characters",
    "manuscript-maximum-figures",
    "manuscript-maximum-tables",
    "manuscript-maximum-combined-figure-tables",
    "manuscript-maximum-references",
    "manuscript-maximum-corresponding-authors",
    "section-maximum-characters",
    "section-minimum-characters",
    "section-maximum-words",
    "section-minimum-words",
    "section-maximum-paragraphs",
    "figure-minimum-width-resolution",
    "figure-maximum-width-resolution",
    "figure-minimum-height-resolution",
    "figure-maximum-height-resolution",
    "figure-format-validation",
    "figure-contains-image",
    "bibliography-doi-exist",
    "bibliography-doi-format",
    "keywords-order",
]

REQUIRED_SECTION_RESULT = "MPRequiredSectionValidationResult"
SECTION_ORDER_RESULT = "MPSectionOrderValidationResult"
SECTION_CATEGORY_RESULT = "MPSectionCategoryValidationResult"
SECTION_BODY_RESULT = "MPSectionBodyValidationResult"
SECTION_TITLE_RESULT = "MPSectionTitleValidationResult"
COUNT_RESULT = "MPCountValidationResult"
FIGURE_RESOLUTION_RESULT = "MPFigureResolution"
FIGURE_FORMAT_RESULT = "MPFigureFormatValidationResult"
FIGURE_IMAGE_RESULT = "MPFigureImageValidationResult"
BIBLIOGRAPHY_RESULT = "MPBibliographyValidationResult"
KEYWORDS_ORDER_RESULT = "MPKeywordsOrderValidationResult"

_COUNT_TYPES = [
    "manuscript-maximum-characters",
    "manuscript-minimum-characters",
    "manuscript-maximum-words",
    "manuscript-minimum-words",
    "manuscript-title-maximum-characters",
    "manuscript-title-minimum-characters",
    "manuscript-title-maximum-words",
    "manuscript-title-minimum-words",
    "manuscript-running-title-maximum-characters",
    "manuscript-maximum-figures",
    "manuscript-maximum-tables",
    "manuscript-maximum-combined-figure-tables",
    "manuscript-maximum-references",
    "manuscript-maximum-corresponding-authors",
    "section-maximum-characters",
    "section-minimum-characters",
    "section-maximum-words",
    "section-minimum-words",
    "section-maximum-paragraphs",
]

# result type -> result kind (objectType)
RESULT_OBJECT_TYPES: Dict[str, str] = {
    "required-section": REQUIRED_SECTION_RESULT,
    "section-order": SECTION_ORDER_RESULT,
    "section-category-uniqueness": SECTION_CATEGORY_RESULT,
    "section-body-has-content": SECTION_BODY_RESULT,
    "section-title-contains-content": SECTION_TITLE_RESULT,
    "section-title-match": SECTION_TITLE_RESULT,
    **{t: COUNT_RESULT for t in _COUNT_TYPES},
    "figure-minimum-width-resolution": FIGURE_RESOLUTION_RESULT,
    "figure-maximum-width-resolution": FIGURE_RESOLUTION_RESULT,
    "figure-minimum-height-resolution": FIGURE_RESOLUTION_RESULT,
    "figure-maximum-height-resolution": FIGURE_RESOLUTION_RESULT,
    "figure-format-validation": FIGURE_FORMAT_RESULT,
    "figure-contains-image": FIGURE_IMAGE_RESULT,
    "bibliography-doi-exist": BIBLIOGRAPHY_RESULT,
    "bibliography-doi-format": BIBLIOGRAPHY_RESULT,
    "keywords-order": KEYWORDS_ORDER_RESULT,
}

RESULT_KINDS = frozenset(RESULT_OBJECT_TYPES.values())

FIXABLE_TYPES = frozenset({"required-section", "section-order", "section-title-match", "keywords-order"})


def is_validation_result(model: Model) -> bool:
    return model.get("objectType") in RESULT_KINDS


@dataclass
class ValidationResult:
    type: ResultType
    passed: bool
    object_type: str
    severity: int = 0
    data: Dict[str, Any] = field(default_factory=dict)
    affected_element_id: Optional[str] = None
    fixable: bool = False
    ignored: bool = False
    id: str = ""
    message: Optional[str] = None

    @classmethod
    def build(
        cls,
        type: ResultType,
        passed: bool,
        severity: int = 0,
        data: Optional[Dict[str, Any]] = None,
        affected_element_id: Optional[str] = None,
    ) -> "ValidationResult":
        """New result with a fresh ID; kind and fixability follow from ``type``."""
        object_type = RESULT_OBJECT_TYPES[type]
        return cls(
            type=type,
            passed=bool(passed),
            object_type=object_type,
            severity=severity,
            data=data if data is not None else {},
            affected_element_id=affected_element_id,
            fixable=type in FIXABLE_TYPES,
            id=generate_id(object_type),
        )

    def as_ignored(self) -> "ValidationResult":
        return replace(self, ignored=True)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "_id": self.id,
            "objectType": self.object_type,
            "type": self.type,
            "passed": self.passed,
            "severity": self.severity,
            "ignored": self.ignored,
            "data": self.data,
        }
        if self.fixable:
            out["fixable"] = True
        if self.affected_element_id is not None:
            out["affectedElementId"] = self.affected_element_id
        if self.message is not None:
            out["message"] = self.message
        return out

    @classmethod
    def from_dict(cls, model: Model) -> "ValidationResult":
        result_type = model["type"]
        return cls(
            type=result_type,
            passed=bool(model.get("passed")),
            object_type=model.get("objectType") or RESULT_OBJECT_TYPES[result_type],
            severity=model.get("severity", 0),
            data=dict(model.get("data") or {}),
            affected_element_id=model.get("affectedElementId"),
            fixable=bool(model.get("fixable", False)),
            ignored=bool(model.get("ignored", False)),
            id=model.get("_id", ""),
            message=model.get("message"),
        )
