"""
Result Filter

Stored validation results the user did not ignore are stale and dropped before
every run. Ignored ones become a side-table of suppression keys: a fresh
result whose key matches an ignored record of the same kind is not reported,
even though every run mints new result IDs.
"""
from __future__ import annotations
from typing import Iterable, List, Optional, Set, Tuple
import json
import logging

from manuscript_validator.models import Model, ModelMap
from manuscript_validator.results import (
    BIBLIOGRAPHY_RESULT,
    COUNT_RESULT,
    FIGURE_FORMAT_RESULT,
    FIGURE_IMAGE_RESULT,
    FIGURE_RESOLUTION_RESULT,
    KEYWORDS_ORDER_RESULT,
    REQUIRED_SECTION_RESULT,
    SECTION_BODY_RESULT,
    SECTION_CATEGORY_RESULT,
    SECTION_ORDER_RESULT,
    SECTION_TITLE_RESULT,
    ValidationResult,
    is_validation_result,
)

logger = logging.getLogger(__name__)

SuppressionKey = Tuple[str, str, str]

# kinds compared by their whole payload
PAYLOAD_KINDS = {REQUIRED_SECTION_RESULT, COUNT_RESULT, FIGURE_RESOLUTION_RESULT}
# kinds compared by the required order
ORDER_KINDS = {SECTION_ORDER_RESULT, KEYWORDS_ORDER_RESULT}
# kinds compared by the element they point at
ELEMENT_KINDS = {
    SECTION_TITLE_RESULT,
    SECTION_BODY_RESULT,
    SECTION_CATEGORY_RESULT,
    BIBLIOGRAPHY_RESULT,
    FIGURE_FORMAT_RESULT,
    FIGURE_IMAGE_RESULT,
}


def _canonical(value) -> str:
    # JSON keeps 1, 1.0 and true apart, so equal keys mean strictly equal payloads
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def suppression_key(result: ValidationResult) -> Optional[SuppressionKey]:
    kind = result.object_type
    if kind in PAYLOAD_KINDS:
        return kind, result.type, _canonical(result.data)
    if kind in ORDER_KINDS:
        return kind, result.type, _canonical(result.data.get("order"))
    if kind in ELEMENT_KINDS:
        return kind, result.type, result.affected_element_id or ""
    return None


def clear_validation_results(model_map: ModelMap) -> ModelMap:
    """Remove stored results that are not ignored from ``model_map`` (in place)."""
    stale = [i for i, m in model_map.items() if is_validation_result(m) and not m.get("ignored")]
    for model_id in stale:
        del model_map[model_id]
    if stale:
        logger.debug(f"Cleared {len(stale)} stale validation results")
    return model_map


class IgnoredResults:
    """Suppression keys of the results a user chose to ignore."""

    def __init__(self, records: Iterable[ValidationResult] = ()):
        self._keys: Set[SuppressionKey] = set()
        for record in records:
            self.add(record)

    @classmethod
    def from_models(cls, models: Iterable[Model]) -> "IgnoredResults":
        return cls(
            ValidationResult.from_dict(m)
            for m in models
            if is_validation_result(m) and m.get("ignored")
        )

    def add(self, result: ValidationResult) -> None:
        key = suppression_key(result)
        if key is not None:
            self._keys.add(key)

    def matches(self, result: ValidationResult) -> bool:
        key = suppression_key(result)
        return key is not None and key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class ResultCollector:
    """Sink for freshly produced results that drops the ignored ones."""

    def __init__(self, ignored: IgnoredResults):
        self.ignored = ignored
        self.results: List[ValidationResult] = []
        self.suppressed = 0

    def add(self, result: Optional[ValidationResult]) -> None:
        if result is None:
            return
        if self.ignored.matches(result):
            self.suppressed += 1
            return
        self.results.append(result)


def add_validation_results(model_map: ModelMap) -> ResultCollector:
    clear_validation_results(model_map)
    ignored = IgnoredResults.from_models(model_map.values())
    logger.debug(f"{len(ignored)} ignored validation results on record")
    return ResultCollector(ignored)


def attach_results(data: Iterable[Model], results: Iterable[ValidationResult]) -> List[Model]:
    """Models with stale results replaced by ``results``; ignored records are kept."""
    kept = [m for m in data if not (is_validation_result(m) and not m.get("ignored"))]
    kept.extend(r.to_dict() for r in results)
    return kept
