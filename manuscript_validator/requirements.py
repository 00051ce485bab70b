"""
Requirement Extractor

Turns a template's requirement references, embedded requirement models and
scalar overrides into the normalized requirement groups the validator checks:

- required sections (with their section descriptions)
- per-category section count bounds
- section title rules
- manuscript-level count bounds, keyed by the result type they produce
- figure format allow-list and figure resolution bounds (+ DPI)

Absent fields mean "no bound"; requirements flagged ``ignored`` are dropped.
"""
from __future__ import annotations
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from manuscript_validator.models import Model
from manuscript_validator.templates import TemplateCatalog

logger = logging.getLogger(__name__)

MANDATORY_SUBSECTIONS = "MPMandatorySubsectionsRequirement"
FIGURE_FORMAT = "MPFigureFormatRequirement"

CountMetric = namedtuple("CountMetric", "result_type object_type reference_field scalar_field")

COUNT_METRICS = [
    CountMetric("manuscript-maximum-characters", "MPMaximumManuscriptCharacterCountRequirement",
                "maxCharCountRequirement", "maxCharCount"),
    CountMetric("manuscript-minimum-characters", "MPMinimumManuscriptCharacterCountRequirement",
                "minCharCountRequirement", "minCharCount"),
    CountMetric("manuscript-maximum-words", "MPMaximumManuscriptWordCountRequirement",
                "maxWordCountRequirement", "maxWordCount"),
    CountMetric("manuscript-minimum-words", "MPMinimumManuscriptWordCountRequirement",
                "minWordCountRequirement", "minWordCount"),
    CountMetric("manuscript-title-maximum-characters", "MPMaximumManuscriptTitleCharacterCountRequirement",
                "maxManuscriptTitleCharacterCountRequirement", "maxManuscriptTitleCharacterCount"),
    CountMetric("manuscript-title-minimum-characters", "MPMinimumManuscriptTitleCharacterCountRequirement",
                "minManuscriptTitleCharacterCountRequirement", "minManuscriptTitleCharacterCount"),
    CountMetric("manuscript-title-maximum-words", "MPMaximumManuscriptTitleWordCountRequirement",
                "maxManuscriptTitleWordCountRequirement", "maxManuscriptTitleWordCount"),
    CountMetric("manuscript-title-minimum-words", "MPMinimumManuscriptTitleWordCountRequirement",
                "minManuscriptTitleWordCountRequirement", "minManuscriptTitleWordCount"),
    CountMetric("manuscript-running-title-maximum-characters", "MPMaximumManuscriptRunningTitleCharacterCountRequirement",
                "manuscriptRunningTitleRequirement", "maxRunningTitleCharacterCount"),
    CountMetric("manuscript-maximum-figures", "MPMaximumFigureCountRequirement",
                "maxFigureCountRequirement", "maxFigureCount"),
    CountMetric("manuscript-maximum-tables", "MPMaximumTableCountRequirement",
                "maxTableCountRequirement", "maxTableCount"),
    CountMetric("manuscript-maximum-combined-figure-tables", "MPMaximumCombinedFigureTableCountRequirement",
                "maxCombinedFigureTableCountRequirement", "maxCombinedFigureTableCount"),
    CountMetric("manuscript-maximum-references", "MPMaximumReferenceCountRequirement",
                "maxReferenceCountRequirement", "maxReferenceCount"),
    CountMetric("manuscript-maximum-corresponding-authors", "MPMaximumCorrespondingAuthorCountRequirement",
                "maxCorrespondingAuthorCountRequirement", "maxCorrespondingAuthorCount"),
]

FIGURE_RESOLUTION_METRICS = [
    CountMetric("figure-minimum-width-resolution", "MPMinimumFigureWidthRequirement",
                "minFigureWidthRequirement", "minFigureWidth"),
    CountMetric("figure-maximum-width-resolution", "MPMaximumFigureWidthRequirement",
                "maxFigureWidthRequirement", "maxFigureWidth"),
    CountMetric("figure-minimum-height-resolution", "MPMinimumFigureHeightRequirement",
                "minFigureHeightRequirement", "minFigureHeight"),
    CountMetric("figure-maximum-height-resolution", "MPMaximumFigureHeightRequirement",
                "maxFigureHeightRequirement", "maxFigureHeight"),
]

# section count result type -> section description property
SECTION_COUNT_FIELDS = {
    "section-maximum-characters": "maxCharCount",
    "section-minimum-characters": "minCharCount",
    "section-maximum-words": "maxWordCount",
    "section-minimum-words": "minWordCount",
    "section-maximum-paragraphs": "maxParagraphsCount",
}

REFERENCE_FIELDS = (
    [m.reference_field for m in COUNT_METRICS]
    + [m.reference_field for m in FIGURE_RESOLUTION_METRICS]
    + ["mandatorySubsectionsRequirement", "figureFormatRequirement"]
)

_FORMAT_ALIASES = {"jpg": "jpeg", "tif": "tiff"}


@dataclass(frozen=True)
class CountRequirement:
    count: int
    severity: int = 0


@dataclass
class RequiredSection:
    section_description: Model
    severity: int = 0

    @property
    def category(self) -> str:
        return self.section_description["sectionCategory"]


@dataclass
class SectionTitleRequirement:
    category: str
    severity: int = 0
    title: Optional[str] = None


@dataclass
class FigureFormatRequirement:
    allowed_formats: List[str]
    severity: int = 0


@dataclass
class FigureResolutionRequirement:
    bounds: Dict[str, CountRequirement] = field(default_factory=dict)
    dpi: Optional[int] = None


@dataclass
class Requirements:
    required_sections: List[RequiredSection] = field(default_factory=list)
    section_counts: Dict[str, Dict[str, CountRequirement]] = field(default_factory=dict)
    section_titles: List[SectionTitleRequirement] = field(default_factory=list)
    counts: Dict[str, CountRequirement] = field(default_factory=dict)
    figure_formats: Optional[FigureFormatRequirement] = None
    figure_resolution: FigureResolutionRequirement = field(default_factory=FigureResolutionRequirement)


def _as_int(value: Any, label: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric {label}: {value!r}")
        return None


def build_template_requirement_ids(template: Model) -> List[str]:
    ids: List[str] = list(template.get("requirementIDs") or [])
    for name in REFERENCE_FIELDS:
        requirement_id = template.get(name)
        if isinstance(requirement_id, str) and requirement_id:
            ids.append(requirement_id)
    return list(dict.fromkeys(ids))


def build_template_requirements_map(ids: List[str], catalog: TemplateCatalog) -> Dict[str, Model]:
    requirements: Dict[str, Model] = {}
    for requirement_id in ids:
        requirement = catalog.get_requirement(requirement_id)
        if requirement is None:
            logger.debug(f"Requirement {requirement_id} not found in catalog")
            continue
        requirements[requirement_id] = requirement
    return requirements


def group_requirements(requirements_map: Dict[str, Model], template: Model) -> Dict[str, List[Model]]:
    grouped: Dict[str, List[Model]] = {}
    models = list(requirements_map.values()) + list(template.get("embeddedRequirements") or [])
    for requirement in models:
        object_type = requirement.get("objectType")
        if object_type:
            grouped.setdefault(object_type, []).append(requirement)
    return grouped


def _mandatory_subsections(grouped: Dict[str, List[Model]]) -> List[Model]:
    return [r for r in grouped.get(MANDATORY_SUBSECTIONS, []) if not r.get("ignored")]


def build_required_sections(grouped: Dict[str, List[Model]]) -> List[RequiredSection]:
    required: List[RequiredSection] = []
    for requirement in _mandatory_subsections(grouped):
        severity = requirement.get("severity", 0)
        for description in requirement.get("embeddedSectionDescriptions") or []:
            if description.get("required") and description.get("sectionCategory"):
                required.append(RequiredSection(section_description=description, severity=severity))
    return required


def build_section_count_requirements(grouped: Dict[str, List[Model]]) -> Dict[str, Dict[str, CountRequirement]]:
    section_counts: Dict[str, Dict[str, CountRequirement]] = {}
    for requirement in _mandatory_subsections(grouped):
        severity = requirement.get("severity", 0)
        for description in requirement.get("embeddedSectionDescriptions") or []:
            category = description.get("sectionCategory")
            if not category:
                continue
            bounds = {}
            for result_type, key in SECTION_COUNT_FIELDS.items():
                count = _as_int(description.get(key), f"{category} {key}")
                if count is not None:
                    bounds[result_type] = CountRequirement(count=count, severity=severity)
            if bounds:
                section_counts[category] = bounds
    return section_counts


def build_section_title_requirements(grouped: Dict[str, List[Model]]) -> List[SectionTitleRequirement]:
    return [
        SectionTitleRequirement(
            category=r.category,
            severity=r.severity,
            title=r.section_description.get("title") or None,
        )
        for r in build_required_sections(grouped)
    ]


def _find_count_requirement(grouped: Dict[str, List[Model]], object_type: str) -> Optional[CountRequirement]:
    models = grouped.get(object_type)
    if not models:
        return None
    requirement = models[0]
    if requirement.get("ignored"):
        return None
    count = _as_int(requirement.get("count"), object_type)
    if count is None:
        return None
    return CountRequirement(count=count, severity=requirement.get("severity", 0))


def _build_bounds(grouped: Dict[str, List[Model]], template: Model, metrics: List[CountMetric]) -> Dict[str, CountRequirement]:
    bounds: Dict[str, CountRequirement] = {}
    for metric in metrics:
        requirement = _find_count_requirement(grouped, metric.object_type)
        override = _as_int(template.get(metric.scalar_field), metric.scalar_field)
        if override is not None:
            requirement = CountRequirement(count=override, severity=requirement.severity if requirement else 0)
        if requirement is not None:
            bounds[metric.result_type] = requirement
    return bounds


def build_count_requirements(grouped: Dict[str, List[Model]], template: Model) -> Dict[str, CountRequirement]:
    return _build_bounds(grouped, template, COUNT_METRICS)


def normalize_format(name: str) -> str:
    name = name.strip().lower()
    return _FORMAT_ALIASES.get(name, name)


def build_figure_format_requirement(grouped: Dict[str, List[Model]], template: Model) -> Optional[FigureFormatRequirement]:
    requirement = next((r for r in grouped.get(FIGURE_FORMAT, []) if not r.get("ignored")), None)
    formats = template.get("figureFormats")
    if formats is None and requirement is not None:
        formats = requirement.get("allowedFormats")
    if formats is None:
        return None
    severity = requirement.get("severity", 0) if requirement else 0
    return FigureFormatRequirement(allowed_formats=[normalize_format(f) for f in formats], severity=severity)


def resolve_figure_dpi(template: Model) -> Optional[int]:
    """
    DPI used to express pixel bounds as a physical size.

    Only defined when exactly one of the min/max screen DPI requirements is
    declared, or both are declared with the same value.
    """
    min_dpi = _as_int(template.get("minFigureScreenDPIRequirement"), "minFigureScreenDPIRequirement")
    max_dpi = _as_int(template.get("maxFigureScreenDPIRequirement"), "maxFigureScreenDPIRequirement")
    if min_dpi is not None and max_dpi is not None:
        if min_dpi == max_dpi:
            return min_dpi
        logger.warning(
            f"Template {template.get('_id')} declares both min ({min_dpi}) and max ({max_dpi}) figure DPI; "
            "figure sizes are reported in pixels only"
        )
        return None
    return min_dpi if min_dpi is not None else max_dpi


def build_figure_resolution_requirement(grouped: Dict[str, List[Model]], template: Model) -> FigureResolutionRequirement:
    return FigureResolutionRequirement(
        bounds=_build_bounds(grouped, template, FIGURE_RESOLUTION_METRICS),
        dpi=resolve_figure_dpi(template),
    )


def build_requirements(template: Model, catalog: TemplateCatalog) -> Requirements:
    ids = build_template_requirement_ids(template)
    grouped = group_requirements(build_template_requirements_map(ids, catalog), template)
    requirements = Requirements(
        required_sections=build_required_sections(grouped),
        section_counts=build_section_count_requirements(grouped),
        section_titles=build_section_title_requirements(grouped),
        counts=build_count_requirements(grouped, template),
        figure_formats=build_figure_format_requirement(grouped, template),
        figure_resolution=build_figure_resolution_requirement(grouped, template),
    )
    logger.debug(
        f"Template {template.get('_id')}: {len(requirements.required_sections)} required sections, "
        f"{len(requirements.counts)} count bounds"
    )
    return requirements
