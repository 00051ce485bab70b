"""
Manuscript Validator

Checks one manuscript against a template's requirements. The work is an
ordered battery of independent checks; each one reads the document and yields
zero or more validation results into a shared collector that drops results
the user has ignored.

Checks may declare dependencies on other checks (``after``) and a guard
(``when``) evaluated against what has been collected so far. The section order
check uses this to run only when no required section is missing, ignored or not.

A validation call is all-or-nothing: any error raised by a check aborts the
call and no results are returned.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)
import copy
import inspect
import logging
import re
import unicodedata

from manuscript_validator.errors import InputError, InvariantError
from manuscript_validator.images import content_type_format, inspect_image
from manuscript_validator.messages import MessageFormatter, append_validation_messages
from manuscript_validator.models import (
    BIBLIOGRAPHY_CATEGORY,
    BIBLIOGRAPHY_ELEMENT,
    CITATION,
    CONTRIBUTOR,
    EQUATION_ELEMENT,
    FIGURE,
    FIGURE_ELEMENT,
    KEYWORDS_CATEGORY,
    PARAGRAPH_ELEMENT,
    TABLE,
    ManuscriptDocument,
    Model,
    SectionNode,
    section_scope,
)
from manuscript_validator.requirements import (
    SECTION_COUNT_FIELDS,
    CountRequirement,
    RequiredSection,
    Requirements,
    build_requirements,
)
from manuscript_validator.result_filter import ResultCollector, add_validation_results
from manuscript_validator.results import REQUIRED_SECTION_RESULT, ValidationResult
from manuscript_validator.rich_text import text_content
from manuscript_validator.statistics import (
    DefaultStatistics,
    StatisticsProvider,
    build_manuscript_text,
    build_text,
    element_text,
)
from manuscript_validator.templates import TemplateCatalog

logger = logging.getLogger(__name__)

GetBinary = Callable[[str], Union[Optional[bytes], Awaitable[Optional[bytes]]]]

VALID_DOI_REGEX = re.compile(r"^(https://doi.org/)?10\..+/.+")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ValidationOptions:
    """Per-call switches."""
    # Figure format/image/resolution checks need the binary payloads
    validate_image_files: bool = True


@dataclass
class SectionCounts:
    characters: int
    words: int
    paragraphs: int


@dataclass
class SectionRecord:
    node: SectionNode
    counts: SectionCounts
    position: int  # index among its siblings


@dataclass
class ValidationContext:
    doc: ManuscriptDocument
    requirements: Requirements
    catalog: TemplateCatalog
    statistics: StatisticsProvider
    options: ValidationOptions
    collector: ResultCollector
    get_binary: Optional[GetBinary] = None
    # top-level sections by category, in document order
    sections: Dict[str, List[SectionRecord]] = field(default_factory=dict)
    # sections at every depth by category
    every_section: Dict[str, List[SectionRecord]] = field(default_factory=dict)
    _binaries: Dict[str, Optional[bytes]] = field(default_factory=dict)

    async def fetch(self, model_id: str) -> Optional[bytes]:
        """Binary payload of a model, fetched at most once per call."""
        if model_id not in self._binaries:
            data = None
            if self.get_binary is not None:
                data = self.get_binary(model_id)
                if inspect.isawaitable(data):
                    data = await data
            self._binaries[model_id] = data or None
        return self._binaries[model_id]


CheckRunner = Callable[[ValidationContext], AsyncIterator[ValidationResult]]


@dataclass
class Check:
    name: str
    run: CheckRunner
    after: Tuple[str, ...] = ()
    when: Optional[Callable[[ValidationContext], bool]] = None
    requires_images: bool = False


# =============================================================================
# Helpers
# =============================================================================

def _is_maximum(result_type: str) -> bool:
    return "maximum" in result_type.split("-")


def validate_count(
    result_type: str,
    count: int,
    requirement: Optional[CountRequirement],
    affected_element_id: Optional[str] = None,
    **extra: Any,
) -> Optional[ValidationResult]:
    """Compare a count against an inclusive bound; None when there is no bound."""
    if requirement is None:
        return None
    value = requirement.count
    passed = count <= value if _is_maximum(result_type) else count >= value
    data: Dict[str, Any] = {"count": count, "value": value}
    data.update({k: v for k, v in extra.items() if v is not None})
    return ValidationResult.build(
        result_type,
        passed,
        severity=requirement.severity,
        data=data,
        affected_element_id=affected_element_id,
    )


def is_contiguous(positions: Iterable[int]) -> bool:
    ordered = sorted(positions)
    return all(b - a == 1 for a, b in zip(ordered, ordered[1:]))


def required_section_order(required_sections: List[RequiredSection]) -> List[str]:
    """Required categories in template order (description priority, then declaration)."""
    ordered = sorted(required_sections, key=lambda r: r.section_description.get("priority") or 0)
    return list(dict.fromkeys(r.category for r in ordered))


def keyword_sort_key(name: str) -> Tuple[str, str]:
    """
    Case-, punctuation- and whitespace-insensitive key.

    Accents only break ties: "éclair" sorts with "eclair", before "Zebra".
    """
    kept = [ch for ch in name if not ch.isspace() and unicodedata.category(ch)[0] not in ("P", "Z")]
    accented = "".join(kept).casefold()
    base = "".join(
        ch for ch in unicodedata.normalize("NFD", accented) if unicodedata.category(ch) != "Mn"
    )
    return base, accented


def is_valid_doi(doi: str) -> bool:
    return bool(VALID_DOI_REGEX.match(doi))


def get_references(doc: ManuscriptDocument) -> List[str]:
    """IDs of the bibliography items cited anywhere, in first-citation order."""
    references: Dict[str, None] = {}
    for citation in doc.models_by_type(CITATION):
        for item in citation.get("embeddedCitationItems") or []:
            reference = item.get("bibliographyItem")
            if reference:
                references[reference] = None
    return list(references)


def contains_body_content(doc: ManuscriptDocument, node: SectionNode) -> bool:
    """True if the section or its subsections hold anything besides titles."""
    is_bibliography = node.category == BIBLIOGRAPHY_CATEGORY
    for section in node.walk():
        for element in doc.elements(section):
            object_type = element.get("objectType")
            if object_type == BIBLIOGRAPHY_ELEMENT:
                if is_bibliography:
                    return True
            elif object_type == EQUATION_ELEMENT:
                equation = doc.get(element.get("containedObjectID", ""))
                if equation and (equation.get("TeXRepresentation") or "").strip():
                    return True
            elif object_type == FIGURE_ELEMENT:
                return True
            elif element_text(doc, element).strip():
                return True
    return False


def _count_paragraphs(doc: ManuscriptDocument, node: SectionNode) -> int:
    return sum(1 for e in doc.elements(node) if e.get("objectType") == PARAGRAPH_ELEMENT)


def _section_record(doc: ManuscriptDocument, statistics: StatisticsProvider, node: SectionNode, position: int) -> SectionRecord:
    text = build_text(doc, node)
    counts = SectionCounts(
        characters=statistics.count_characters(text),
        words=statistics.count_words(text),
        paragraphs=_count_paragraphs(doc, node),
    )
    return SectionRecord(node=node, counts=counts, position=position)


def build_sections(doc: ManuscriptDocument, statistics: StatisticsProvider, recurse: bool = False) -> Dict[str, List[SectionRecord]]:
    output: Dict[str, List[SectionRecord]] = {}

    def visit(siblings: List[SectionNode]) -> None:
        for position, node in enumerate(siblings):
            if node.category:
                output.setdefault(node.category, []).append(_section_record(doc, statistics, node, position))
            if recurse:
                visit(node.children)

    visit(doc.sections)
    return output


# =============================================================================
# Checks
# =============================================================================

async def check_required_sections(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for required in ctx.requirements.required_sections:
        yield ValidationResult.build(
            "required-section",
            required.category in ctx.sections,
            severity=required.severity,
            data={
                "sectionDescription": copy.deepcopy(required.section_description),
                "sectionCategory": required.category,
            },
        )


def no_missing_sections(ctx: ValidationContext) -> bool:
    """False while any required section is missing, reported or ignored."""
    if any(r.type == "required-section" and not r.passed for r in ctx.collector.results):
        return False
    return not any(
        model.get("objectType") == REQUIRED_SECTION_RESULT and model.get("ignored") and not model.get("passed")
        for model in ctx.doc.model_map.values()
    )


async def check_section_order(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    required = ctx.requirements.required_sections
    required_order = required_section_order(required)
    if not required_order:
        return

    passed = True
    current_order: List[str] = []
    for category, records in ctx.sections.items():
        if category not in required_order:
            # optional sections may sit anywhere
            continue
        if not is_contiguous(r.position for r in records):
            passed = False
            break
        current_order.append(category)

    if passed:
        passed = current_order == [c for c in required_order if c in current_order]

    yield ValidationResult.build(
        "section-order",
        passed,
        severity=max(r.severity for r in required),
        data={"order": required_order},
    )


async def check_manuscript_counts(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    counts = ctx.requirements.counts
    text = build_manuscript_text(ctx.doc)
    characters = ctx.statistics.count_characters(text)
    words = ctx.statistics.count_words(text)

    yield validate_count("manuscript-maximum-characters", characters, counts.get("manuscript-maximum-characters"))
    yield validate_count("manuscript-minimum-characters", characters, counts.get("manuscript-minimum-characters"))
    yield validate_count("manuscript-maximum-words", words, counts.get("manuscript-maximum-words"))
    yield validate_count("manuscript-minimum-words", words, counts.get("manuscript-minimum-words"))


async def check_section_counts(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for category, bounds in ctx.requirements.section_counts.items():
        for record in ctx.sections.get(category, []):
            values = {
                "section-maximum-characters": record.counts.characters,
                "section-minimum-characters": record.counts.characters,
                "section-maximum-words": record.counts.words,
                "section-minimum-words": record.counts.words,
                "section-maximum-paragraphs": record.counts.paragraphs,
            }
            for result_type in SECTION_COUNT_FIELDS:
                yield validate_count(
                    result_type,
                    values[result_type],
                    bounds.get(result_type),
                    affected_element_id=record.node.id,
                    sectionCategory=category,
                )


async def check_section_titles(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for requirement in ctx.requirements.section_titles:
        for record in ctx.sections.get(requirement.category, []):
            title = record.node.title
            yield ValidationResult.build(
                "section-title-contains-content",
                bool(title.strip()),
                severity=requirement.severity,
                data={"sectionCategory": requirement.category},
                affected_element_id=record.node.id,
            )
            if requirement.title:
                yield ValidationResult.build(
                    "section-title-match",
                    title == requirement.title,
                    severity=requirement.severity,
                    data={"title": requirement.title, "sectionCategory": requirement.category},
                    affected_element_id=record.node.id,
                )


async def check_section_body(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for category, records in ctx.sections.items():
        for record in records:
            data = {"sectionCategory": category}
            if record.node.title:
                data["sectionTitle"] = record.node.title
            yield ValidationResult.build(
                "section-body-has-content",
                contains_body_content(ctx.doc, record.node),
                data=data,
                affected_element_id=record.node.id,
            )


async def check_section_categories(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for category_id, records in ctx.every_section.items():
        category = ctx.catalog.get_category(category_id)
        if not category or not category.unique_in_scope:
            continue
        scopes = set()
        for record in records:
            scope = section_scope(record.node.section)
            if scope in scopes:
                yield ValidationResult.build(
                    "section-category-uniqueness",
                    False,
                    data={"sectionCategory": category_id},
                    affected_element_id=record.node.id,
                )
            else:
                scopes.add(scope)


async def check_title_counts(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    counts = ctx.requirements.counts
    title = ctx.doc.title
    words = ctx.statistics.count_words(title)
    characters = ctx.statistics.count_characters(title)

    yield validate_count("manuscript-title-maximum-words", words, counts.get("manuscript-title-maximum-words"))
    yield validate_count("manuscript-title-minimum-words", words, counts.get("manuscript-title-minimum-words"))
    yield validate_count("manuscript-title-maximum-characters", characters, counts.get("manuscript-title-maximum-characters"))
    yield validate_count("manuscript-title-minimum-characters", characters, counts.get("manuscript-title-minimum-characters"))


async def check_reference_counts(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    yield validate_count(
        "manuscript-maximum-references",
        len(get_references(ctx.doc)),
        ctx.requirements.counts.get("manuscript-maximum-references"),
    )


def validate_doi(item: Model) -> List[ValidationResult]:
    results: List[ValidationResult] = []
    doi = item.get("DOI")
    if doi:
        results.append(ValidationResult.build(
            "bibliography-doi-format", is_valid_doi(doi), affected_element_id=item["_id"],
        ))
    results.append(ValidationResult.build(
        "bibliography-doi-exist", bool(doi), affected_element_id=item["_id"],
    ))
    return results


async def check_bibliography(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for reference in get_references(ctx.doc):
        item = ctx.doc.require(reference)
        for result in validate_doi(item):
            yield result


async def check_figure_table_counts(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    counts = ctx.requirements.counts
    figures = len(ctx.doc.models_by_type(FIGURE))
    tables = len(ctx.doc.models_by_type(TABLE))

    yield validate_count("manuscript-maximum-figures", figures, counts.get("manuscript-maximum-figures"))
    yield validate_count("manuscript-maximum-tables", tables, counts.get("manuscript-maximum-tables"))
    yield validate_count(
        "manuscript-maximum-combined-figure-tables",
        figures + tables,
        counts.get("manuscript-maximum-combined-figure-tables"),
    )


async def check_figure_formats(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    requirement = ctx.requirements.figure_formats
    if requirement is None:
        return
    for figure in ctx.doc.models_by_type(FIGURE):
        content_type = figure.get("contentType")
        data = await ctx.fetch(figure["_id"])
        info = inspect_image(data) if data else None
        kind = info.format if info and info.format else content_type_format(content_type)
        if not kind and not content_type:
            # nothing to judge the format by
            continue
        yield ValidationResult.build(
            "figure-format-validation",
            kind in requirement.allowed_formats,
            severity=requirement.severity,
            data={
                "contentType": content_type or f"image/{kind}",
                "format": kind,
                "allowedImageTypes": list(requirement.allowed_formats),
            },
            affected_element_id=figure["_id"],
        )


async def check_figure_images(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    for figure in ctx.doc.models_by_type(FIGURE):
        data = await ctx.fetch(figure["_id"])
        yield ValidationResult.build(
            "figure-contains-image",
            data is not None,
            affected_element_id=figure["_id"],
        )


async def check_figure_resolution(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    resolution = ctx.requirements.figure_resolution
    bounds = resolution.bounds
    for figure in ctx.doc.models_by_type(FIGURE):
        figure_id = figure["_id"]
        data = await ctx.fetch(figure_id)
        if data is None:
            continue
        info = inspect_image(data)
        for dimension in ("width", "height"):
            types = (f"figure-minimum-{dimension}-resolution", f"figure-maximum-{dimension}-resolution")
            value = getattr(info, dimension) if info else None
            if value is None:
                if any(t in bounds for t in types):
                    raise InvariantError(f"Unknown image {dimension} for figure {figure_id}")
                continue
            for result_type in types:
                yield validate_count(
                    result_type,
                    value,
                    bounds.get(result_type),
                    affected_element_id=figure_id,
                    dpi=resolution.dpi,
                    id=figure_id,
                )


async def check_keywords_order(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    keyword_ids = list(ctx.doc.manuscript.get("keywordIDs") or [])
    if not keyword_ids:
        return
    keywords_sections = [n for n in ctx.doc.iter_sections(recurse=True) if n.category == KEYWORDS_CATEGORY]
    if len(keywords_sections) > 1:
        raise InputError(f"Found {len(keywords_sections)} keywords sections, expected at most one")

    keywords = [ctx.doc.require(keyword_id) for keyword_id in keyword_ids]
    ordered = sorted(keywords, key=lambda k: keyword_sort_key(k.get("name") or ""))
    order = [k["_id"] for k in ordered]
    yield ValidationResult.build("keywords-order", order == keyword_ids, data={"order": order})


async def check_contributor_counts(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    contributors = [c for c in ctx.doc.models_by_type(CONTRIBUTOR) if c.get("manuscriptID") == ctx.doc.id]
    corresponding = sum(1 for c in contributors if c.get("isCorresponding"))
    yield validate_count(
        "manuscript-maximum-corresponding-authors",
        corresponding,
        ctx.requirements.counts.get("manuscript-maximum-corresponding-authors"),
    )


async def check_running_title_count(ctx: ValidationContext) -> AsyncIterator[ValidationResult]:
    running_title = text_content(ctx.doc.manuscript.get("runningTitle"))
    if running_title:
        yield validate_count(
            "manuscript-running-title-maximum-characters",
            ctx.statistics.count_characters(running_title),
            ctx.requirements.counts.get("manuscript-running-title-maximum-characters"),
        )


def default_checks() -> List[Check]:
    return [
        Check("required-sections", check_required_sections),
        Check("section-order", check_section_order, after=("required-sections",), when=no_missing_sections),
        Check("manuscript-counts", check_manuscript_counts),
        Check("section-counts", check_section_counts),
        Check("section-titles", check_section_titles),
        Check("section-body", check_section_body),
        Check("section-categories", check_section_categories),
        Check("title-counts", check_title_counts),
        Check("reference-counts", check_reference_counts),
        Check("bibliography", check_bibliography),
        Check("figure-table-counts", check_figure_table_counts),
        Check("figure-formats", check_figure_formats, requires_images=True),
        Check("figure-images", check_figure_images, requires_images=True),
        Check("figure-resolution", check_figure_resolution, requires_images=True),
        Check("keywords-order", check_keywords_order),
        Check("contributor-counts", check_contributor_counts),
        Check("running-title-count", check_running_title_count),
    ]


def schedule_checks(checks: List[Check]) -> List[Check]:
    """Declared order, moved only as far as needed to run dependencies first."""
    names = {c.name for c in checks}
    for check in checks:
        for dependency in check.after:
            if dependency not in names:
                raise ValueError(f"Check {check.name} depends on unknown check {dependency}")

    scheduled: List[Check] = []
    done: set = set()
    pending = list(checks)
    while pending:
        ready = next((c for c in pending if all(d in done for d in c.after)), None)
        if ready is None:
            raise ValueError(f"Circular check dependencies: {[c.name for c in pending]}")
        pending.remove(ready)
        scheduled.append(ready)
        done.add(ready.name)
    return scheduled


# =============================================================================
# Validator
# =============================================================================

class ManuscriptValidator:
    """Validates manuscripts against one template."""

    def __init__(
        self,
        template: Model,
        catalog: TemplateCatalog,
        statistics: Optional[StatisticsProvider] = None,
        checks: Optional[List[Check]] = None,
    ):
        self.template = template
        self.catalog = catalog
        self.statistics = statistics or DefaultStatistics()
        self.checks = schedule_checks(checks if checks is not None else default_checks())
        self.formatter = MessageFormatter(catalog)

    async def validate(
        self,
        data: Iterable[Model],
        manuscript_id: str,
        get_binary: Optional[GetBinary] = None,
        options: Optional[ValidationOptions] = None,
    ) -> List[ValidationResult]:
        options = options or ValidationOptions()
        doc = ManuscriptDocument.from_data(data, manuscript_id)
        collector = add_validation_results(doc.model_map)

        ctx = ValidationContext(
            doc=doc,
            requirements=build_requirements(self.template, self.catalog),
            catalog=self.catalog,
            statistics=self.statistics,
            options=options,
            collector=collector,
            get_binary=get_binary,
        )
        ctx.sections = build_sections(doc, self.statistics)
        ctx.every_section = build_sections(doc, self.statistics, recurse=True)

        for check in self.checks:
            if check.requires_images and not options.validate_image_files:
                logger.debug(f"Skipping {check.name}: image validation disabled")
                continue
            if check.when is not None and not check.when(ctx):
                logger.debug(f"Skipping {check.name}: precondition not met")
                continue
            before = len(collector.results)
            async for result in check.run(ctx):
                collector.add(result)
            logger.debug(f"{check.name}: {len(collector.results) - before} results")

        results = collector.results
        failed = sum(1 for r in results if not r.passed)
        logger.info(
            f"Validated {manuscript_id} against {self.template.get('_id')}: "
            f"{len(results)} results, {failed} failed, {collector.suppressed} ignored"
        )
        return append_validation_messages(results, self.formatter)


def create_requirements_validator(
    template: Model,
    catalog: TemplateCatalog,
    statistics: Optional[StatisticsProvider] = None,
) -> Callable[..., Awaitable[List[ValidationResult]]]:
    return ManuscriptValidator(template, catalog, statistics).validate


def create_template_validator(
    template_id: str,
    catalog: TemplateCatalog,
    statistics: Optional[StatisticsProvider] = None,
) -> Callable[..., Awaitable[List[ValidationResult]]]:
    return create_requirements_validator(catalog.get_template(template_id), catalog, statistics)
