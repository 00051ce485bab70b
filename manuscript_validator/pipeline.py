"""
Autofix Pipeline

Validate, fix what is fixable, and validate again until nothing fixable is
left failing or the pass limit is reached.

Some fixes only become visible to the next validation: the section order is
not checked while required sections are missing, so a document missing a
section and out of order needs one pass to add the section and a second pass
to reorder. ``AutofixConfig.max_passes`` defaults to two for that reason.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from manuscript_validator.fix import run_manuscript_fixes
from manuscript_validator.models import Model
from manuscript_validator.results import ValidationResult
from manuscript_validator.validate import GetBinary, ManuscriptValidator, ValidationOptions

logger = logging.getLogger(__name__)


@dataclass
class AutofixConfig:
    """Configuration for the autofix pipeline."""
    max_passes: int = 2
    validate_image_files: bool = True

    def validation_options(self) -> ValidationOptions:
        return ValidationOptions(validate_image_files=self.validate_image_files)


@dataclass
class AutofixStats:
    passes: int = 0
    initial_failed: int = 0
    final_failed: int = 0
    models_before: int = 0
    models_after: int = 0
    fixes_applied: Dict[str, int] = field(default_factory=dict)


@dataclass
class AutofixResult:
    data: List[Model]
    passes: int
    initial_results: List[ValidationResult]
    final_results: List[ValidationResult]
    stats: AutofixStats

    @property
    def fixed(self) -> bool:
        return not failed_fixable(self.final_results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passes": self.passes,
            "stats": {
                "passes": self.stats.passes,
                "initial_failed": self.stats.initial_failed,
                "final_failed": self.stats.final_failed,
                "models_before": self.stats.models_before,
                "models_after": self.stats.models_after,
                "fixes_applied": dict(self.stats.fixes_applied),
            },
            "initial_results": [r.to_dict() for r in self.initial_results],
            "final_results": [r.to_dict() for r in self.final_results],
        }


def failed_fixable(results: List[ValidationResult]) -> List[ValidationResult]:
    return [r for r in results if r.fixable and not r.passed and not r.ignored]


async def run_validation(
    data: List[Model],
    manuscript_id: str,
    validator: ManuscriptValidator,
    get_binary: Optional[GetBinary] = None,
    options: Optional[ValidationOptions] = None,
) -> List[ValidationResult]:
    return await validator.validate(data, manuscript_id, get_binary, options)


async def run_autofix(
    data: List[Model],
    manuscript_id: str,
    validator: ManuscriptValidator,
    get_binary: Optional[GetBinary] = None,
    config: Optional[AutofixConfig] = None,
) -> AutofixResult:
    """
    Repeat validate -> fix up to ``config.max_passes`` times, then validate once more.

    ``data`` is modified in place.
    """
    config = config or AutofixConfig()
    options = config.validation_options()
    stats = AutofixStats(models_before=len(data))

    results = await run_validation(data, manuscript_id, validator, get_binary, options)
    initial_results = results
    stats.initial_failed = sum(1 for r in results if not r.passed)

    passes = 0
    while passes < config.max_passes:
        to_fix = failed_fixable(results)
        if not to_fix:
            break
        passes += 1
        logger.info(f"Autofix pass {passes}: {len(to_fix)} fixable failures")
        run_manuscript_fixes(data, manuscript_id, to_fix)
        for r in to_fix:
            stats.fixes_applied[r.type] = stats.fixes_applied.get(r.type, 0) + 1
        results = await run_validation(data, manuscript_id, validator, get_binary, options)

    stats.passes = passes
    stats.final_failed = sum(1 for r in results if not r.passed)
    stats.models_after = len(data)

    remaining = failed_fixable(results)
    if remaining:
        logger.warning(f"{len(remaining)} fixable failures remain after {passes} passes")
    else:
        logger.info(f"Autofix finished after {passes} passes")

    return AutofixResult(
        data=data,
        passes=passes,
        initial_results=initial_results,
        final_results=results,
        stats=stats,
    )
