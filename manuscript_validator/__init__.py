"""
Manuscript Validator

Checks manuscripts against the requirements of an editorial template and
repairs the fixable failures (missing sections, section order, section
titles, keyword order).
"""
from manuscript_validator.errors import ManuscriptValidatorError, InputError, InvariantError
from manuscript_validator.templates import TemplateCatalog, SectionCategory, load_catalog
from manuscript_validator.requirements import Requirements, build_requirements
from manuscript_validator.results import ValidationResult, FIXABLE_TYPES
from manuscript_validator.validate import (
    ManuscriptValidator,
    ValidationOptions,
    create_requirements_validator,
    create_template_validator,
)
from manuscript_validator.fix import run_manuscript_fixes
from manuscript_validator.messages import MessageFormatter, append_validation_messages
from manuscript_validator.pipeline import AutofixConfig, AutofixResult, run_autofix, run_validation
from manuscript_validator.bundle import BundleData, load_bundle

__all__ = [
    "ManuscriptValidatorError",
    "InputError",
    "InvariantError",
    "TemplateCatalog",
    "SectionCategory",
    "load_catalog",
    "Requirements",
    "build_requirements",
    "ValidationResult",
    "FIXABLE_TYPES",
    "ManuscriptValidator",
    "ValidationOptions",
    "create_requirements_validator",
    "create_template_validator",
    "run_manuscript_fixes",
    "MessageFormatter",
    "append_validation_messages",
    "AutofixConfig",
    "AutofixResult",
    "run_autofix",
    "run_validation",
    "BundleData",
    "load_bundle",
]
