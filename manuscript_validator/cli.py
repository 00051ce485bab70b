from __future__ import annotations
import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from manuscript_validator.bundle import load_bundle, write_bundle
from manuscript_validator.errors import ManuscriptValidatorError
from manuscript_validator.pipeline import AutofixConfig, run_autofix
from manuscript_validator.report import write_json, write_txt
from manuscript_validator.result_filter import attach_results
from manuscript_validator.templates import TemplateCatalog, load_catalog
from manuscript_validator.validate import ManuscriptValidator, ValidationOptions

logger = logging.getLogger(__name__)

TEMPLATES_ENV = "MANUSCRIPT_VALIDATOR_TEMPLATES"
CATEGORIES_ENV = "MANUSCRIPT_VALIDATOR_CATEGORIES"


def _catalog(args) -> TemplateCatalog:
    return load_catalog(args.templates_file, args.categories_file)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _run_validate(args) -> int:
    catalog = _catalog(args)
    bundle = load_bundle(args.bundle)
    manuscript_id = bundle.resolve_manuscript_id(args.manuscript)
    validator = ManuscriptValidator(catalog.get_template(args.template), catalog)
    options = ValidationOptions(validate_image_files=not args.skip_images)

    results = asyncio.run(validator.validate(bundle.data, manuscript_id, bundle.get_binary, options))

    for result in results:
        print(f"{'PASS' if result.passed else 'FAIL'} {result.type}: {result.message}")

    if args.json:
        write_json(args.json, {
            "timestamp_utc": _timestamp(),
            "manuscript_id": manuscript_id,
            "template_id": args.template,
            "stats": {
                "results_total": len(results),
                "results_failed": sum(1 for r in results if not r.passed),
            },
            "results": [r.to_dict() for r in results],
        })
    return 0


def _run_fix(args) -> int:
    catalog = _catalog(args)
    bundle = load_bundle(args.bundle)
    manuscript_id = bundle.resolve_manuscript_id(args.manuscript)
    validator = ManuscriptValidator(catalog.get_template(args.template), catalog)
    config = AutofixConfig(max_passes=args.passes, validate_image_files=not args.skip_images)

    result = asyncio.run(run_autofix(bundle.data, manuscript_id, validator, bundle.get_binary, config))

    out = Path(args.out)
    write_bundle(out, attach_results(result.data, result.final_results), bundle.attachments)

    payload = {
        "timestamp_utc": _timestamp(),
        "manuscript_id": manuscript_id,
        "template_id": args.template,
        "output": str(out),
        **result.to_dict(),
    }
    changelog_json = out.with_name(f"{out.stem}.changelog.json")
    changelog_txt = out.with_name(f"{out.stem}.changelog.txt")
    write_json(str(changelog_json), payload)
    write_txt(str(changelog_txt), payload)

    output = {
        "output": str(out),
        "passes": result.passes,
        "initial_failed": result.stats.initial_failed,
        "final_failed": result.stats.final_failed,
        "fixes_applied": result.stats.fixes_applied,
        "changelog": str(changelog_json),
    }
    print(json.dumps(output, indent=2))
    return 0


def _run_templates(args) -> int:
    catalog = _catalog(args)
    for template_id, template in sorted(catalog.templates.items()):
        title = template.get("title")
        print(f"{template_id}\t{title}" if title else template_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="manuscript-validator",
        description="Validate manuscripts against a template and fix what can be fixed"
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="Show progress logging")
    ap.add_argument(
        "--templates-file",
        default=os.environ.get(TEMPLATES_ENV),
        help=f"Templates YAML (or set {TEMPLATES_ENV} env var)"
    )
    ap.add_argument(
        "--categories-file",
        default=os.environ.get(CATEGORIES_ENV),
        help=f"Section categories YAML (or set {CATEGORIES_ENV} env var)"
    )
    commands = ap.add_subparsers(dest="command", required=True)

    validate = commands.add_parser("validate", help="Validate a manuscript against a template")
    validate.add_argument("bundle", help="Path to a .manuproj file or a JSON list of models")
    validate.add_argument("--template", required=True, help="Template ID to validate against")
    validate.add_argument("--manuscript", help="Manuscript ID (default: the project's only manuscript)")
    validate.add_argument("--skip-images", action="store_true", help="Skip figure format/image/resolution checks")
    validate.add_argument("--json", help="Also write the results as JSON to this path")
    validate.set_defaults(handler=_run_validate)

    fix = commands.add_parser("fix", help="Apply automatic fixes and write the fixed project")
    fix.add_argument("bundle", help="Path to a .manuproj file or a JSON list of models")
    fix.add_argument("--template", required=True, help="Template ID to validate against")
    fix.add_argument("--manuscript", help="Manuscript ID (default: the project's only manuscript)")
    fix.add_argument("--out", required=True, help="Output path (.manuproj or .json)")
    fix.add_argument("--passes", type=int, default=2, help="Maximum validate/fix passes (default: 2)")
    fix.add_argument("--skip-images", action="store_true", help="Skip figure format/image/resolution checks")
    fix.set_defaults(handler=_run_fix)

    templates = commands.add_parser("templates", help="List the available template IDs")
    templates.set_defaults(handler=_run_templates)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if getattr(args, "passes", 1) < 1:
        ap.error("--passes must be at least 1")

    try:
        return args.handler(args)
    except ManuscriptValidatorError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
