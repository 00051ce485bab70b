import asyncio
import json
import zipfile

import pytest

from conftest import ABSTRACT, INTRODUCTION, METHODS, TEMPLATE_ID, by_type, png_bytes
from manuscript_validator.bundle import load_bundle, write_bundle
from manuscript_validator.cli import main
from manuscript_validator.errors import InputError
from manuscript_validator.pipeline import AutofixConfig, run_autofix
from manuscript_validator.report import render_txt
from manuscript_validator.templates import load_catalog
from manuscript_validator.validate import create_template_validator


def missing_and_out_of_order(project):
    # abstract is missing and the remaining sections are reversed
    project.section(METHODS, title="Methods")
    project.section(INTRODUCTION, title="Introduction")


def test_section_order_needs_a_second_pass(project, validator):
    missing_and_out_of_order(project)
    result = asyncio.run(run_autofix(project.data, project.manuscript_id, validator, project.get_binary,
                                     AutofixConfig(max_passes=1)))
    assert result.passes == 1
    [order] = by_type(result.final_results, "section-order")
    assert not order.passed
    assert not result.fixed


def test_autofix_converges_in_two_passes(project, validator):
    missing_and_out_of_order(project)
    result = asyncio.run(run_autofix(project.data, project.manuscript_id, validator, project.get_binary))

    assert result.passes == 2
    assert result.fixed
    assert result.stats.fixes_applied == {"required-section": 1, "section-order": 1}
    assert result.stats.models_after > result.stats.models_before
    assert by_type(result.initial_results, "section-order") == []

    payload = result.to_dict()
    assert payload["passes"] == 2
    assert payload["final_results"][0]["objectType"]


def test_autofix_without_failures(project, validator):
    project.complete()
    result = asyncio.run(run_autofix(project.data, project.manuscript_id, validator, project.get_binary))
    assert result.passes == 0
    assert result.initial_results is result.final_results


def test_render_txt_lists_failures(project, validator):
    missing_and_out_of_order(project)
    result = asyncio.run(run_autofix(project.data, project.manuscript_id, validator, project.get_binary,
                                     AutofixConfig(max_passes=1)))
    text = render_txt({"manuscript_id": project.manuscript_id, "template_id": TEMPLATE_ID, **result.to_dict()})
    assert "[FAIL] section-order" in text
    assert "Fixes (2 fixable failures before autofix)" not in text
    assert "Fixes (1 fixable failures before autofix)" in text


def test_load_manuproj_bundle(tmp_path, project):
    project.complete()
    figure_id = project.figure()
    path = tmp_path / "project.manuproj"
    write_bundle(path, project.data, {figure_id: png_bytes(4, 4)})

    with zipfile.ZipFile(path) as archive:
        assert "index.manuscript-json" in archive.namelist()
    bundle = load_bundle(path)
    assert len(bundle.data) == len(project.data)
    assert bundle.get_binary(figure_id) == png_bytes(4, 4)
    assert bundle.get_binary("MPFigure:none") is None
    assert bundle.resolve_manuscript_id() == project.manuscript_id


@pytest.mark.parametrize("wrap", [True, False])
def test_load_json_bundle(tmp_path, project, wrap):
    path = tmp_path / "project.json"
    path.write_text(json.dumps({"data": project.data} if wrap else project.data), encoding="utf-8")
    assert load_bundle(path).manuscript_ids() == [project.manuscript_id]


def test_bad_bundles(tmp_path):
    with pytest.raises(InputError):
        load_bundle(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(InputError):
        load_bundle(bad)


def test_default_catalog():
    catalog = load_catalog()
    assert "MPManuscriptTemplate:generic-research-article" in catalog.templates
    assert catalog.get_category("MPSectionCategory:abstract").unique_in_scope
    validator = create_template_validator("MPManuscriptTemplate:generic-research-article", catalog)
    assert callable(validator)
    with pytest.raises(InputError):
        catalog.get_template("MPManuscriptTemplate:nope")


def default_template_project(tmp_path, project):
    project.section(ABSTRACT, title="Abstract")
    project.section(INTRODUCTION, title="Introduction")
    path = tmp_path / "project.json"
    path.write_text(json.dumps(project.data), encoding="utf-8")
    return path


def test_cli_validate(tmp_path, project, capsys):
    path = default_template_project(tmp_path, project)
    out_json = tmp_path / "results.json"
    code = main(["validate", str(path), "--template", "MPManuscriptTemplate:generic-research-article",
                 "--json", str(out_json)])
    assert code == 0
    lines = capsys.readouterr().out.splitlines()
    assert any(line.startswith("FAIL required-section") for line in lines)
    assert any(line.startswith("PASS ") for line in lines)
    payload = json.loads(out_json.read_text(encoding="utf-8"))
    assert payload["stats"]["results_failed"] > 0


def test_cli_fix(tmp_path, project, capsys):
    path = default_template_project(tmp_path, project)
    out = tmp_path / "fixed.json"
    code = main(["fix", str(path), "--template", "MPManuscriptTemplate:generic-research-article",
                 "--out", str(out)])
    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["fixes_applied"]["required-section"] == 3

    fixed = json.loads(out.read_text(encoding="utf-8"))["data"]
    categories = {m.get("category") for m in fixed if m.get("objectType") == "MPSection"}
    assert "MPSectionCategory:discussion" in categories
    assert (tmp_path / "fixed.changelog.json").exists()
    assert (tmp_path / "fixed.changelog.txt").exists()


def test_cli_templates(capsys):
    assert main(["templates"]) == 0
    assert "MPManuscriptTemplate:generic-research-article" in capsys.readouterr().out


def test_cli_input_error(tmp_path, capsys):
    code = main(["validate", str(tmp_path / "missing.json"), "--template", "MPManuscriptTemplate:x"])
    assert code == 1
    assert "error:" in capsys.readouterr().err
