import copy

import pytest

from conftest import ABSTRACT, INTRODUCTION, METHODS, by_type, make_validator, validate
from manuscript_validator.errors import InputError, InvariantError
from manuscript_validator.fix import run_manuscript_fixes
from manuscript_validator.results import ValidationResult


def fix(project, results):
    return run_manuscript_fixes(project.data, project.manuscript_id, results)


def sections_by_category(project):
    return {m["category"]: m for m in project.data if m["objectType"] == "MPSection" and m.get("category")}


def test_required_section_is_added(project, validator):
    project.section(INTRODUCTION, title="Introduction")
    project.section(METHODS, title="Methods")
    before = {m["_id"] for m in project.data}

    data = fix(project, validate(validator, project))
    assert data is project.data
    assert before <= {m["_id"] for m in data}

    added = [m for m in data if m["_id"] not in before]
    [section] = [m for m in added if m["objectType"] == "MPSection"]
    [paragraph] = [m for m in added if m["objectType"] == "MPParagraphElement"]
    assert section["category"] == ABSTRACT
    assert section["title"] == "Abstract"
    assert section["priority"] == 3
    assert section["path"] == [section["_id"]]
    assert section["manuscriptID"] == project.manuscript_id
    assert section["containerID"] == project.container_id
    assert section["elementIDs"] == [paragraph["_id"]]
    assert 'data-placeholder-text="Summarize the study."' in paragraph["contents"]


def test_required_section_with_subsections(project):
    validator = make_validator(descriptions=[
        {"sectionCategory": INTRODUCTION, "required": True, "subsections": [
            {"sectionCategory": "MPSectionCategory:background", "title": "Background"},
            {"sectionCategory": "MPSectionCategory:aims"},
        ]},
    ])
    fix(project, validate(validator, project))

    sections = sections_by_category(project)
    parent = sections[INTRODUCTION]
    assert parent["title"] == "Introduction"
    background = sections["MPSectionCategory:background"]
    aims = sections["MPSectionCategory:aims"]
    assert (background["priority"], aims["priority"]) == (1, 2)
    assert background["path"] == [parent["_id"], background["_id"]]
    assert aims["title"] == "Aims"


def test_section_is_retitled(project, validator):
    project.section(ABSTRACT, title="Abstract")
    project.section(INTRODUCTION, title="Introduction")
    methods_id = project.section(METHODS, title="foo")

    fix(project, validate(validator, project))
    section = project.get(methods_id)
    assert section["title"] == "Methods"
    assert isinstance(section["updatedAt"], int)
    assert section["sessionID"]
    assert all(r.passed for r in by_type(validate(validator, project), "section-title-match"))


def test_retitle_unknown_section(project):
    result = ValidationResult.build("section-title-match", False, data={"title": "Methods"},
                                    affected_element_id="MPSection:nope")
    with pytest.raises(InputError):
        fix(project, [result])


def test_retitle_requires_a_section(project):
    paragraph_id = project.paragraph("text")
    result = ValidationResult.build("section-title-match", False, data={"title": "Methods"},
                                    affected_element_id=paragraph_id)
    with pytest.raises(InvariantError):
        fix(project, [result])


def test_sections_are_reordered(project, validator):
    project.section(METHODS, title="Methods")
    project.section(INTRODUCTION, title="Introduction")
    project.section(ABSTRACT, title="Abstract")
    notes_id = project.section(title="Notes")

    fix(project, validate(validator, project))

    sections = sections_by_category(project)
    priorities = [sections[c]["priority"] for c in (ABSTRACT, INTRODUCTION, METHODS)]
    assert priorities == [5, 6, 7]
    assert project.get(notes_id)["priority"] == 4
    assert by_type(validate(validator, project), "section-order")[0].passed


def test_added_sections_get_increasing_priorities_in_any_result_order(project, validator):
    notes_id = project.section(title="Notes")
    missing = [r for r in by_type(validate(validator, project), "required-section") if not r.passed]
    assert len(missing) == 3
    missing.reverse()

    fix(project, missing)

    added = [m for m in project.data
             if m["objectType"] == "MPSection" and len(m["path"]) == 1 and m["_id"] != notes_id]
    assert [m["category"] for m in added] == [r.data["sectionCategory"] for r in missing]
    priorities = [m["priority"] for m in added]
    assert priorities == sorted(set(priorities))
    assert priorities[0] > project.get(notes_id)["priority"]

    [order] = by_type(validate(validator, project), "section-order")
    assert not order.passed
    fix(project, [order])

    results = validate(validator, project)
    assert all(r.passed for r in by_type(results, "required-section"))
    assert by_type(results, "section-order")[0].passed


def test_keywords_are_sorted(project, validator):
    k2 = project.keyword("Key2")
    k1 = project.keyword("Key1")
    k0 = project.keyword("Key0")
    section_id = project.keywords_section()

    fix(project, validate(validator, project))

    assert project.manuscript["keywordIDs"] == [k0, k1, k2]
    [element_id] = project.get(section_id)["elementIDs"]
    contents = project.get(element_id)["contents"]
    assert "Key0, Key1, Key2" in contents
    assert 'class="keywords"' in contents
    assert by_type(validate(validator, project), "keywords-order")[0].passed


def test_invalid_keyword_ids(project):
    result = ValidationResult.build("keywords-order", False, data={"order": ["MPManuscriptKeyword:nope"]})
    with pytest.raises(InputError):
        fix(project, [result])


def test_missing_manuscript(project):
    with pytest.raises(InputError):
        run_manuscript_fixes(project.data, "MPManuscript:nope", [])


def test_passed_and_unfixable_results_change_nothing(project, validator):
    project.complete()
    project.figure()
    results = validate(validator, project)
    assert not by_type(results, "figure-contains-image")[0].passed

    before = copy.deepcopy(project.data)
    fix(project, results)
    assert project.data == before


def test_results_may_be_wire_dicts(project, validator):
    project.section(ABSTRACT, title="Abstract")
    project.section(INTRODUCTION, title="Introduction")
    methods_id = project.section(METHODS, title="foo")
    fix(project, [r.to_dict() for r in validate(validator, project)])
    assert project.get(methods_id)["title"] == "Methods"


@pytest.mark.parametrize("scenario", ["missing", "title", "order", "keywords"])
def test_fixing_twice_changes_nothing(project, validator, scenario):
    if scenario == "missing":
        # the last required section, so adding it at the end keeps the order
        project.section(ABSTRACT, title="Abstract")
        project.section(INTRODUCTION, title="Introduction")
    elif scenario == "title":
        project.section(ABSTRACT, title="Abstract")
        project.section(INTRODUCTION, title="Introduction")
        project.section(METHODS, title="Method")
    elif scenario == "order":
        project.section(INTRODUCTION, title="Introduction")
        project.section(ABSTRACT, title="Abstract")
        project.section(METHODS, title="Methods")
    else:
        project.complete()
        project.keyword("b")
        project.keyword("a")
        project.keywords_section()

    fix(project, validate(validator, project))
    results = validate(validator, project)
    assert not [r for r in results if r.fixable and not r.passed]

    before = copy.deepcopy(project.data)
    fix(project, results)
    assert project.data == before
