from manuscript_validator.models import ManuscriptDocument, next_priority, section_scope
from manuscript_validator.rich_text import rewrite_keywords_contents, text_content
from manuscript_validator.statistics import DefaultStatistics, build_manuscript_text, build_text


def test_default_statistics():
    stats = DefaultStatistics()
    assert stats.count_words("  one two\nthree ") == 3
    assert stats.count_words("") == 0
    assert stats.count_characters("héllo") == 5


def test_section_text_includes_captions_tables_and_subsections(project):
    figure_id = project.figure()
    figure_element = project.figure_element(figure_id, caption="<p>A red square</p>")
    project.add({"_id": "MPTable:1", "objectType": "MPTable", "contents": "<table><tr><td>cell</td></tr></table>"})
    table_element = project.add({"_id": "MPTableElement:1", "objectType": "MPTableElement",
                                 "containedObjectID": "MPTable:1"})
    parent = project.section(title="Results", paragraphs=("We found <b>things</b>",),
                             element_ids=[figure_element, table_element])
    project.section(title="Details", parent=parent, paragraphs=("More.",))

    doc = ManuscriptDocument.from_data(project.data, project.manuscript_id)
    [node] = doc.sections
    assert build_text(doc, node) == "Results A red square cell We found things Details More."
    assert build_manuscript_text(doc) == build_text(doc, node)


def test_sections_are_ordered_by_priority(project):
    late = project.section(title="Late", priority=5)
    early = project.section(title="Early", priority=2)
    doc = ManuscriptDocument.from_data(project.data, project.manuscript_id)
    assert [n.id for n in doc.sections] == [early, late]
    assert next_priority(project.data) == 6
    assert next_priority([]) == 1


def test_models_of_other_manuscripts_are_ignored(project):
    project.section(title="Mine")
    project.data.append({
        "_id": "MPSection:other",
        "objectType": "MPSection",
        "manuscriptID": "MPManuscript:other",
        "priority": 1,
        "path": ["MPSection:other"],
    })
    doc = ManuscriptDocument.from_data(project.data, project.manuscript_id)
    assert [n.title for n in doc.sections] == ["Mine"]


def test_section_scope():
    assert section_scope({"_id": "c", "path": ["a", "b", "c"]}) == "a,b"
    assert section_scope({"_id": "a", "path": ["a"]}) == ""


def test_rich_text_helpers():
    assert text_content(None) == ""
    assert text_content("<p>Hello <i>world</i></p>") == "Hello world"
    assert rewrite_keywords_contents(None, ["a", "b"]) == '<p class="keywords">a, b</p>'
    rewritten = rewrite_keywords_contents('<div class="kw"><p>b, a</p></div>', ["a", "b"])
    assert rewritten == '<div class="kw"><p>a, b</p></div>'
