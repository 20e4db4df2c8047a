"""XML回写测试."""

from conftest import document_xml, run_xml

from docx_rewriter.data.models import Replacement
from docx_rewriter.data.run_scanner import scan_runs
from docx_rewriter.data.xml_rewriter import apply_replacements, build_replacement_run, strip_highlight


def _replacements(xml, new_texts):
    runs = scan_runs(xml, highlighted_only=True)
    return [Replacement.from_run(run, text) for run, text in zip(runs, new_texts)]


def test_empty_replacement_list_returns_input_unchanged():
    xml = document_xml(run_xml("Roshan", highlighted=True))
    assert apply_replacements(xml, []) is xml


def test_replacement_writes_text_and_removes_highlight():
    xml = document_xml(run_xml("Prepared by: ") + run_xml("Roshan", highlighted=True))
    result = apply_replacements(xml, _replacements(xml, ["Romit Acharya"]))

    assert "Romit Acharya" in result
    assert "Roshan" not in result
    assert "w:highlight" not in result


def test_sibling_runs_in_same_paragraph_lose_highlight():
    xml = document_xml(
        run_xml("•", highlighted=True) + run_xml("40%", highlighted=True, rsid="00A1"),
        run_xml("Untouched", highlighted=True),
    )
    runs = scan_runs(xml, highlighted_only=True)
    target = [r for r in runs if r.text == "40%"]
    result = apply_replacements(xml, [Replacement.from_run(target[0], "45%")])

    first_paragraph, second_paragraph = result.split("</w:p>")[:2]
    assert "w:highlight" not in first_paragraph
    assert "w:highlight" in second_paragraph


def test_shading_is_removed():
    xml = document_xml(
        '<w:r><w:rPr><w:shd w:val="clear" w:color="auto" w:fill="FFFF00"/></w:rPr><w:t>old</w:t></w:r>'
    )
    result = apply_replacements(xml, _replacements(xml, ["new"]))
    assert "w:shd" not in result
    assert "<w:t>new</w:t>" in result


def test_new_text_is_escaped():
    xml = document_xml(run_xml("placeholder", highlighted=True))
    result = apply_replacements(xml, _replacements(xml, ["AT&T <Ltd>"]))
    assert "AT&amp;T &lt;Ltd&gt;" in result


def test_url_ampersands_are_escaped():
    xml = document_xml(run_xml("link", highlighted=True))
    result = apply_replacements(xml, _replacements(xml, ["https://example.com/?a=1&b=2"]))
    assert "https://example.com/?a=1&amp;b=2" in result


def test_identical_markup_is_replaced_once_each():
    xml = document_xml(run_xml("40%", highlighted=True), run_xml("40%", highlighted=True))
    result = apply_replacements(xml, _replacements(xml, ["41%", "42%"]))

    assert result.index("41%") < result.index("42%")
    assert "40%" not in result


def test_no_op_replacement_is_still_applied():
    xml = document_xml(run_xml("same", highlighted=True))
    result = apply_replacements(xml, _replacements(xml, ["same"]))
    assert "same" in result
    assert "w:highlight" not in result


def test_build_replacement_run_clears_extra_text_nodes():
    run = '<w:r><w:rPr><w:highlight w:val="yellow"/></w:rPr><w:t>12</w:t><w:tab/><w:t>%</w:t></w:r>'
    assert build_replacement_run(run, "15%") == "<w:r><w:rPr></w:rPr><w:t>15%</w:t><w:tab/><w:t></w:t></w:r>"


def test_build_replacement_run_preserves_spaces():
    run = "<w:r><w:t>x</w:t></w:r>"
    assert build_replacement_run(run, " padded ") == '<w:r><w:t xml:space="preserve"> padded </w:t></w:r>'


def test_strip_highlight_removes_element_forms():
    xml = '<w:rPr><w:highlight w:val="yellow"/><w:highlight w:val="red"></w:highlight><w:shd w:fill="FF0000"/><w:b/></w:rPr>'
    assert strip_highlight(xml) == "<w:rPr><w:b/></w:rPr>"


def test_text_box_before_edited_run_does_not_hide_outer_paragraph():
    text_box = (
        "<w:r><w:drawing><wps:txbx><w:txbxContent>"
        + "<w:p>" + run_xml("Box") + "</w:p>"
        + "</w:txbxContent></wps:txbx></w:drawing></w:r>"
    )
    xml = document_xml(
        run_xml("•", highlighted=True) + text_box + run_xml("40%", highlighted=True, rsid="00B2"),
        run_xml("Untouched", highlighted=True),
    )
    target = [r for r in scan_runs(xml, highlighted_only=True) if r.text == "40%"]

    result = apply_replacements(xml, [Replacement.from_run(target[0], "45%")])

    outer_paragraph = result[:result.rindex("</w:p>", 0, result.index("Untouched"))]
    assert "45%" in outer_paragraph
    assert "w:highlight" not in outer_paragraph
    assert result.count("w:highlight") == 1
