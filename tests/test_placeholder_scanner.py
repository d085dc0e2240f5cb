from openpyxl import Workbook
from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.cell.text import InlineFont
from openpyxl.worksheet.formula import ArrayFormula

from populator.template.grammar import (
    FallbackField,
    TokenKind,
    classify_token,
    find_tokens,
    is_fallback_text,
    is_whole_token,
    strip_tokens,
)
from populator.template.scanner import flatten_cell_value, scan_workbook


class DummyText:
    text = "<site.costs>"


class DummyPlain:
    plain = "<build.cost>"


class DummyStr:
    def __str__(self) -> str:
        return "<gdv>"


def test_flatten_richtext_like_objects():
    assert flatten_cell_value(DummyText()) == "<site.costs>"
    assert flatten_cell_value(DummyPlain()) == "<build.cost>"
    assert flatten_cell_value(DummyStr()) == "<gdv>"


def test_flatten_rich_text_fragments_joined_in_order():
    rich = CellRichText(["Total: ", TextBlock(InlineFont(b=True), "<total.cost>"), " GBP"])
    assert flatten_cell_value(rich) == "Total: <total.cost> GBP"


def test_flatten_formula_objects_and_scalars():
    assert flatten_cell_value(ArrayFormula("A1:A2", "=A1<B1")) == "=A1<B1"
    assert flatten_cell_value(None) == ""
    assert flatten_cell_value(12) == "12"


def test_classify_specific_code():
    token = classify_token("<site.purchase.price>")
    assert token.kind is TokenKind.SPECIFIC_CODE
    assert token.inner == "site.purchase.price"
    assert not token.is_fallback


def test_classify_default_fallback():
    token = classify_token("<all.professional.fees.value>")
    assert token.kind is TokenKind.FALLBACK_DEFAULT
    assert token.category == "professional.fees"
    assert token.field is FallbackField.VALUE
    assert token.slot is None


def test_classify_numbered_fallback_case_insensitive():
    token = classify_token("<ALL.Professional.Fees.Name.12>")
    assert token.kind is TokenKind.FALLBACK_NUMBERED
    assert token.category == "Professional.Fees"
    assert token.field is FallbackField.NAME
    assert token.slot == 12


def test_malformed_all_token_is_specific_but_in_fallback_namespace():
    token = classify_token("<all.site2.name>")
    assert token.kind is TokenKind.SPECIFIC_CODE
    assert is_fallback_text(token.text)


def test_find_tokens_left_to_right_non_overlapping():
    tokens = list(find_tokens("<a> and <b> but not << or <>"))
    assert [t.text for t in tokens] == ["<a>", "<b>"]


def test_formula_text_ignores_comparison_operators():
    formula = "=IF(A1<B1,1,0)&IF(C1>D1,1,0)"
    assert list(find_tokens(formula)) != []
    assert list(find_tokens(formula, formula=True)) == []
    assert [t.text for t in find_tokens('="Total "&<total.cost>', formula=True)] == ["<total.cost>"]


def test_strip_and_whole_token_helpers():
    assert is_whole_token("<x>")
    assert not is_whole_token(" <x>")
    assert not is_whole_token("<x><y>")
    assert strip_tokens("Fee <x> due <y>") == "Fee  due "


def test_scan_workbook_collects_cells_with_tokens():
    wb = Workbook()
    ws = wb.active
    ws.title = "Appraisal"
    ws["A1"] = "Land"
    ws["B1"] = "<site.purchase.price>"
    ws["A3"] = "<all.plots.name.1>"
    ws["B3"] = 100
    ws["C3"] = "a < b"
    ws["D4"] = "=IF(A1<B1,1,0)&IF(C1>D1,1,0)"
    other = wb.create_sheet("Costs")
    other["C2"] = "Total: <total.cost> GBP"

    scans = scan_workbook(wb)

    assert [(s.sheet, s.row, s.col) for s in scans] == [
        ("Appraisal", 1, 2),
        ("Appraisal", 3, 1),
        ("Costs", 2, 3),
    ]
    assert scans[0].specific_tokens[0].text == "<site.purchase.price>"
    assert scans[1].fallback_tokens[0].slot == 1
    assert scans[2].text == "Total: <total.cost> GBP"
    assert not any(s.is_formula for s in scans)


def test_scan_does_not_modify_workbook():
    wb = Workbook()
    ws = wb.active
    ws["A1"] = "<x>"
    scan_workbook(wb)
    assert ws["A1"].value == "<x>"


def test_scan_records_array_formula_range():
    wb = Workbook()
    ws = wb.active
    ws["A1"] = ArrayFormula("A1:A3", "=B1:B3*<uplift>")
    ws["A5"] = "=B5*<uplift>"

    scans = scan_workbook(wb)

    assert [(s.row, s.is_formula, s.array_ref) for s in scans] == [(1, True, "A1:A3"), (5, True, None)]
    assert scans[0].text == "=B1:B3*<uplift>"
