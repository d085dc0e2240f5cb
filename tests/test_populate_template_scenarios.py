import pytest
from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.cell.text import InlineFont
from openpyxl.worksheet.formula import ArrayFormula

from populator.errors import WorkbookLoadError
from populator.template.populator import populate_template


def test_scenario_a_whole_cell_specific_code(make_workbook, make_item, read_workbook):
    template = make_workbook({"Appraisal": {"A1": "Land", "B1": "<site.purchase.price>"}})
    item = make_item(itemCode="<site.purchase.price>", value=500000, dataType="currency")

    result = populate_template(template, [item])

    ws = read_workbook(result.output_bytes)["Appraisal"]
    assert ws["B1"].value == 500000
    assert ws["A1"].value == "Land"
    assert result.stats.matched == 1
    assert result.stats.unmatched == 0
    assert result.matched_placeholders == ["<site.purchase.price>"]


def test_scenario_b_numbered_fallback_with_typo_category(make_workbook, make_item, read_workbook):
    cells = {}
    for n in (1, 2, 3):
        cells[f"A{n + 1}"] = f"<all.professional.fees.name.{n}>"
        cells[f"C{n + 1}"] = f"<all.professional.fees.value.{n}>"
    template = make_workbook({"Costs": cells})
    items = [
        make_item(originalName="Architect", value=12000, category="Profesional Fees"),
        make_item(originalName="Planning consultant", value="8,500", category="Profesional Fees"),
    ]

    result = populate_template(template, items)

    ws = read_workbook(result.output_bytes)["Costs"]
    assert (ws["A2"].value, ws["C2"].value) == ("Architect", 12000)
    assert (ws["A3"].value, ws["C3"].value) == ("Planning consultant", 8500)
    assert ws["A4"].value is None
    assert ws["C4"].value is None
    assert result.stats.fallbacks_inserted == 2
    assert result.stats.placeholders_cleared == 2
    assert result.stats.total_placeholders == 3


def test_scenario_c_embedded_token_keeps_surrounding_text(make_workbook, make_item, read_workbook):
    template = make_workbook({"Summary": {"C2": "Total: <total.cost> GBP"}})
    item = make_item(itemCode="<total.cost>", value=725000)

    result = populate_template(template, [item])

    assert read_workbook(result.output_bytes)["Summary"]["C2"].value == "Total: 725000 GBP"
    assert result.stats.matched == 1


def test_scenario_d_unknown_code_reported_then_cleared(make_workbook, make_item, read_workbook):
    template = make_workbook({"S": {"A1": "<unknown.code>", "A2": "Note <unknown.other> here"}})

    result = populate_template(template, [make_item(itemCode="<something.else>")])

    ws = read_workbook(result.output_bytes)["S"]
    assert ws["A1"].value is None
    assert ws["A2"].value == "Note  here"
    assert result.unmatched_placeholders == ["<unknown.code>", "<unknown.other>"]
    assert result.stats.placeholders_cleared == 2


def test_no_placeholders_survive(make_workbook, make_item, read_workbook):
    template = make_workbook({
        "S": {
            "A1": "<a>",
            "A2": "<all.plots.name>",
            "B2": "<all.plots.value>",
            "A3": "mix <b> and <all.other.name.1>",
        }
    })
    result = populate_template(template, [make_item(category="unit", value=3)])

    ws = read_workbook(result.output_bytes)["S"]
    for row in ws.iter_rows():
        for cell in row:
            assert "<" not in str(cell.value or "")


def test_number_format_preserved(make_workbook, make_item, read_workbook):
    template = make_workbook({"S": {"B1": ("<gdv>", "#,##0.00"), "B2": ("<rate>", "0.0%")}})
    items = [
        make_item(itemCode="<gdv>", value="1,250,000"),
        make_item(itemCode="<rate>", value=5, dataType="percentage"),
    ]

    ws = read_workbook(populate_template(template, items).output_bytes)["S"]

    assert ws["B1"].value == 1250000
    assert ws["B1"].number_format == "#,##0.00"
    assert ws["B2"].value == pytest.approx(0.05)
    assert ws["B2"].number_format == "0.0%"


def test_formula_template_keeps_formula(make_workbook, make_item, read_workbook):
    template = make_workbook({"S": {"A1": '="Total "&<total.cost>', "A2": "=IF(B1<C1,1,0)"}})

    result = populate_template(template, [make_item(itemCode="<total.cost>", value=10)])

    ws = read_workbook(result.output_bytes)["S"]
    assert ws["A1"].value == '="Total "&10'
    assert ws["A1"].data_type == "f"
    assert ws["A2"].value == "=IF(B1<C1,1,0)"
    assert result.stats.unmatched == 0


def test_string_values_starting_with_equals_written_as_text(make_workbook, make_item, read_workbook):
    template = make_workbook({"S": {"A1": "<note>"}})
    item = make_item(itemCode="<note>", value="=HYPERLINK(\"x\")", dataType="string")

    ws = read_workbook(populate_template(template, [item]).output_bytes)["S"]

    assert ws["A1"].value == "=HYPERLINK(\"x\")"
    assert ws["A1"].data_type == "s"


def test_rich_text_cell_is_flattened_and_replaced(make_workbook, make_item, read_workbook):
    rich = CellRichText(["Site: ", TextBlock(InlineFont(b=True), "<site.name>")])
    template = make_workbook({"S": {"A1": rich}})

    result = populate_template(template, [make_item(itemCode="<site.name>", value="Mill Lane", dataType="string")])

    assert str(read_workbook(result.output_bytes)["S"]["A1"].value) == "Site: Mill Lane"


def test_other_sheets_and_cells_untouched(make_workbook, make_item, read_workbook):
    template = make_workbook({"Inputs": {"A1": "<x>"}, "Notes": {"A1": "keep me", "B5": 42}})

    wb = read_workbook(populate_template(template, [make_item(itemCode="<x>", value=1)]).output_bytes)

    assert wb.sheetnames == ["Inputs", "Notes"]
    assert wb["Notes"]["A1"].value == "keep me"
    assert wb["Notes"]["B5"].value == 42


def test_empty_items_still_clears_placeholders(make_workbook, read_workbook):
    result = populate_template(make_workbook({"S": {"A1": "<x>"}}), [])
    assert read_workbook(result.output_bytes)["S"]["A1"].value is None
    assert result.stats.unmatched == 1


@pytest.mark.parametrize("data", [b"", b"not a workbook"])
def test_invalid_template_raises(data, make_item):
    with pytest.raises(WorkbookLoadError):
        populate_template(data, [make_item(itemCode="<x>")])


def test_result_dict_has_no_bytes(make_workbook, make_item):
    result = populate_template(make_workbook({"S": {"A1": "<x>"}}), [make_item(itemCode="<x>", value=2)])
    payload = result.to_dict()
    assert "outputBytes" not in payload
    assert payload["stats"]["matched"] == 1
    assert payload["matchedPlaceholders"] == ["<x>"]


def test_two_numbered_blocks_on_one_sheet_fill_in_row_order(make_workbook, make_item, read_workbook):
    cells = {}
    for top in (1, 11):
        cells[f"A{top}"] = "<all.plots.name.1>"
        cells[f"A{top + 1}"] = "<all.plots.name.2>"
    template = make_workbook({"Plots": cells})
    items = [make_item(category="Plots", originalName=f"P{n}") for n in range(4)]

    ws = read_workbook(populate_template(template, items).output_bytes)["Plots"]

    assert [ws[ref].value for ref in ("A1", "A2", "A11", "A12")] == ["P0", "P1", "P2", "P3"]


def test_array_formula_stays_array_formula(make_workbook, make_item, read_workbook):
    template = make_workbook({"S": {"A1": ArrayFormula("A1:A1", "=SUM(<rate.code>*B1:B2)"), "B1": 1, "B2": 2}})

    result = populate_template(template, [make_item(itemCode="<rate.code>", value=5)])

    value = read_workbook(result.output_bytes)["S"]["A1"].value
    assert isinstance(value, ArrayFormula)
    assert value.ref == "A1:A1"
    assert value.text == "=SUM(5*B1:B2)"
    assert result.stats.matched == 1


def test_array_formula_residual_token_stripped_in_place(make_workbook, read_workbook):
    template = make_workbook({"S": {"C1": ArrayFormula("C1:C2", "=B1:B2*<missing.rate>")}})

    result = populate_template(template, [])

    value = read_workbook(result.output_bytes)["S"]["C1"].value
    assert isinstance(value, ArrayFormula)
    assert value.ref == "C1:C2"
    assert value.text == "=B1:B2*"
    assert result.stats.placeholders_cleared == 1


def test_formula_string_literal_tokens_with_spaces_left_as_is(make_workbook, make_item, read_workbook):
    # Inside formulas only code-like tokens are recognised; "<fee code>" is plain literal text there
    formula = '="Fee: "&"<fee code>"'
    template = make_workbook({"S": {"A1": formula, "A2": "<fee code>"}})

    result = populate_template(template, [make_item(itemCode="<fee code>", value="Legal", dataType="string")])

    ws = read_workbook(result.output_bytes)["S"]
    assert ws["A1"].value == formula
    assert ws["A1"].data_type == "f"
    assert ws["A2"].value == "Legal"
    assert result.matched_placeholders == ["<fee code>"]
    assert result.unmatched_placeholders == []
    assert result.stats.placeholders_cleared == 0
