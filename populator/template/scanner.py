"""
占位符扫描模块 (Placeholder Scanner Module)
==========================================

遍历每个工作表已用区域内的每个单元格，把单元格内容展平为纯文本，
并提取、分类其中的 ``<...>`` 占位符。

展平顺序：富文本片段按序拼接 → 公式文本 → 普通值的字符串形式 → 空字符串。
扫描只读，不修改工作簿。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterator, List, Optional, Tuple

from openpyxl.workbook.workbook import Workbook

from populator.logger import get_logger
from populator.template.grammar import PlaceholderToken, find_tokens
from populator.workbook import array_formula_ref, is_formula_cell, iter_used_cells

logger = get_logger(__name__)


@dataclass(frozen=True)
class CellScan:
    """
    一个包含占位符的单元格快照。

    属性:
        sheet: 工作表名
        row / col: 1 起始的行列号
        text: 展平后的单元格文本
        is_formula: 文本是否来自公式
        tokens: 从左到右、互不重叠的占位符
        array_ref: 单元格原为数组公式时的区域引用，写回时保持数组公式
    """
    sheet: str
    row: int
    col: int
    text: str
    is_formula: bool
    tokens: Tuple[PlaceholderToken, ...] = field(default_factory=tuple)
    array_ref: Optional[str] = None

    @property
    def location(self) -> Tuple[str, int, int]:
        return (self.sheet, self.row, self.col)

    @property
    def specific_tokens(self) -> List[PlaceholderToken]:
        return [t for t in self.tokens if not t.is_fallback]

    @property
    def fallback_tokens(self) -> List[PlaceholderToken]:
        return [t for t in self.tokens if t.is_fallback]


def _fragment_text(fragment: Any) -> str:
    if isinstance(fragment, str):
        return fragment
    text_attr = getattr(fragment, "text", None)
    if isinstance(text_attr, str):
        return text_attr
    value_attr = getattr(fragment, "value", None)
    if isinstance(value_attr, str):
        return value_attr
    return "" if fragment is None else str(fragment)


def flatten_cell_value(value: Any) -> str:
    """
    将任意单元格值展平为纯文本。

    CellRichText 是 list 的子类，按片段拼接；ArrayFormula 等公式对象取其 text；
    其余带 plain / text / value 字符串属性的对象取该属性；无法识别时尽力转为字符串。
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "".join(_fragment_text(fragment) for fragment in value)
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    for attr in ("plain", "text", "value"):
        attr_value = getattr(value, attr, None)
        if isinstance(attr_value, str):
            return attr_value
    try:
        return str(value)
    except Exception:
        logger.debug("flatten_cell_value: unrecognized value of type %s", type(value).__name__)
        return ""


def iter_cell_texts(wb: Workbook) -> Iterator[Tuple[str, int, int, str, bool, Optional[str]]]:
    """逐个产出 (sheet, row, col, text, is_formula, array_ref)，只包含含有 "<" 的单元格。"""
    for ws in wb.worksheets:
        logger.debug(
            "Scanning sheet %s range R%dC%d:R%dC%d",
            ws.title, ws.min_row, ws.min_column, ws.max_row, ws.max_column,
        )
        for cell in iter_used_cells(ws):
            text = flatten_cell_value(cell.value)
            if "<" not in text:
                continue
            yield ws.title, cell.row, cell.column, text, is_formula_cell(cell), array_formula_ref(cell)


def scan_workbook(wb: Workbook) -> List[CellScan]:
    """扫描整个工作簿，返回所有包含占位符的单元格（按工作表顺序、行优先）。"""
    scans: List[CellScan] = []
    for sheet, row, col, text, formula, array_ref in iter_cell_texts(wb):
        tokens = tuple(find_tokens(text, formula=formula))
        if not tokens:
            continue
        scans.append(CellScan(
            sheet=sheet, row=row, col=col, text=text, is_formula=formula, tokens=tokens, array_ref=array_ref,
        ))
    logger.debug("scan_workbook: %d cells with placeholders", len(scans))
    return scans
