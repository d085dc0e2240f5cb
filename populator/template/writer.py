"""
模板写入模块 (Template Writer Module)
====================================

把填充引擎产生的单元格更新应用到工作簿。只修改单元格的值，
数字格式、字体、边框等样式保持不变。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from openpyxl.cell.cell import MergedCell
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.formula import ArrayFormula

from populator.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CellUpdate:
    """
    对单个单元格的一次写入。

    as_formula 为 True 时，以 "=" 开头的文本按公式写入（保留模板公式）；
    否则以 "=" 开头的文本作为字面字符串写入，避免数据被当成公式执行。
    array_ref 非空时公式以 ArrayFormula 写回，保留原数组公式的区域。
    """
    sheet: str
    row: int
    col: int
    value: Any
    as_formula: bool = False
    array_ref: Optional[str] = None

    @property
    def location(self):
        return (self.sheet, self.row, self.col)


class CellWriter:
    """
    单元格写入器：按位置写值，不触碰样式。
    """

    def __init__(self, wb: Workbook) -> None:
        self.wb = wb

    def write(self, update: CellUpdate) -> bool:
        """写入一次更新，成功返回 True。"""
        if update.sheet not in self.wb.sheetnames:
            logger.warning("CellWriter: sheet '%s' not found, skip R%dC%d", update.sheet, update.row, update.col)
            return False
        ws = self.wb[update.sheet]
        try:
            cell = ws.cell(update.row, update.col)
            if isinstance(cell, MergedCell):
                logger.warning("CellWriter: %s!R%dC%d is inside a merged range, skip", update.sheet, update.row, update.col)
                return False
            value = update.value
            if value == "":
                value = None
            if update.array_ref and update.as_formula and isinstance(value, str) and value.startswith("="):
                value = ArrayFormula(update.array_ref, value)
            cell.value = value
            if isinstance(value, str) and value.startswith("=") and not update.as_formula:
                cell.data_type = "s"
            return True
        except Exception as exc:
            logger.warning("Failed to write cell %s!R%dC%d: %s", update.sheet, update.row, update.col, exc)
            return False

    def write_all(self, updates: Iterable[CellUpdate]) -> int:
        written = 0
        for update in updates:
            if self.write(update):
                written += 1
        return written


def apply_updates(wb: Workbook, updates: Iterable[CellUpdate]) -> int:
    """公开入口：按顺序应用更新，返回成功写入的单元格数。"""
    return CellWriter(wb).write_all(updates)
