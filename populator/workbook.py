"""
工作簿适配模块 (Workbook Adapter Module)
======================================

在 openpyxl 之上实现填充引擎所需的工作簿契约：
从字节加载、枚举工作表、遍历已用区域、序列化回字节。
宏（vbaProject.bin）仅在模板本身包含时保留。
"""

from __future__ import annotations

import io
import zipfile
from typing import Iterator, Optional

from openpyxl import load_workbook
from openpyxl.cell.cell import Cell, MergedCell
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.formula import ArrayFormula
from openpyxl.worksheet.worksheet import Worksheet

from populator.config import get_settings
from populator.errors import WorkbookLoadError
from populator.logger import get_logger

logger = get_logger(__name__)

VBA_PART_NAME = "xl/vbaProject.bin"

XLSM_CONTENT_TYPE = "application/vnd.ms-excel.sheet.macroEnabled.12"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def has_vba(data: bytes) -> bool:
    """判断模板压缩包中是否包含 VBA 工程。"""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            return VBA_PART_NAME in archive.namelist()
    except zipfile.BadZipFile:
        return False


def load_workbook_bytes(data: bytes, max_bytes: Optional[int] = None) -> Workbook:
    """
    从字节加载工作簿。

    公式保持为公式（data_only=False），富文本以 CellRichText 形式返回，
    模板含宏时保留宏。任何解析失败都转换为 WorkbookLoadError。
    """
    if not data:
        raise WorkbookLoadError("Template is empty")
    limit = max_bytes if max_bytes is not None else get_settings().MAX_TEMPLATE_BYTES
    if len(data) > limit:
        raise WorkbookLoadError(f"Template is {len(data)} bytes, limit is {limit}")

    keep_vba = has_vba(data)
    try:
        wb = load_workbook(io.BytesIO(data), data_only=False, keep_vba=keep_vba, rich_text=True)
    except Exception as exc:
        raise WorkbookLoadError(f"Template could not be parsed: {type(exc).__name__}: {exc}") from exc

    logger.debug("load_workbook_bytes: %d bytes, sheets=%s, keep_vba=%s", len(data), wb.sheetnames, keep_vba)
    return wb


def workbook_to_bytes(wb: Workbook) -> bytes:
    """序列化工作簿为字节。"""
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def iter_used_cells(ws: Worksheet) -> Iterator[Cell]:
    """
    按行优先顺序遍历工作表已用区域内的单元格。

    合并区域中的从属单元格（MergedCell）没有自己的值，直接跳过。
    """
    for row in ws.iter_rows(
        min_row=ws.min_row,
        max_row=ws.max_row,
        min_col=ws.min_column,
        max_col=ws.max_column,
    ):
        for cell in row:
            if isinstance(cell, MergedCell):
                continue
            yield cell


def is_formula_cell(cell: Cell) -> bool:
    # openpyxl marks "=..." strings, ArrayFormula and DataTableFormula values with "f"
    return cell.data_type == "f" or isinstance(cell.value, ArrayFormula)


def array_formula_ref(cell: Cell) -> Optional[str]:
    """单元格为数组公式时返回其区域引用（如 "A1:A3"），否则返回 None。"""
    if isinstance(cell.value, ArrayFormula):
        return cell.value.ref
    return None
