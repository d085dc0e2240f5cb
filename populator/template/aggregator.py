"""
类目回退行聚合 (Fallback Row Aggregator)
=======================================

把扫描到的类目回退占位符按 (工作表, 行, 类目, 编号) 分组为回退行，
每行最多记录一个名称单元格和一个值单元格。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from populator.template.grammar import DEFAULT_SLOT, FallbackField
from populator.template.scanner import CellScan

Slot = Union[int, str]
RowKey = Tuple[str, int, str, Slot]


@dataclass
class FallbackRow:
    """
    一行类目回退槽位。

    slot 为 None 表示默认（无编号）回退；name_col / value_col 为 1 起始的列号。
    """
    sheet: str
    row: int
    category: str
    slot: Optional[int] = None
    name_col: Optional[int] = None
    value_col: Optional[int] = None

    @property
    def is_numbered(self) -> bool:
        return self.slot is not None

    @property
    def slot_key(self) -> Slot:
        return DEFAULT_SLOT if self.slot is None else self.slot

    @property
    def sort_key(self) -> Tuple[str, int, int]:
        # "default" sorts before every numbered slot
        return (self.sheet, self.row, -1 if self.slot is None else self.slot)


def aggregate_fallback_rows(scans: Iterable[CellScan]) -> List[FallbackRow]:
    """
    聚合所有回退占位符的位置。

    同一组内重复出现的名称/值占位符以最后一次出现的列为准。
    返回按 (工作表名, 行号, 编号) 排序的列表。
    """
    rows: Dict[RowKey, FallbackRow] = {}
    for scan in scans:
        for token in scan.fallback_tokens:
            key: RowKey = (scan.sheet, scan.row, token.category, DEFAULT_SLOT if token.slot is None else token.slot)
            entry = rows.get(key)
            if entry is None:
                entry = FallbackRow(sheet=scan.sheet, row=scan.row, category=token.category, slot=token.slot)
                rows[key] = entry
            if token.field is FallbackField.NAME:
                entry.name_col = scan.col
            else:
                entry.value_col = scan.col
    return sorted(rows.values(), key=lambda r: r.sort_key)
