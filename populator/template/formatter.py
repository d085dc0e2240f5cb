"""
值格式化模块 (Value Formatter Module)
====================================

将数据项的值按 dataType 转换为可直接写入单元格的值：
currency / number → 数字，percentage → 小数，其余 → 字符串。
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional, Union

from populator.ir import DataItem, DataType

CellValue = Union[int, float, str]

# Thousands separators, currency symbols and stray whitespace seen in extracted figures
RE_NUMERIC_NOISE = re.compile(r"[,\s£$€¥]")
RE_INTEGER = re.compile(r"^[+-]?\d+$")
RE_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
RE_PARENS_NEGATIVE = re.compile(r"^\((.*)\)$")


class ValueFormatter:
    """
    值规范化与类型转换工具类。

    所有方法都不会抛出异常：无法解析的数字按 0 处理。
    """

    @staticmethod
    def format(value: Any, data_type: Optional[str]) -> CellValue:
        if value is None:
            return ""
        kind = (data_type or DataType.STRING.value).strip().lower()

        if kind in (DataType.CURRENCY.value, DataType.NUMBER.value):
            parsed = ValueFormatter.parse_number(value)
            return 0 if parsed is None else parsed

        if kind == DataType.PERCENTAGE.value:
            parsed = ValueFormatter.parse_number(value)
            if parsed is None:
                return 0
            # Whole-number percent (5 -> 0.05); values within [-1, 1] are already fractions
            return parsed / 100 if abs(parsed) > 1 else parsed

        return ValueFormatter.to_text(value)

    @staticmethod
    def parse_number(value: Any) -> Optional[Union[int, float]]:
        """解析数字；不可解析、NaN 或无穷大时返回 None。"""
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return value if math.isfinite(value) else None
        if not isinstance(value, str):
            return None

        text = RE_NUMERIC_NOISE.sub("", value.strip()).rstrip("%")
        negative = False
        m = RE_PARENS_NEGATIVE.match(text)
        if m:
            text = m.group(1)
            negative = True
        if not text:
            return None
        try:
            if RE_INTEGER.match(text):
                number: Union[int, float] = int(text)
            elif RE_NUMBER.match(text):
                number = float(text)
            else:
                return None
        except (ValueError, OverflowError):
            return None
        if isinstance(number, float) and not math.isfinite(number):
            return None
        return -number if negative else number

    @staticmethod
    def to_text(value: Any) -> str:
        """把值渲染为嵌入文本时使用的字符串；整数值的浮点数不带 ".0"。"""
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float):
            if math.isfinite(value) and value.is_integer():
                return str(int(value))
            return repr(value)
        return str(value)


def format_value(item: DataItem) -> CellValue:
    """公开入口：格式化一个数据项的值。"""
    return ValueFormatter.format(item.value, item.data_type)


def value_to_text(value: Any) -> str:
    return ValueFormatter.to_text(value)
